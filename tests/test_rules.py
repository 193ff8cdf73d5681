import json

import pytest

from fakes import FakeRule
from taskminder.features.reminders.rules import (
    AtDueParams,
    BeforeDueParams,
    IntervalParams,
    RuleParamsError,
    UnknownRuleTypeError,
    decode_params,
    decode_rule,
    encode_params,
)


def test_decodes_each_rule_type():
    assert decode_params("before_due", '{"minutes_before": 15}') == BeforeDueParams(minutes_before=15)
    assert decode_params("interval", {"interval_minutes": 2}) == IntervalParams(interval_minutes=2)
    assert decode_params("at_due", None) == AtDueParams()
    assert decode_params("at_due", "") == AtDueParams()


def test_interval_accepts_legacy_key():
    params = decode_params("interval", '{"interval_min": 2}')
    assert params.interval_minutes == 2
    assert json.loads(encode_params(params)) == {"interval_minutes": 2}


def test_unknown_rule_type_is_rejected():
    with pytest.raises(UnknownRuleTypeError) as exc:
        decode_params("weekly", "{}")
    assert exc.value.rule_type == "weekly"


@pytest.mark.parametrize(
    "rule_type,raw",
    [
        ("before_due", "{not json"),
        ("before_due", "[1, 2]"),
        ("before_due", "{}"),
        ("before_due", '{"minutes_before": -1}'),
        ("before_due", '{"minutes_before": "soon"}'),
        ("before_due", '{"minutes_before": "15"}'),
        ("before_due", '{"minutes_before": true}'),
        ("before_due", '{"minutes_before": 1.5}'),
        ("interval", '{"interval_minutes": 0}'),
        ("interval", '{"interval_minutes": "2"}'),
        ("interval", '{"interval_min": true}'),
        ("interval", "{}"),
    ],
)
def test_malformed_params_are_rejected(rule_type, raw):
    with pytest.raises(RuleParamsError) as exc:
        decode_params(rule_type, raw)
    assert exc.value.rule_type == rule_type


def test_decode_rule_carries_identity():
    rule = decode_rule(FakeRule(id=4, name="15 before", rule_type="before_due", params='{"minutes_before": 15}'))
    assert rule.id == 4
    assert rule.name == "15 before"
    assert rule.rule_type == "before_due"
    assert rule.params.minutes_before == 15
