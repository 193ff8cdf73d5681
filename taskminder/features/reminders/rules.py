"""
Typed reminder rule parameters.

Rules are stored with a free-form ``rule_type`` string and a JSON ``params``
column. Both are decoded together into one variant per rule type; anything the
decoder does not recognise is rejected with a typed error instead of surfacing
later as a lookup failure inside the engine.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, StrictInt, TypeAdapter, ValidationError

from taskminder.schemas import RuleType


class RuleError(Exception):
    """Base exception for rules the engine cannot evaluate"""
    pass


class UnknownRuleTypeError(RuleError):
    def __init__(self, rule_type: Any):
        super().__init__(f"unknown rule type: {rule_type!r}")
        self.rule_type = rule_type


class RuleParamsError(RuleError):
    def __init__(self, rule_type: str, reason: str):
        super().__init__(f"invalid params for {rule_type} rule: {reason}")
        self.rule_type = rule_type
        self.reason = reason


class BeforeDueParams(BaseModel):
    kind: Literal["before_due"] = "before_due"
    minutes_before: StrictInt = Field(..., ge=0)


class IntervalParams(BaseModel):
    kind: Literal["interval"] = "interval"
    # interval_min is the key older rows were written with
    interval_minutes: StrictInt = Field(
        ..., gt=0, validation_alias=AliasChoices("interval_minutes", "interval_min")
    )


class AtDueParams(BaseModel):
    kind: Literal["at_due"] = "at_due"


RuleParams = Annotated[
    Union[BeforeDueParams, IntervalParams, AtDueParams],
    Field(discriminator="kind"),
]

_params_adapter: TypeAdapter = TypeAdapter(RuleParams)


def decode_params(rule_type: Any, raw: Any) -> RuleParams:
    """Decode a stored (rule_type, params) pair into its typed variant.

    ``raw`` may be the JSON text from the database, an already-parsed dict,
    or None/empty for parameterless rules.
    """
    try:
        kind = RuleType(rule_type).value
    except ValueError:
        raise UnknownRuleTypeError(rule_type) from None

    if raw is None or raw == "":
        data: Any = {}
    elif isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RuleParamsError(kind, f"not valid JSON ({e.msg})") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise RuleParamsError(kind, "expected a JSON object")

    try:
        return _params_adapter.validate_python({**data, "kind": kind})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or err['loc'][0]}: {err['msg']}"
            for err in e.errors()
        )
        raise RuleParamsError(kind, problems) from e


def params_to_dict(params: RuleParams) -> dict:
    return params.model_dump(exclude={"kind"})


def encode_params(params: RuleParams) -> str:
    return json.dumps(params_to_dict(params), sort_keys=True)


@dataclass(frozen=True)
class DecodedRule:
    """A rule row with its parameters resolved."""

    id: int
    name: str
    params: RuleParams
    last_run_at: Optional[datetime] = None

    @property
    def rule_type(self) -> str:
        return self.params.kind


def decode_rule(rule) -> DecodedRule:
    """Build a DecodedRule from any object shaped like models.ReminderRule."""
    params = decode_params(rule.rule_type, rule.params)
    return DecodedRule(
        id=rule.id,
        name=rule.name,
        params=params,
        last_run_at=getattr(rule, "last_run_at", None),
    )
