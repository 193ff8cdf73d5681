"""
Tests for the rule engine's per-type firing decisions
"""
from datetime import timedelta
from types import SimpleNamespace

import pytest

from fakes import T0, FakeLedger, FakeStore, FakeTask
from taskminder.features.reminders.engine import BeforeDueAnchor, RuleEngine
from taskminder.features.reminders.rules import (
    AtDueParams,
    BeforeDueParams,
    DecodedRule,
    IntervalParams,
    UnknownRuleTypeError,
)


def _engine(tasks, ledger=None, **kwargs):
    ledger = ledger or FakeLedger()
    return RuleEngine(FakeStore(tasks=tasks), ledger, **kwargs), ledger


async def _evaluate_and_record(engine, ledger, rule, now):
    """What the scheduler does with a decision list, minus the audit."""
    decisions = await engine.evaluate(rule, now)
    for d in decisions:
        await ledger.record(d.rule_id, d.task_id, now)
    return decisions


class TestBeforeDue:
    rule = DecodedRule(id=1, name="1min before", params=BeforeDueParams(minutes_before=1))

    @pytest.mark.asyncio
    async def test_fires_once_inside_window(self):
        """Task due at T+2min: no firing at T, one at T+1m30s, none at T+3min."""
        task = FakeTask(id=10, title="Pay electricity bill", due_at=T0 + timedelta(minutes=2))
        engine, ledger = _engine([task])

        assert await _evaluate_and_record(engine, ledger, self.rule, T0) == []

        fired = await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=1, seconds=30))
        assert [(d.rule_id, d.task_id) for d in fired] == [(1, 10)]
        assert fired[0].task_title == "Pay electricity bill"

        assert await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=3)) == []
        assert ledger.fired(1, 10) == [T0 + timedelta(minutes=1, seconds=30)]

    @pytest.mark.asyncio
    async def test_at_most_once_across_many_passes(self):
        due = T0 + timedelta(minutes=10)
        rule = DecodedRule(id=1, name="5min before", params=BeforeDueParams(minutes_before=5))
        engine, ledger = _engine([FakeTask(id=1, title="Submit assignment", due_at=due)])

        now = T0
        while now <= due + timedelta(minutes=2):
            await _evaluate_and_record(engine, ledger, rule, now)
            now += timedelta(seconds=20)

        fired = ledger.fired(1, 1)
        assert len(fired) == 1
        assert due - timedelta(minutes=5) <= fired[0] <= due

    @pytest.mark.asyncio
    async def test_due_exactly_at_window_edges(self):
        engine, _ = _engine(
            [
                FakeTask(id=1, title="edge end", due_at=T0 + timedelta(minutes=1)),
                FakeTask(id=2, title="edge start", due_at=T0),
                FakeTask(id=3, title="just outside", due_at=T0 + timedelta(minutes=1, seconds=1)),
            ]
        )
        fired = await engine.evaluate(self.rule, T0)
        assert sorted(d.task_id for d in fired) == [1, 2]

    @pytest.mark.asyncio
    async def test_zero_lead_fires_only_on_exact_due_time(self):
        rule = DecodedRule(id=4, name="at zero", params=BeforeDueParams(minutes_before=0))
        engine, _ = _engine([FakeTask(id=1, title="x", due_at=T0)])

        assert len(await engine.evaluate(rule, T0)) == 1
        assert await engine.evaluate(rule, T0 + timedelta(seconds=1)) == []

    @pytest.mark.asyncio
    async def test_postponed_task_is_not_reminded_twice(self):
        task = FakeTask(id=1, title="Call supplier", due_at=T0 + timedelta(minutes=2))
        engine, ledger = _engine([task])

        await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=1, seconds=30))
        task.due_at = T0 + timedelta(minutes=10)
        fired = await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=9, seconds=30))

        assert fired == []
        assert len(ledger.fired(1, 1)) == 1

    @pytest.mark.asyncio
    async def test_task_moved_earlier_is_not_reminded_twice(self):
        task = FakeTask(id=1, title="Call supplier", due_at=T0 + timedelta(minutes=10))
        engine, ledger = _engine([task])
        rule = DecodedRule(id=1, name="5min before", params=BeforeDueParams(minutes_before=5))

        await _evaluate_and_record(engine, ledger, rule, T0 + timedelta(minutes=6))
        task.due_at = T0 + timedelta(minutes=8)
        fired = await _evaluate_and_record(engine, ledger, rule, T0 + timedelta(minutes=7))

        assert fired == []
        assert len(ledger.fired(1, 1)) == 1

    @pytest.mark.asyncio
    async def test_now_anchor_refires_on_every_pass(self):
        """The legacy wall-clock window start does not deduplicate across passes."""
        task = FakeTask(id=1, title="Read chapter 4", due_at=T0 + timedelta(minutes=2))
        engine, ledger = _engine([task], before_due_anchor=BeforeDueAnchor.now)

        await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=1, seconds=10))
        await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=1, seconds=40))

        assert len(ledger.fired(1, 1)) == 2

    @pytest.mark.asyncio
    async def test_ignores_tasks_without_due_time_or_done(self):
        class LeakyStore(FakeStore):
            async def pending_tasks_due_between(self, start, end):
                return list(self.tasks)

        tasks = [
            FakeTask(id=1, title="done already", due_at=T0 + timedelta(seconds=30), status="done"),
            FakeTask(id=2, title="no due date", due_at=None),
        ]
        engine = RuleEngine(LeakyStore(tasks=tasks), FakeLedger())
        assert await engine.evaluate(self.rule, T0) == []


class TestInterval:
    rule = DecodedRule(id=2, name="every 2 min", params=IntervalParams(interval_minutes=2))

    @pytest.mark.asyncio
    async def test_spacing_with_passes_every_minute(self):
        """Overdue task, interval 2 min, passes every 60s: every other pass fires."""
        engine, ledger = _engine([FakeTask(id=5, title="Daily workout", due_at=T0 - timedelta(minutes=10))])

        for minute in range(10):
            await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=minute))

        fired = ledger.fired(2, 5)
        assert fired == [T0 + timedelta(minutes=m) for m in (0, 2, 4, 6, 8)]
        gaps = [b - a for a, b in zip(fired, fired[1:])]
        assert all(g >= timedelta(minutes=2) for g in gaps)

    @pytest.mark.asyncio
    async def test_keeps_firing_while_overdue(self):
        engine, ledger = _engine([FakeTask(id=5, title="Daily workout", due_at=T0)])

        for hour in range(24):
            await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(hours=hour))

        assert len(ledger.fired(2, 5)) == 24

    @pytest.mark.asyncio
    async def test_irregular_passes_never_fire_closer_than_interval(self):
        engine, ledger = _engine([FakeTask(id=5, title="x", due_at=T0 - timedelta(hours=1))])

        offsets = [0, 50, 110, 119, 120, 170, 241, 300, 361, 362]
        for seconds in offsets:
            await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(seconds=seconds))

        fired = ledger.fired(2, 5)
        assert fired[0] == T0
        assert all(b - a >= timedelta(minutes=2) for a, b in zip(fired, fired[1:]))

    @pytest.mark.asyncio
    async def test_future_tasks_are_not_candidates(self):
        engine, _ = _engine([FakeTask(id=5, title="later", due_at=T0 + timedelta(seconds=1))])
        assert await engine.evaluate(self.rule, T0) == []

    @pytest.mark.asyncio
    async def test_stops_once_task_is_done(self):
        task = FakeTask(id=5, title="x", due_at=T0 - timedelta(minutes=5))
        engine, ledger = _engine([task])

        await _evaluate_and_record(engine, ledger, self.rule, T0)
        task.status = "done"
        await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=10))

        assert ledger.fired(2, 5) == [T0]


class TestAtDue:
    rule = DecodedRule(id=3, name="at due", params=AtDueParams())

    @pytest.mark.asyncio
    async def test_fires_exactly_once_at_first_pass_past_due(self):
        due = T0 + timedelta(seconds=30)
        engine, ledger = _engine([FakeTask(id=7, title="Submit report", due_at=due)])

        assert await _evaluate_and_record(engine, ledger, self.rule, T0) == []
        fired = await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(seconds=60))
        assert [d.reason for d in fired] == ["due now"]
        assert await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(seconds=90)) == []
        assert await _evaluate_and_record(engine, ledger, self.rule, T0 + timedelta(minutes=3)) == []

        assert ledger.fired(3, 7) == [T0 + timedelta(seconds=60)]

    @pytest.mark.asyncio
    async def test_outside_tolerance_never_fires(self):
        engine, _ = _engine([FakeTask(id=7, title="long overdue", due_at=T0 - timedelta(minutes=5))])
        assert await engine.evaluate(self.rule, T0) == []

    @pytest.mark.asyncio
    async def test_custom_tolerance(self):
        engine, _ = _engine(
            [FakeTask(id=7, title="x", due_at=T0 - timedelta(minutes=5))],
            at_due_tolerance=timedelta(minutes=10),
        )
        assert len(await engine.evaluate(self.rule, T0)) == 1

    @pytest.mark.asyncio
    async def test_reaches_back_to_previous_pass(self):
        """A task due between two passes spaced wider than the tolerance still fires."""
        rule = DecodedRule(id=3, name="at due", params=AtDueParams(), last_run_at=T0 - timedelta(minutes=5))
        engine, _ = _engine([FakeTask(id=7, title="x", due_at=T0 - timedelta(minutes=4))])

        fired = await engine.evaluate(rule, T0)
        assert [d.task_id for d in fired] == [7]

    @pytest.mark.asyncio
    async def test_reach_back_stops_at_previous_pass(self):
        rule = DecodedRule(id=3, name="at due", params=AtDueParams(), last_run_at=T0 - timedelta(minutes=5))
        engine, _ = _engine([FakeTask(id=7, title="x", due_at=T0 - timedelta(minutes=6))])

        assert await engine.evaluate(rule, T0) == []

    @pytest.mark.asyncio
    async def test_any_prior_execution_blocks_firing(self):
        ledger = FakeLedger()
        await ledger.record(3, 7, T0 - timedelta(days=30))
        engine, _ = _engine([FakeTask(id=7, title="x", due_at=T0)], ledger=ledger)

        assert await engine.evaluate(self.rule, T0) == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_variant_is_rejected(self):
        rule = DecodedRule(id=9, name="weekly", params=SimpleNamespace(kind="weekly"))
        engine, _ = _engine([])

        with pytest.raises(UnknownRuleTypeError):
            await engine.evaluate(rule, T0)

    @pytest.mark.asyncio
    async def test_rules_are_independent(self):
        """Evaluation order across rules does not change any rule's decisions."""
        tasks = [
            FakeTask(id=1, title="soon", due_at=T0 + timedelta(seconds=45)),
            FakeTask(id=2, title="overdue", due_at=T0 - timedelta(minutes=3)),
            FakeTask(id=3, title="now", due_at=T0),
        ]
        rules = [
            DecodedRule(id=1, name="b", params=BeforeDueParams(minutes_before=1)),
            DecodedRule(id=2, name="i", params=IntervalParams(interval_minutes=5)),
            DecodedRule(id=3, name="a", params=AtDueParams()),
        ]

        async def run(order):
            engine, ledger = _engine(tasks)
            for rule in order:
                await _evaluate_and_record(engine, ledger, rule, T0)
            return sorted((r, t) for r, t, _ in ledger.rows)

        assert await run(rules) == await run(list(reversed(rules)))
