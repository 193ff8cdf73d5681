"""
Rule engine: decides which pending tasks a reminder rule fires for right now.

The engine only reads. It asks the store for candidate tasks and the ledger for
prior firings, and returns FiringDecision values; recording them, auditing them
and advancing the rule's last-run timestamp is the scheduler's job.

Store contract (see taskminder.features.reminders.store):
    await store.pending_tasks_due_between(start, end) -> list of tasks
Ledger contract (see taskminder.features.reminders.ledger):
    await ledger.has_fired_since(rule_id, task_id, since) -> bool
    await ledger.last_fired_at(rule_id, task_id) -> datetime | None
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from taskminder.features.reminders.rules import (
    AtDueParams,
    BeforeDueParams,
    DecodedRule,
    IntervalParams,
    UnknownRuleTypeError,
)
from taskminder.schemas import BeforeDueAnchor

logger = logging.getLogger("reminders.engine")

DEFAULT_AT_DUE_TOLERANCE = timedelta(minutes=1)


@dataclass(frozen=True)
class FiringDecision:
    rule_id: int
    rule_name: str
    task_id: int
    task_title: str
    due_at: datetime
    reason: str


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


class RuleEngine:
    def __init__(
        self,
        store,
        ledger,
        *,
        at_due_tolerance: timedelta = DEFAULT_AT_DUE_TOLERANCE,
        before_due_anchor: BeforeDueAnchor = BeforeDueAnchor.due,
    ):
        self.store = store
        self.ledger = ledger
        self.at_due_tolerance = at_due_tolerance
        self.before_due_anchor = BeforeDueAnchor(before_due_anchor)

    async def evaluate(self, rule: DecodedRule, now: datetime) -> List[FiringDecision]:
        """Return the firings ``rule`` approves at ``now``.

        Raises UnknownRuleTypeError for a parameter variant with no handler.
        Store and ledger errors propagate to the caller untouched.
        """
        params = rule.params
        if isinstance(params, BeforeDueParams):
            decisions = await self._before_due(rule, params, now)
        elif isinstance(params, IntervalParams):
            decisions = await self._interval(rule, params, now)
        elif isinstance(params, AtDueParams):
            decisions = await self._at_due(rule, now)
        else:
            raise UnknownRuleTypeError(getattr(params, "kind", type(params).__name__))

        logger.debug("Rule %s (%s) -> %d firing(s)", rule.id, rule.rule_type, len(decisions))
        return decisions

    # --- handlers ------------------------------------------------------------

    async def _before_due(self, rule: DecodedRule, params: BeforeDueParams, now: datetime) -> List[FiringDecision]:
        lead = timedelta(minutes=params.minutes_before)
        tasks = await self.store.pending_tasks_due_between(now, now + lead)

        decisions = []
        for task in self._pending(tasks):
            if self.before_due_anchor is BeforeDueAnchor.due:
                # once per (rule, task), also after the due time moves
                if await self.ledger.last_fired_at(rule.id, task.id) is not None:
                    continue
            elif await self.ledger.has_fired_since(rule.id, task.id, now):
                continue
            decisions.append(
                self._decision(rule, task, f"due in {_minutes(task.due_at - now)} min")
            )
        return decisions

    async def _interval(self, rule: DecodedRule, params: IntervalParams, now: datetime) -> List[FiringDecision]:
        spacing = timedelta(minutes=params.interval_minutes)
        tasks = await self.store.pending_tasks_due_between(None, now)

        decisions = []
        for task in self._pending(tasks):
            last = await self.ledger.last_fired_at(rule.id, task.id)
            if last is not None and now - last < spacing:
                continue
            decisions.append(
                self._decision(rule, task, f"overdue by {_minutes(now - task.due_at)} min")
            )
        return decisions

    async def _at_due(self, rule: DecodedRule, now: datetime) -> List[FiringDecision]:
        tol = self.at_due_tolerance
        start = now - tol
        # reach back to the previous pass so tasks due between two widely
        # spaced passes are still seen
        if rule.last_run_at is not None and rule.last_run_at < start:
            start = rule.last_run_at
        tasks = await self.store.pending_tasks_due_between(start, now + tol)

        decisions = []
        for task in self._pending(tasks):
            if now < task.due_at:
                continue
            if await self.ledger.last_fired_at(rule.id, task.id) is not None:
                continue
            decisions.append(self._decision(rule, task, "due now"))
        return decisions

    # --- helpers -------------------------------------------------------------

    @staticmethod
    def _pending(tasks) -> list:
        # the store filters on status already; a task seen as done never fires
        return [t for t in tasks if t.status == "pending" and t.due_at is not None]

    @staticmethod
    def _decision(rule: DecodedRule, task, reason: str) -> FiringDecision:
        return FiringDecision(
            rule_id=rule.id,
            rule_name=rule.name,
            task_id=task.id,
            task_title=task.title,
            due_at=task.due_at,
            reason=reason,
        )


def make_engine(store, ledger, settings=None) -> RuleEngine:
    """Build a RuleEngine from application settings."""
    if settings is None:
        from taskminder.config import get_settings

        settings = get_settings()
    return RuleEngine(
        store,
        ledger,
        at_due_tolerance=timedelta(seconds=settings.reminder_at_due_tolerance_seconds),
        before_due_anchor=BeforeDueAnchor(settings.reminder_before_due_anchor),
    )
