"""
Reminder Service: evaluation passes and the background scheduler that drives them
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from taskminder.features.reminders.audit import AuditSink
from taskminder.features.reminders.engine import FiringDecision, make_engine
from taskminder.features.reminders.ledger import ExecutionLedger
from taskminder.features.reminders.rules import RuleError, decode_rule
from taskminder.features.reminders.store import CrudReminderStore

logger = logging.getLogger("reminders.scheduler")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PassReport:
    """Outcome of one evaluation pass."""

    started_at: datetime
    rules_evaluated: int = 0
    firings: int = 0
    skipped_rules: List[int] = field(default_factory=list)
    failed_rules: List[int] = field(default_factory=list)
    decisions: List[FiringDecision] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "rules_evaluated": self.rules_evaluated,
            "firings": self.firings,
            "skipped_rules": list(self.skipped_rules),
            "failed_rules": list(self.failed_rules),
        }


class ReminderService:
    """Runs evaluation passes over every active rule.

    One pass: read active rules, let the engine decide the firings for each,
    record every firing in the ledger, audit it, then advance the rule's
    last-run timestamp to the pass start. A rule that fails is logged and left
    for the next pass; it never stops the rules after it.
    """

    def __init__(
        self,
        store=None,
        ledger=None,
        audit=None,
        *,
        engine=None,
        clock: Callable[[], datetime] = utcnow,
        settings=None,
    ):
        self.store = store or CrudReminderStore()
        self.ledger = ledger or ExecutionLedger()
        self.audit = audit or AuditSink()
        self.engine = engine or make_engine(self.store, self.ledger, settings)
        self.clock = clock
        self.last_report: Optional[PassReport] = None
        # passes from the scheduler and from "run now" must not interleave
        self._pass_lock = asyncio.Lock()

    async def run_once(self) -> PassReport:
        """Execute exactly one evaluation pass."""
        async with self._pass_lock:
            now = self.clock()
            report = PassReport(started_at=now)

            try:
                rules = await self.store.active_rules()
            except Exception as e:
                logger.error("Failed to fetch active rules: %s", e)
                self.last_report = report
                return report

            for rule in rules:
                await self._run_rule(rule, now, report)

            if report.firings:
                logger.info("Fired %d reminder(s) this pass", report.firings)
            logger.debug(
                "Pass at %s: %d rule(s) evaluated, %d skipped, %d failed",
                now.isoformat(),
                report.rules_evaluated,
                len(report.skipped_rules),
                len(report.failed_rules),
            )
            self.last_report = report
            return report

    async def _run_rule(self, rule, now: datetime, report: PassReport) -> None:
        try:
            decoded = decode_rule(rule)
            decisions = await self.engine.evaluate(decoded, now)
        except RuleError as e:
            logger.warning("Skipping rule %s (%s): %s", rule.id, rule.name, e)
            report.skipped_rules.append(rule.id)
            return
        except Exception as e:
            logger.error("Evaluation of rule %s (%s) failed: %s", rule.id, rule.name, e)
            report.failed_rules.append(rule.id)
            return

        for decision in decisions:
            try:
                await self.ledger.record(decision.rule_id, decision.task_id, now)
            except Exception as e:
                logger.error(
                    "Failed to record reminder rule=%s task=%s: %s", decision.rule_id, decision.task_id, e
                )
                report.failed_rules.append(rule.id)
                return

            report.firings += 1
            report.decisions.append(decision)
            logger.info(
                "Reminder(rule:%s) -> Task:%d %s due:%s (%s)",
                decision.rule_name,
                decision.task_id,
                decision.task_title,
                decision.due_at.isoformat(),
                decision.reason,
            )

            try:
                await self.audit.reminder_triggered(decision)
            except Exception as e:
                logger.error("Failed to audit reminder rule=%s task=%s: %s", decision.rule_id, decision.task_id, e)

        report.rules_evaluated += 1
        try:
            await self.store.update_rule_last_run(rule.id, now)
        except Exception as e:
            logger.error("Failed to update last run for rule %s: %s", rule.id, e)


class ReminderScheduler:
    """Background driver: one pass right away, then one per interval.

    ``stop`` lets a pass that is already running finish and guarantees no pass
    starts afterwards.
    """

    JOB_ID = "reminder_pass"

    def __init__(self, service: ReminderService, interval_seconds: float = 60):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.service = service
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._current: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start ticking. Must be called from inside the running event loop."""
        if self._scheduler is not None:
            logger.warning("Scheduler already running")
            return

        self._stopping = False
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.JOB_ID,
            name="Evaluate reminder rules",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=None,
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Reminder scheduler started (checking every %s seconds)", self.interval_seconds)

    async def stop(self) -> None:
        if self._scheduler is None:
            logger.warning("Scheduler not running")
            return

        self._stopping = True
        scheduler, self._scheduler = self._scheduler, None
        scheduler.pause()

        current = self._current
        if current is not None and not current.done():
            logger.info("Waiting for the in-flight reminder pass to finish")
            await asyncio.wait([current])

        scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")

    async def _tick(self) -> None:
        if self._stopping:
            return
        self._current = asyncio.current_task()
        try:
            await self.service.run_once()
        except Exception as e:
            logger.error("Reminder pass failed: %s", e)
        finally:
            self._current = None


async def run_scheduler(service: ReminderService, interval_seconds: float, stop_event: asyncio.Event) -> None:
    """Drive ``service`` every ``interval_seconds`` until ``stop_event`` is set."""
    scheduler = ReminderScheduler(service, interval_seconds)
    scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
