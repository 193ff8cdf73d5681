"""
Execution ledger: append-only record of fired reminders.

The table carries no uniqueness constraint. Interval rules legitimately append
many rows per (rule, task); the at-most-once guarantees of the other rule types
come from the queries the rule engine runs against this ledger.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from taskminder import database
from taskminder.models import models as db

logger = logging.getLogger("reminders.ledger")


class ExecutionLedger:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _session(self):
        factory = self._session_factory or database.AsyncSessionLocal
        return factory()

    async def has_fired_since(self, rule_id: int, task_id: int, since: datetime) -> bool:
        async with self._session() as dbs:
            result = await dbs.execute(
                select(func.count(db.ReminderExecution.id))
                .where(db.ReminderExecution.rule_id == rule_id)
                .where(db.ReminderExecution.task_id == task_id)
                .where(db.ReminderExecution.triggered_at >= since)
            )
            return int(result.scalar() or 0) > 0

    async def last_fired_at(self, rule_id: int, task_id: int) -> Optional[datetime]:
        async with self._session() as dbs:
            result = await dbs.execute(
                select(db.ReminderExecution.triggered_at)
                .where(db.ReminderExecution.rule_id == rule_id)
                .where(db.ReminderExecution.task_id == task_id)
                .order_by(db.ReminderExecution.triggered_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def record(self, rule_id: int, task_id: int, fired_at: datetime) -> db.ReminderExecution:
        async with self._session() as dbs:
            execution = db.ReminderExecution(rule_id=rule_id, task_id=task_id, triggered_at=fired_at)
            dbs.add(execution)
            await dbs.commit()
            await dbs.refresh(execution)
            logger.debug("Recorded execution rule=%s task=%s at %s", rule_id, task_id, fired_at.isoformat())
            return execution
