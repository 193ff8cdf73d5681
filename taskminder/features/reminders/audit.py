"""
Audit sink for reminder firings and rule/task lifecycle events.

Audit rows are best-effort. The scheduler records a firing in the ledger before
emitting it here, and callers log and drop audit failures instead of failing
the operation that produced the event.
"""
import logging
from typing import Any, Dict

from taskminder import crud
from taskminder.utils.json_logger import safe_json_dump

logger = logging.getLogger("reminders.audit")

REMINDER_TRIGGER = "reminder.trigger"


class AuditSink:
    def __init__(self, writer=None):
        # writer(event_type, details) -> awaitable; defaults to the audit table
        self._writer = writer

    async def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        writer = self._writer or crud.write_audit
        await writer(event_type, safe_json_dump(payload))

    async def reminder_triggered(self, decision) -> None:
        await self.emit(
            REMINDER_TRIGGER,
            {
                "rule_id": decision.rule_id,
                "rule_name": decision.rule_name,
                "task_id": decision.task_id,
                "task_title": decision.task_title,
            },
        )


async def record_event(event_type: str, **payload: Any) -> bool:
    """Write a lifecycle event (rule.create, task.update, ...). Never raises."""
    try:
        await AuditSink().emit(event_type, payload)
        return True
    except Exception as e:
        logger.error("Failed to write audit event %s: %s", event_type, e)
        return False
