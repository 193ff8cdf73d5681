from datetime import datetime
from typing import List, Optional

from taskminder import crud


class CrudReminderStore:
    """Task/rule store the scheduler reads from, backed by taskminder.crud."""

    async def active_rules(self) -> List:
        return await crud.get_active_rules()

    async def pending_tasks_due_between(self, start: Optional[datetime], end: datetime) -> List:
        return await crud.get_pending_tasks_due_between(start, end)

    async def update_rule_last_run(self, rule_id: int, ts: datetime) -> None:
        await crud.update_rule_last_run(rule_id, ts)
