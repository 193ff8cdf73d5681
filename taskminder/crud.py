import logging
from datetime import datetime
from typing import Optional, List
from sqlalchemy import select, func, desc
from taskminder.database import AsyncSessionLocal
from taskminder.models import models as db

logger = logging.getLogger("crud")

_UNSET = object()


# --- Generic DB helpers ------------------------------------------------------

async def _get_or_none(session, model, id_):
    obj = await session.get(model, id_)
    if not obj:
        logger.warning("%s with id=%s not found.", model.__name__, id_)
    return obj


async def _commit_refresh(session, obj):
    await session.commit()
    await session.refresh(obj)
    return obj


# --- Task Operations ---------------------------------------------------------

async def create_task(
    title: str,
    description: str = "",
    due_at: Optional[datetime] = None,
    status: str = "pending",
) -> db.Task:
    async with AsyncSessionLocal() as dbs:
        task = db.Task(title=title, description=description, due_at=due_at, status=status)
        dbs.add(task)
        await _commit_refresh(dbs, task)
        logger.info("Created task %s (%s)", task.id, title)
        return task


async def get_task(task_id: int) -> Optional[db.Task]:
    async with AsyncSessionLocal() as dbs:
        return await _get_or_none(dbs, db.Task, task_id)


async def list_tasks(status: Optional[str] = None) -> List[db.Task]:
    async with AsyncSessionLocal() as dbs:
        stmt = select(db.Task).order_by(db.Task.due_at, db.Task.id)
        if status:
            stmt = stmt.where(db.Task.status == status)
        result = await dbs.execute(stmt)
        tasks = list(result.scalars())
        logger.info("Fetched %d tasks (status=%s)", len(tasks), status)
        return tasks


async def count_tasks() -> int:
    async with AsyncSessionLocal() as dbs:
        result = await dbs.execute(select(func.count(db.Task.id)))
        return int(result.scalar() or 0)


async def update_task(
    task_id: int,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    due_at=_UNSET,
    status: Optional[str] = None,
) -> Optional[db.Task]:
    async with AsyncSessionLocal() as dbs:
        task = await _get_or_none(dbs, db.Task, task_id)
        if not task:
            return None
        if title is not None:
            task.title = title
        if description is not None:
            task.description = description
        if due_at is not _UNSET:
            task.due_at = due_at
        if status is not None:
            task.status = status
        await _commit_refresh(dbs, task)
        logger.info("Updated task %s", task.id)
        return task


async def complete_task(task_id: int) -> Optional[db.Task]:
    return await update_task(task_id, status="done")


async def delete_task(task_id: int) -> Optional[db.Task]:
    """Delete a task and return the removed row (None when missing)."""
    async with AsyncSessionLocal() as dbs:
        task = await _get_or_none(dbs, db.Task, task_id)
        if not task:
            return None
        await dbs.delete(task)
        await dbs.commit()
        logger.info("Deleted task %s", task.id)
        return task


# --- Reminder Rule Operations ------------------------------------------------

async def create_rule(name: str, rule_type: str, params: str, active: bool = True) -> db.ReminderRule:
    async with AsyncSessionLocal() as dbs:
        rule = db.ReminderRule(name=name, rule_type=rule_type, params=params, active=active)
        dbs.add(rule)
        await _commit_refresh(dbs, rule)
        logger.info("Created %s rule %s (%s)", rule_type, rule.id, name)
        return rule


async def get_rule(rule_id: int) -> Optional[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        return await _get_or_none(dbs, db.ReminderRule, rule_id)


async def list_rules() -> List[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        result = await dbs.execute(select(db.ReminderRule).order_by(db.ReminderRule.id))
        return list(result.scalars())


async def update_rule(
    rule_id: int,
    *,
    name: Optional[str] = None,
    rule_type: Optional[str] = None,
    params: Optional[str] = None,
) -> Optional[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        rule = await _get_or_none(dbs, db.ReminderRule, rule_id)
        if not rule:
            return None
        if name is not None:
            rule.name = name
        if rule_type is not None:
            rule.rule_type = rule_type
        if params is not None:
            rule.params = params
        await _commit_refresh(dbs, rule)
        logger.info("Updated rule %s", rule.id)
        return rule


async def set_rule_active(rule_id: int, active: bool) -> Optional[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        rule = await _get_or_none(dbs, db.ReminderRule, rule_id)
        if not rule:
            return None
        rule.active = active
        await _commit_refresh(dbs, rule)
        logger.info("Rule %s active=%s", rule.id, active)
        return rule


async def delete_rule(rule_id: int) -> Optional[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        rule = await _get_or_none(dbs, db.ReminderRule, rule_id)
        if not rule:
            return None
        await dbs.delete(rule)
        await dbs.commit()
        logger.info("Deleted rule %s", rule.id)
        return rule


# --- Scheduler Queries -------------------------------------------------------

async def get_active_rules() -> List[db.ReminderRule]:
    async with AsyncSessionLocal() as dbs:
        result = await dbs.execute(
            select(db.ReminderRule).where(db.ReminderRule.active.is_(True)).order_by(db.ReminderRule.id)
        )
        rules = list(result.scalars())
        logger.debug("Found %d active rule(s)", len(rules))
        return rules


async def get_pending_tasks_due_between(start: Optional[datetime], end: datetime) -> List[db.Task]:
    """Pending tasks with due_at in [start, end]; an open start means 'anything up to end'."""
    async with AsyncSessionLocal() as dbs:
        stmt = (
            select(db.Task)
            .where(db.Task.status == "pending")
            .where(db.Task.due_at.isnot(None))
            .where(db.Task.due_at <= end)
        )
        if start is not None:
            stmt = stmt.where(db.Task.due_at >= start)
        result = await dbs.execute(stmt.order_by(db.Task.due_at, db.Task.id))
        return list(result.scalars())


async def update_rule_last_run(rule_id: int, ts: datetime) -> bool:
    async with AsyncSessionLocal() as dbs:
        rule = await _get_or_none(dbs, db.ReminderRule, rule_id)
        if not rule:
            return False
        rule.last_run_at = ts
        await dbs.commit()
        return True


# --- Execution Queries -------------------------------------------------------

async def list_executions(
    *,
    rule_id: Optional[int] = None,
    task_id: Optional[int] = None,
    limit: int = 200,
) -> List[db.ReminderExecution]:
    async with AsyncSessionLocal() as dbs:
        stmt = select(db.ReminderExecution).order_by(
            desc(db.ReminderExecution.triggered_at), desc(db.ReminderExecution.id)
        )
        if rule_id is not None:
            stmt = stmt.where(db.ReminderExecution.rule_id == rule_id)
        if task_id is not None:
            stmt = stmt.where(db.ReminderExecution.task_id == task_id)
        result = await dbs.execute(stmt.limit(limit))
        return list(result.scalars())


# --- Audit Operations --------------------------------------------------------

async def write_audit(event_type: str, details: str) -> db.AuditLog:
    async with AsyncSessionLocal() as dbs:
        entry = db.AuditLog(event_type=event_type, details=details)
        dbs.add(entry)
        await _commit_refresh(dbs, entry)
        return entry


async def list_audit(limit: int = 200) -> List[db.AuditLog]:
    async with AsyncSessionLocal() as dbs:
        result = await dbs.execute(
            select(db.AuditLog).order_by(desc(db.AuditLog.created_at), desc(db.AuditLog.id)).limit(limit)
        )
        return list(result.scalars())
