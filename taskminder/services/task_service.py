import logging
from typing import Optional, List

from taskminder import crud, schemas
from taskminder.features.reminders.audit import record_event
from taskminder.services.errors import NotFoundError

logger = logging.getLogger("services.task")


async def create_task(data: schemas.TaskCreate):
    task = await crud.create_task(
        data.title,
        data.description,
        due_at=data.due_at,
        status=data.status.value,
    )
    await record_event("task.create", task_id=task.id, task_title=task.title)
    return task


async def list_tasks(status: Optional[schemas.TaskStatus] = None) -> List:
    return await crud.list_tasks(status.value if status else None)


async def get_task(task_id: int):
    task = await crud.get_task(task_id)
    if task is None:
        raise NotFoundError(f"task {task_id} not found")
    return task


async def update_task(task_id: int, data: schemas.TaskUpdate):
    fields = data.model_dump(exclude_unset=True)
    logger.debug("Updating task %s fields=%s", task_id, sorted(fields))
    if "status" in fields and fields["status"] is not None:
        fields["status"] = schemas.TaskStatus(fields["status"]).value
    task = await crud.update_task(task_id, **fields)
    if task is None:
        raise NotFoundError(f"task {task_id} not found")
    await record_event("task.update", task_id=task.id, task_title=task.title, status=task.status)
    return task


async def complete_task(task_id: int):
    task = await crud.complete_task(task_id)
    if task is None:
        raise NotFoundError(f"task {task_id} not found")
    await record_event("task.update", task_id=task.id, task_title=task.title, status=task.status)
    return task


async def delete_task(task_id: int) -> None:
    task = await crud.delete_task(task_id)
    if task is None:
        raise NotFoundError(f"task {task_id} not found")
    await record_event("task.delete", task_id=task.id, task_title=task.title)
