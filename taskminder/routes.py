import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, Response

from taskminder import crud, schemas
from taskminder.config import get_settings
from taskminder.features.reminders.rules import RuleError
from taskminder.services import rule_service, task_service
from taskminder.services.errors import NotFoundError, RuleConflictError

logger = logging.getLogger("routes")
router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RuleConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RuleError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# --- Tasks -------------------------------------------------------------------

@router.post("/tasks", response_model=schemas.TaskOut, status_code=201, tags=["Tasks"])
async def create_task(body: schemas.TaskCreate):
    return await task_service.create_task(body)


@router.get("/tasks", response_model=List[schemas.TaskOut], tags=["Tasks"])
async def list_tasks(status: Optional[schemas.TaskStatus] = None):
    return await task_service.list_tasks(status)


@router.get("/tasks/{task_id}", response_model=schemas.TaskOut, tags=["Tasks"])
async def get_task(task_id: int):
    try:
        return await task_service.get_task(task_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.put("/tasks/{task_id}", response_model=schemas.TaskOut, tags=["Tasks"])
async def update_task(task_id: int, body: schemas.TaskUpdate):
    try:
        return await task_service.update_task(task_id, body)
    except NotFoundError as e:
        raise _http_error(e)


@router.post("/tasks/{task_id}/complete", response_model=schemas.TaskOut, tags=["Tasks"])
async def complete_task(task_id: int):
    try:
        return await task_service.complete_task(task_id)
    except NotFoundError as e:
        raise _http_error(e)


@router.delete("/tasks/{task_id}", status_code=204, tags=["Tasks"])
async def delete_task(task_id: int):
    try:
        await task_service.delete_task(task_id)
    except NotFoundError as e:
        raise _http_error(e)
    return Response(status_code=204)


# --- Reminder Rules ----------------------------------------------------------

@router.post("/rules", response_model=schemas.RuleOut, status_code=201, tags=["Rules"])
async def create_rule(body: schemas.RuleCreate):
    try:
        rule = await rule_service.create_rule(body)
    except (RuleError, RuleConflictError) as e:
        raise _http_error(e)
    return rule_service.rule_to_out(rule)


@router.get("/rules", response_model=List[schemas.RuleOut], tags=["Rules"])
async def list_rules():
    return [rule_service.rule_to_out(r) for r in await rule_service.list_rules()]


@router.get("/rules/{rule_id}", response_model=schemas.RuleOut, tags=["Rules"])
async def get_rule(rule_id: int):
    try:
        rule = await rule_service.get_rule(rule_id)
    except NotFoundError as e:
        raise _http_error(e)
    return rule_service.rule_to_out(rule)


@router.put("/rules/{rule_id}", response_model=schemas.RuleOut, tags=["Rules"])
async def update_rule(rule_id: int, body: schemas.RuleUpdate):
    try:
        rule = await rule_service.update_rule(rule_id, body)
    except (NotFoundError, RuleError, RuleConflictError) as e:
        raise _http_error(e)
    return rule_service.rule_to_out(rule)


@router.delete("/rules/{rule_id}", status_code=204, tags=["Rules"])
async def delete_rule(rule_id: int):
    try:
        await rule_service.delete_rule(rule_id)
    except NotFoundError as e:
        raise _http_error(e)
    return Response(status_code=204)


@router.post("/rules/{rule_id}/activate", response_model=schemas.RuleOut, tags=["Rules"])
async def activate_rule(rule_id: int):
    try:
        rule = await rule_service.set_active(rule_id, True)
    except NotFoundError as e:
        raise _http_error(e)
    return rule_service.rule_to_out(rule)


@router.post("/rules/{rule_id}/deactivate", response_model=schemas.RuleOut, tags=["Rules"])
async def deactivate_rule(rule_id: int):
    try:
        rule = await rule_service.set_active(rule_id, False)
    except NotFoundError as e:
        raise _http_error(e)
    return rule_service.rule_to_out(rule)


# --- Audit / Executions ------------------------------------------------------

@router.get("/audit", response_model=List[schemas.AuditOut], tags=["Audit"])
async def list_audit():
    return await crud.list_audit(get_settings().audit_list_limit)


@router.get("/executions", response_model=List[schemas.ExecutionOut], tags=["Audit"])
async def list_executions(rule_id: Optional[int] = None, task_id: Optional[int] = None, limit: int = 200):
    return await crud.list_executions(rule_id=rule_id, task_id=task_id, limit=limit)


# --- Scheduler ---------------------------------------------------------------

@router.post("/scheduler/run", response_model=schemas.PassReportOut, tags=["Scheduler"])
async def run_scheduler_now(request: Request):
    """Run one evaluation pass right away and return its report."""
    report = await request.app.state.reminder_service.run_once()
    logger.info("Manual reminder pass: %d firing(s)", report.firings)
    return report.as_dict()


@router.get("/scheduler/status", response_model=schemas.SchedulerStatusOut, tags=["Scheduler"])
async def scheduler_status(request: Request):
    scheduler = request.app.state.reminder_scheduler
    service = request.app.state.reminder_service
    last = service.last_report
    return {
        "running": scheduler.running,
        "interval_seconds": int(scheduler.interval_seconds),
        "last_pass": last.as_dict() if last else None,
    }
