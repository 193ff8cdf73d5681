import logging
from typing import List, Optional

from taskminder import crud, schemas
from taskminder.features.reminders.audit import record_event
from taskminder.features.reminders.rules import (
    AtDueParams,
    BeforeDueParams,
    IntervalParams,
    RuleError,
    RuleParams,
    decode_params,
    encode_params,
)
from taskminder.services.errors import NotFoundError, RuleConflictError
from taskminder.utils.json_logger import safe_json_load

logger = logging.getLogger("services.rule")


def rule_to_out(rule) -> schemas.RuleOut:
    params = safe_json_load(rule.params)
    return schemas.RuleOut(
        id=rule.id,
        name=rule.name,
        active=rule.active,
        rule_type=rule.rule_type,
        params=params if isinstance(params, dict) else {},
        last_run_at=rule.last_run_at,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _conflict(new: RuleParams, existing: RuleParams) -> Optional[str]:
    if isinstance(new, AtDueParams) and isinstance(existing, AtDueParams):
        return "only one at_due rule is allowed"
    if isinstance(new, BeforeDueParams) and isinstance(existing, BeforeDueParams):
        if new.minutes_before == existing.minutes_before:
            return f"before_due rule with {new.minutes_before} minutes already exists"
    if isinstance(new, IntervalParams) and isinstance(existing, IntervalParams):
        if new.interval_minutes == existing.interval_minutes:
            return f"interval rule with {new.interval_minutes} minutes already exists"
    return None


async def _ensure_unique(params: RuleParams, *, exclude_id: Optional[int] = None) -> None:
    for existing in await crud.list_rules():
        if existing.id == exclude_id:
            continue
        try:
            other = decode_params(existing.rule_type, existing.params)
        except RuleError:
            # rows the engine would skip anyway cannot clash with anything
            continue
        reason = _conflict(params, other)
        if reason:
            logger.warning("Rule conflict with rule %s: %s", existing.id, reason)
            raise RuleConflictError(reason)


async def create_rule(data: schemas.RuleCreate):
    params = decode_params(data.rule_type.value, data.params)
    await _ensure_unique(params)
    rule = await crud.create_rule(data.name, params.kind, encode_params(params), active=data.active)
    await record_event("rule.create", rule_id=rule.id, rule_name=rule.name, rule_type=rule.rule_type)
    return rule


async def list_rules() -> List:
    return await crud.list_rules()


async def get_rule(rule_id: int):
    rule = await crud.get_rule(rule_id)
    if rule is None:
        raise NotFoundError(f"rule {rule_id} not found")
    return rule


async def update_rule(rule_id: int, data: schemas.RuleUpdate):
    rule = await get_rule(rule_id)

    rule_type = data.rule_type.value if data.rule_type is not None else rule.rule_type
    if data.params is not None:
        raw = data.params
    elif rule_type == rule.rule_type:
        raw = rule.params
    else:
        raw = {}
    params = decode_params(rule_type, raw)
    await _ensure_unique(params, exclude_id=rule.id)

    updated = await crud.update_rule(rule.id, name=data.name, rule_type=params.kind, params=encode_params(params))
    if updated is None:
        raise NotFoundError(f"rule {rule_id} not found")
    await record_event("rule.update", rule_id=updated.id, rule_name=updated.name, rule_type=updated.rule_type)
    return updated


async def delete_rule(rule_id: int) -> None:
    rule = await crud.delete_rule(rule_id)
    if rule is None:
        raise NotFoundError(f"rule {rule_id} not found")
    await record_event("rule.delete", rule_id=rule.id, rule_name=rule.name)


async def set_active(rule_id: int, active: bool):
    rule = await crud.set_rule_active(rule_id, active)
    if rule is None:
        raise NotFoundError(f"rule {rule_id} not found")
    await record_event(
        "rule.activate" if active else "rule.deactivate", rule_id=rule.id, rule_name=rule.name
    )
    return rule
