import logging
from datetime import datetime, timedelta, timezone

from taskminder import crud
from taskminder.features.reminders.audit import record_event

logger = logging.getLogger("services.seed")

_SAMPLE_TASKS = [
    ("Pay electricity bill", "Electricity", timedelta(minutes=2)),
    ("Submit assignment", "Bootcamp", timedelta(minutes=10)),
    ("Daily workout", "Run", timedelta(hours=1)),
    ("Call supplier", "Discuss order", timedelta(minutes=3)),
    ("Read chapter 4", "Study", timedelta(minutes=20)),
]


async def seed_if_empty() -> bool:
    """Insert demo tasks and rules when the task table is empty."""
    if await crud.count_tasks() > 0:
        return False

    now = datetime.now(timezone.utc)
    for title, description, offset in _SAMPLE_TASKS:
        await crud.create_task(title, description, due_at=now + offset)

    await crud.create_rule("1min before", "before_due", '{"minutes_before": 1}')
    await crud.create_rule("every 2 min", "interval", '{"interval_minutes": 2}')
    await record_event("seed", details="seeded sample tasks and rules")
    logger.info("Seeded %d sample tasks and 2 rules", len(_SAMPLE_TASKS))
    return True
