"""
Reminder feature module: rule evaluation engine, execution ledger and scheduler
"""
from .engine import BeforeDueAnchor, FiringDecision, RuleEngine
from .ledger import ExecutionLedger
from .service import PassReport, ReminderScheduler, ReminderService, run_scheduler

__all__ = [
    "BeforeDueAnchor",
    "ExecutionLedger",
    "FiringDecision",
    "PassReport",
    "ReminderScheduler",
    "ReminderService",
    "RuleEngine",
    "run_scheduler",
]
