from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List
from datetime import datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TaskStatus(str, Enum):
    pending = "pending"
    done = "done"


class RuleType(str, Enum):
    at_due = "at_due"
    before_due = "before_due"
    interval = "interval"


class BeforeDueAnchor(str, Enum):
    """How a before_due rule deduplicates.

    due: a task is reminded at most once per rule, whatever happens to its due
         time afterwards.
    now: legacy wall-clock window starting at the evaluation instant; the same
         task fires again on each pass while it stays in range.
    """

    due = "due"
    now = "now"


# ---------------------------------------------------------------------------
# Task Schemas
# ---------------------------------------------------------------------------
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, description="Short title of the task")
    description: str = Field("", description="Longer description of the task")
    due_at: Optional[datetime] = Field(None, description="When the task is due")
    status: TaskStatus = Field(TaskStatus.pending, description="Initial status")


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, description="Updated title")
    description: Optional[str] = Field(None, description="Updated description")
    due_at: Optional[datetime] = Field(None, description="Updated due time")
    status: Optional[TaskStatus] = Field(None, description="New status of the task")


class TaskOut(BaseModel):
    id: int = Field(..., description="Unique identifier for the task")
    title: str = Field(..., description="Short title of the task")
    description: str = Field("", description="Longer description of the task")
    due_at: Optional[datetime] = Field(None, description="When the task is due")
    status: TaskStatus = Field(..., description="The current status of the task")
    created_at: datetime = Field(..., description="Timestamp when the task was created")
    updated_at: datetime = Field(..., description="Timestamp of the last change")

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Reminder Rule Schemas
# ---------------------------------------------------------------------------
class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Human readable rule name")
    rule_type: RuleType = Field(..., description="at_due, before_due or interval")
    params: Dict[str, Any] = Field(default_factory=dict, description="Type specific parameters")
    active: bool = Field(True, description="Whether the scheduler evaluates this rule")


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, description="Updated name")
    rule_type: Optional[RuleType] = Field(None, description="Updated rule type")
    params: Optional[Dict[str, Any]] = Field(None, description="Updated parameters")


class RuleOut(BaseModel):
    id: int
    name: str
    active: bool
    rule_type: str
    params: Dict[str, Any]
    last_run_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Audit / Execution Schemas
# ---------------------------------------------------------------------------
class AuditOut(BaseModel):
    id: int
    event_type: str
    details: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ExecutionOut(BaseModel):
    id: int
    rule_id: int
    task_id: int
    triggered_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Scheduler Schemas
# ---------------------------------------------------------------------------
class PassReportOut(BaseModel):
    started_at: datetime = Field(..., description="Instant the pass evaluated rules at")
    rules_evaluated: int = Field(0, description="Rules whose evaluation completed")
    firings: int = Field(0, description="Reminders recorded during the pass")
    skipped_rules: List[int] = Field(default_factory=list, description="Rules with unusable type or params")
    failed_rules: List[int] = Field(default_factory=list, description="Rules abandoned after a store error")


class SchedulerStatusOut(BaseModel):
    running: bool
    interval_seconds: int
    last_pass: Optional[PassReportOut] = None
