"""
Pydantic schemas for Task Manager API.
"""
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.task import TaskStatus, TaskPriority
from ..services.task_query import normalize_priority, normalize_status
from .user import UserOut


def _coerce_status(value):
    return normalize_status(value) if isinstance(value, str) else value


def _coerce_priority(value):
    return normalize_priority(value) if isinstance(value, str) else value


def _coerce_due_date(value):
    # Keep only the calendar day of a datetime string such as "2024-12-15T09:30:00"
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return value[:10]
    return value


class TaskBase(BaseModel):
    """Base task schema"""
    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(..., max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status, defaults to todo")
    priority: Optional[TaskPriority] = Field(None, description="Task priority, defaults to medium")
    due_date: Optional[date] = Field(None, description="Task due date")

    @field_validator("title", mode="before")
    @classmethod
    def title_required(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("The title field is required.")
        return value.strip() if isinstance(value, str) else value

    @field_validator("status", mode="before")
    @classmethod
    def canonical_status(cls, value):
        return _coerce_status(value)

    @field_validator("priority", mode="before")
    @classmethod
    def canonical_priority(cls, value):
        return _coerce_priority(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def calendar_day(cls, value):
        return _coerce_due_date(value)


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    pass


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only fields present in the request change."""
    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = Field(None, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    priority: Optional[TaskPriority] = Field(None, description="Task priority")
    due_date: Optional[date] = Field(None, description="Task due date, null clears it")

    @field_validator("title", mode="before")
    @classmethod
    def title_not_blank(cls, value):
        # Validators do not run for omitted fields, only for values actually sent
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("The title field is required.")
        return value.strip() if isinstance(value, str) else value

    @field_validator("status", "priority", mode="before")
    @classmethod
    def not_null(cls, value, info):
        if value is None:
            raise ValueError(f"The {info.field_name} field may not be null.")
        if info.field_name == "status":
            return _coerce_status(value)
        return _coerce_priority(value)

    @field_validator("due_date", mode="before")
    @classmethod
    def calendar_day(cls, value):
        return _coerce_due_date(value)


class TaskResponse(BaseModel):
    """Schema for task response"""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Task ID")
    user_id: int = Field(..., description="ID of the user who created the task")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: TaskStatus = Field(..., description="Task status")
    priority: TaskPriority = Field(..., description="Task priority")
    due_date: Optional[date] = Field(None, description="Task due date")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Task update timestamp")


class TaskDetail(TaskResponse):
    """Single task with its assignees"""
    assignees: List[UserOut] = Field(default_factory=list, description="Users assigned to the task")


class TaskPage(BaseModel):
    """Schema for paginated task list"""
    model_config = ConfigDict(populate_by_name=True)

    data: List[TaskResponse] = Field(..., description="Tasks on this page")
    total: int = Field(..., description="Total number of matching tasks")
    per_page: int = Field(..., description="Page size")
    current_page: int = Field(..., description="Requested page")
    last_page: int = Field(..., description="Last page number")
    from_: Optional[int] = Field(None, alias="from", description="Position of the first task on this page")
    to: Optional[int] = Field(None, description="Position of the last task on this page")


class AssignRequest(BaseModel):
    user_id: int = Field(..., description="ID of the user to assign")
