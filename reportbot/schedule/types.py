"""Schedule and run types (Pydantic models with camelCase JSON aliases)."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from reportbot.utils.helpers import utc_now

Frequency = Literal["daily", "weekly", "monthly"]
RunStatus = Literal["running", "success", "failed"]
RunTrigger = Literal["tick", "manual"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})


def new_id() -> str:
    return str(uuid.uuid4())[:8]


class Schedule(BaseModel):
    """When, for which subject, and to whom a report is delivered.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """

    id: str = Field(default_factory=new_id)
    name: str = ""
    frequency: Frequency
    day_of_week: int | None = Field(None, alias="dayOfWeek", ge=0, le=6)
    day_of_month: int | None = Field(None, alias="dayOfMonth", ge=1, le=31)
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    is_active: bool = Field(True, alias="isActive")
    subject_id: str = Field(alias="subjectId")
    subject_name: str = Field("", alias="subjectName")
    recipients: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_calendar_fields(self) -> "Schedule":
        if self.frequency == "weekly":
            if self.day_of_week is None:
                raise ValueError("weekly schedules require dayOfWeek")
            if self.day_of_month is not None:
                raise ValueError("dayOfMonth is only valid for monthly schedules")
        elif self.frequency == "monthly":
            if self.day_of_month is None:
                raise ValueError("monthly schedules require dayOfMonth")
            if self.day_of_week is not None:
                raise ValueError("dayOfWeek is only valid for weekly schedules")
        elif self.day_of_week is not None or self.day_of_month is not None:
            raise ValueError("daily schedules take neither dayOfWeek nor dayOfMonth")
        if not self.name:
            self.name = self.subject_name or self.subject_id
        return self

    def describe(self) -> str:
        """Human readable timing, e.g. ``weekly on day 1 at 08:00``."""
        at = f"{self.hour:02d}:{self.minute:02d}"
        if self.frequency == "weekly":
            return f"weekly on day {self.day_of_week} at {at}"
        if self.frequency == "monthly":
            return f"monthly on day {self.day_of_month} at {at}"
        return f"daily at {at}"


class Run(BaseModel):
    """One execution attempt of a schedule."""

    id: str = Field(default_factory=new_id)
    schedule_id: str = Field(alias="scheduleId")
    status: RunStatus = "running"
    trigger: RunTrigger = "tick"
    recipient_count: int = Field(0, alias="recipientCount")
    error_message: str | None = Field(None, alias="errorMessage")
    started_at: datetime = Field(default_factory=utc_now, alias="startedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")

    model_config = {"populate_by_name": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_s(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class ScheduleStore(BaseModel):
    """Persistent store layout for schedules and runs."""

    version: int = 1
    schedules: list[Schedule] = []
    runs: list[Run] = []
