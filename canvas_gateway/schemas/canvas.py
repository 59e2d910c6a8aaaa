"""Canvas LMS payload schemas and tool parameter models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CanvasUserProfile(BaseModel):
    """Profile of the user that owns the API token."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    short_name: str | None = None
    sortable_name: str | None = None
    primary_email: str | None = None
    login_id: str | None = None


class CanvasCourseSummary(BaseModel):
    """One entry of the course listing."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: str | None = None
    course_code: str | None = None
    workflow_state: str | None = None


class EmptyParams(BaseModel):
    """Parameters for tools that take none."""


EnrollmentState = Literal["active", "invited_or_pending", "completed"]


class ListCoursesParams(BaseModel):
    enrollment_state: EnrollmentState = "active"
    per_page: int = Field(50, ge=1, le=100, description="Page size requested from Canvas")
