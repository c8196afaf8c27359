"""Pydantic v2 request/response schemas for form-generation endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class FormJobCreate(BaseModel):
    """Request to queue a new form job."""

    form_type: Literal["schedule_c", "1099"]


class FormJobResponse(BaseModel):
    """A form job as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    form_type: str
    status: str
    result_url: str | None
    error_message: str | None
    created_at: datetime


class FormJobListResponse(BaseModel):
    """The caller's form jobs, newest first."""

    jobs: list[FormJobResponse]
