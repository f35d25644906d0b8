"""Schemas for milestone entities."""
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.milestone import MilestoneStatus


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5_000)
    # Smallest currency unit.
    amount: int = Field(gt=0)
    due_date: date | None = None


class MilestoneUpdate(BaseModel):
    """``PUT /milestones/{id}``: a status transition and/or detail edits."""

    status: MilestoneStatus | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5_000)
    amount: int | None = Field(default=None, gt=0)
    due_date: date | None = None


class MilestoneRead(BaseModel):
    id: int
    contract_id: int
    title: str
    description: str | None
    amount: int
    due_date: date | None
    status: MilestoneStatus
    completed_at: datetime | None
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
