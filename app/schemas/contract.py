"""Contract schemas."""
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator

from app.models.contract import ContractStatus
from app.schemas.milestone import MilestoneRead
from app.schemas.payment import PaymentRead


class _ContractTerms(BaseModel):
    @model_validator(mode="after")
    def _check_dates(self):
        start = getattr(self, "start_date", None)
        end = getattr(self, "end_date", None)
        if start and end and end < start:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractCreate(_ContractTerms):
    """Creation payload; the caller fills its own side, the counterparty is named here."""

    provider_id: int | None = None
    client_id: int | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10_000)
    start_date: date | None = None
    end_date: date | None = None
    total_amount: int | None = Field(default=None, gt=0)
    document_url: HttpUrl | None = None


class ContractUpdate(_ContractTerms):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=10_000)
    start_date: date | None = None
    end_date: date | None = None
    total_amount: int | None = Field(default=None, gt=0)
    document_url: HttpUrl | None = None


class ContractRead(BaseModel):
    id: int
    client_id: int
    provider_id: int
    title: str
    description: str
    start_date: date | None
    end_date: date | None
    total_amount: int | None
    document_url: str | None
    status: ContractStatus
    signed_by_client: bool
    signed_by_provider: bool
    signed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContractDetail(ContractRead):
    milestones: list[MilestoneRead]
    payments: list[PaymentRead]
