"""Schemas for payment entities."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.payment import PaymentGateway, PaymentStatus


class PaymentCreate(BaseModel):
    milestone_id: int
    gateway: PaymentGateway | None = None


class PaymentRead(BaseModel):
    id: int
    contract_id: int
    milestone_id: int
    client_id: int
    provider_id: int
    amount: int
    gateway: PaymentGateway
    status: PaymentStatus
    failure_reason: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentSessionRead(BaseModel):
    """Handle the client needs to finish paying at the gateway."""

    payment_id: int
    gateway: PaymentGateway
    status: PaymentStatus
    external_reference: str
    client_secret: str | None = None
    redirect_url: str | None = None


class PaymentStatusRead(BaseModel):
    payment_id: int
    milestone_id: int
    contract_id: int
    amount: int
    gateway: PaymentGateway
    status: PaymentStatus
    completed_at: datetime | None
    failure_reason: str | None = None
