"""ORM models package."""
from .api_key import ApiKey
from .audit import AuditLog
from .base import Base
from .contract import Contract, ContractStatus
from .milestone import Milestone, MilestoneStatus
from .payment import Payment, PaymentGateway, PaymentStatus
from .user import User, UserRole

__all__ = [
    "ApiKey",
    "AuditLog",
    "Base",
    "Contract",
    "ContractStatus",
    "Milestone",
    "MilestoneStatus",
    "Payment",
    "PaymentGateway",
    "PaymentStatus",
    "User",
    "UserRole",
]
