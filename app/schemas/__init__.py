"""Schema package exports."""
from .contract import ContractCreate, ContractDetail, ContractRead, ContractUpdate
from .milestone import MilestoneCreate, MilestoneRead, MilestoneUpdate
from .payment import PaymentCreate, PaymentRead, PaymentSessionRead, PaymentStatusRead

__all__ = [
    "ContractCreate",
    "ContractDetail",
    "ContractRead",
    "ContractUpdate",
    "MilestoneCreate",
    "MilestoneRead",
    "MilestoneUpdate",
    "PaymentCreate",
    "PaymentRead",
    "PaymentSessionRead",
    "PaymentStatusRead",
]
