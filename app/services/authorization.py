"""Party checks gating every contract, milestone and payment operation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from app.security import Caller
from app.utils.errors import Forbidden

logger = logging.getLogger(__name__)


class _HasParties(Protocol):
    id: int
    client_id: int
    provider_id: int


@dataclass(frozen=True)
class PartyRoles:
    is_client: bool
    is_provider: bool


def authorize(caller: Caller, record: _HasParties, *, entity: str = "Contract") -> PartyRoles:
    """Return which side of the agreement ``caller`` is on, or raise ``Forbidden``.

    ``record`` is anything carrying ``client_id`` / ``provider_id``; payments copy
    both at creation so they can be checked without loading the contract.
    """

    roles = PartyRoles(
        is_client=record.client_id == caller.user_id,
        is_provider=record.provider_id == caller.user_id,
    )
    if not (roles.is_client or roles.is_provider):
        logger.warning(
            "Non-party access attempt",
            extra={"entity": entity, "entity_id": record.id, "user_id": caller.user_id},
        )
        raise Forbidden(
            f"Not a party to this {entity.lower()}.",
            code="NOT_A_PARTY",
            details={"entity": entity, "id": record.id},
        )
    return roles


def require_client(caller: Caller, record: _HasParties, *, action: str, entity: str = "Contract") -> None:
    """Allow only the client of record to perform ``action``."""

    roles = authorize(caller, record, entity=entity)
    if not roles.is_client:
        raise Forbidden(
            f"Only the client can {action}.",
            code="CLIENT_ONLY",
            details={"entity": entity, "id": record.id, "action": action},
        )


def require_provider(caller: Caller, record: _HasParties, *, action: str, entity: str = "Contract") -> None:
    """Allow only the provider of record to perform ``action``."""

    roles = authorize(caller, record, entity=entity)
    if not roles.is_provider:
        raise Forbidden(
            f"Only the provider can {action}.",
            code="PROVIDER_ONLY",
            details={"entity": entity, "id": record.id, "action": action},
        )


__all__ = ["PartyRoles", "authorize", "require_client", "require_provider"]
