"""Storage access for contracts, milestones and payments.

Every read-modify-write in the services goes through two mechanisms:

* loads made with ``for_update=True`` inside a unit of work take a row lock
  (``SELECT ... FOR UPDATE``) that holds until the commit. Writers lock in the
  order contract, milestone, payment;
* ``run_atomic(db, work)`` commits the unit of work and, because the three
  tables carry a ``version_id_col``, re-runs it when another transaction changed
  the row in between (``StaleDataError``). Databases that ignore ``FOR UPDATE``,
  such as SQLite, rely on this check alone.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.models import Contract, Milestone, Payment
from app.models.payment import IN_FLIGHT_PAYMENT_STATUSES
from app.utils.errors import NotFound, RecordBusy

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_COMMIT_ATTEMPTS = 3


def run_atomic(db: Session, work: Callable[[], T], *, attempts: int = MAX_COMMIT_ATTEMPTS) -> T:
    """Run ``work`` and commit it, retrying when a concurrent version bump is detected.

    ``work`` must (re)load the records it mutates so a retry sees fresh state.
    Any other exception rolls the session back and propagates.
    """

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning("Concurrent update detected; retrying", extra={"attempt": attempt})
        except Exception:
            db.rollback()
            raise
    raise RecordBusy("Record kept changing concurrently, retry shortly.", details={"attempts": attempts})


def select_rows(model: type[T], *criteria, for_update: bool = False) -> Select:
    """Build a fresh-state select for ``model``, row-locked when ``for_update`` is set."""

    stmt = select(model).where(*criteria).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    return stmt


def _fetch(db: Session, model: type[T], record_id: int, *, for_update: bool = False) -> T | None:
    return db.scalars(select_rows(model, model.id == record_id, for_update=for_update)).first()


def get_contract(db: Session, contract_id: int, *, for_update: bool = False) -> Contract:
    contract = _fetch(db, Contract, contract_id, for_update=for_update)
    if contract is None:
        raise NotFound("Contract not found.", code="CONTRACT_NOT_FOUND", details={"id": contract_id})
    return contract


def get_milestone(db: Session, milestone_id: int, *, for_update: bool = False) -> Milestone:
    milestone = _fetch(db, Milestone, milestone_id, for_update=for_update)
    if milestone is None:
        raise NotFound("Milestone not found.", code="MILESTONE_NOT_FOUND", details={"id": milestone_id})
    return milestone


def get_payment(db: Session, payment_id: int, *, for_update: bool = False) -> Payment:
    payment = _fetch(db, Payment, payment_id, for_update=for_update)
    if payment is None:
        raise NotFound("Payment not found.", code="PAYMENT_NOT_FOUND", details={"id": payment_id})
    return payment


def find_payment_by_id(db: Session, payment_id: int) -> Payment | None:
    return _fetch(db, Payment, payment_id)


def find_payment_by_reference(db: Session, external_reference: str, *, for_update: bool = False) -> Payment | None:
    stmt = select_rows(Payment, Payment.external_reference == external_reference, for_update=for_update)
    return db.scalars(stmt).first()


def in_flight_payment(db: Session, milestone_id: int, *, for_update: bool = False) -> Payment | None:
    """Return the PENDING/PROCESSING payment for a milestone, if any."""

    stmt = select_rows(
        Payment,
        Payment.milestone_id == milestone_id,
        Payment.status.in_(list(IN_FLIGHT_PAYMENT_STATUSES)),
        for_update=for_update,
    )
    return db.scalars(stmt).first()


__all__ = [
    "find_payment_by_id",
    "find_payment_by_reference",
    "get_contract",
    "get_milestone",
    "get_payment",
    "in_flight_payment",
    "run_atomic",
    "select_rows",
]
