"""Row locking and optimistic commit retry tests."""
import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.models import Contract, Payment
from app.services import ledger
from app.utils.errors import RecordBusy


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_locking_select_renders_for_update():
    stmt = ledger.select_rows(Payment, Payment.id == 1, for_update=True)
    assert _sql(stmt).rstrip().endswith("FOR UPDATE")


def test_plain_select_takes_no_row_lock():
    stmt = ledger.select_rows(Contract, Contract.id == 1)
    assert "FOR UPDATE" not in _sql(stmt)


def test_locking_loads_return_the_same_rows(db_session, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, _ = parties["provider"]
    contract = make_contract(client_user, provider_user, milestones=(5000,))
    milestone_id = contract.milestones[0].id

    assert ledger.get_contract(db_session, contract.id, for_update=True).id == contract.id
    assert ledger.get_milestone(db_session, milestone_id, for_update=True).contract_id == contract.id
    assert ledger.in_flight_payment(db_session, milestone_id, for_update=True) is None
    assert ledger.find_payment_by_reference(db_session, "pi_missing", for_update=True) is None
    db_session.rollback()


class _RecordingSession:
    def __init__(self, stale_commits: int = 0) -> None:
        self.stale_commits = stale_commits
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        if self.stale_commits:
            self.stale_commits -= 1
            raise StaleDataError("row changed")
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


def test_run_atomic_retries_after_stale_data():
    session = _RecordingSession(stale_commits=2)
    calls = []

    result = ledger.run_atomic(session, lambda: calls.append(1) or "done")

    assert result == "done"
    assert len(calls) == 3
    assert session.commits == 1
    assert session.rollbacks == 2


def test_run_atomic_gives_up_with_record_busy():
    session = _RecordingSession(stale_commits=5)

    with pytest.raises(RecordBusy):
        ledger.run_atomic(session, lambda: None, attempts=3)

    assert session.rollbacks == 3


def test_run_atomic_rolls_back_and_propagates_other_errors():
    session = _RecordingSession()

    def work():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        ledger.run_atomic(session, work)

    assert session.rollbacks == 1
    assert session.commits == 0


def test_concurrent_version_bump_is_detected(db_session, parties, make_contract):
    """A second session holding an old version cannot overwrite a newer row."""

    client_user, _ = parties["client"]
    provider_user, _ = parties["provider"]
    contract = make_contract(client_user, provider_user)

    other = sessionmaker(bind=db_session.get_bind(), expire_on_commit=False)()
    try:
        stale = other.get(Contract, contract.id)

        fresh = ledger.get_contract(db_session, contract.id)
        fresh.title = "Updated first"
        db_session.commit()

        stale.title = "Updated second"
        with pytest.raises(StaleDataError):
            other.commit()
        other.rollback()
    finally:
        other.close()

    db_session.expire_all()
    assert db_session.get(Contract, contract.id).title == "Updated first"
