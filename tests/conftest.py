"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker

# --- Default env for the test run
os.environ.setdefault("DATABASE_URL", "sqlite:///./tradeworks_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from app.main import app  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import (  # noqa: E402
    ApiKey,
    Base,
    Contract,
    ContractStatus,
    Milestone,
    MilestoneStatus,
    PaymentGateway,
    User,
    UserRole,
)
from app.services.gateways import GatewaySession, StripeGateway, WiPayGateway, close_gateways  # noqa: E402
from app.utils.apikey import hash_key  # noqa: E402
from app.utils.errors import GatewayUnavailable  # noqa: E402
from app.utils.time import utcnow  # noqa: E402

DB_PATH = Path("./tradeworks_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Reset the file database at session start
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False, "timeout": 15},
    future=True,
)
TestingSessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False
)

# --- (2) Build the schema through Alembic only
_run_migrations()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Session shared by the test body and the API; rows are wiped afterwards.

    Services commit their own units of work, so isolation comes from clearing
    every table once the test ends rather than from an outer transaction.
    """

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(delete(table))


@pytest.fixture(autouse=True)
def reset_gateways() -> Iterator[None]:
    yield
    close_gateways()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., tuple[User, dict[str, str]]]:
    """Factory creating a user with an API key; returns the user and auth headers."""

    def _factory(role: UserRole = UserRole.CLIENT, *, is_active: bool = True) -> tuple[User, dict[str, str]]:
        suffix = uuid4().hex[:8]
        user = User(
            username=f"{role.value.lower()}-{suffix}",
            email=f"{role.value.lower()}-{suffix}@example.com",
            full_name=f"{role.value.title()} {suffix}",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()

        token = f"tw_test.{uuid4().hex}"
        db_session.add(
            ApiKey(
                name=f"key-{suffix}",
                prefix="tw_test",
                key_hash=hash_key(token),
                user_id=user.id,
                is_active=True,
            )
        )
        db_session.commit()
        return user, {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def parties(make_user) -> dict[str, tuple[User, dict[str, str]]]:
    """A client, a provider and an unrelated outsider."""

    return {
        "client": make_user(UserRole.CLIENT),
        "provider": make_user(UserRole.PROVIDER),
        "outsider": make_user(UserRole.CLIENT),
    }


@pytest.fixture
def make_contract(db_session: Session) -> Callable[..., Contract]:
    """Insert a contract directly in the given state, with optional milestones."""

    def _factory(
        client_user: User,
        provider_user: User,
        *,
        status: ContractStatus = ContractStatus.SIGNED,
        milestones: tuple[int, ...] = (),
        milestone_status: MilestoneStatus = MilestoneStatus.PENDING,
    ) -> Contract:
        signed = status in {ContractStatus.SIGNED, ContractStatus.COMPLETED}
        contract = Contract(
            client_id=client_user.id,
            provider_id=provider_user.id,
            title="Kitchen renovation",
            description="Tiles, cabinets and plumbing",
            total_amount=sum(milestones) or None,
            status=status,
            signed_by_client=signed,
            signed_by_provider=signed,
            signed_at=utcnow() if signed else None,
        )
        db_session.add(contract)
        db_session.flush()
        for index, amount in enumerate(milestones, start=1):
            db_session.add(
                Milestone(
                    contract_id=contract.id,
                    title=f"Phase {index}",
                    amount=amount,
                    status=milestone_status,
                )
            )
        db_session.commit()
        db_session.refresh(contract)
        return contract

    return _factory


class FakeGateway:
    """In-memory stand-in for a gateway adapter."""

    def __init__(self, name: PaymentGateway) -> None:
        self.name = name
        self.fail_open = False
        self.fail_poll = False
        self.statuses: dict[str, str] = {}
        self.opened: list[int] = []
        self._normalizer = StripeGateway if name == PaymentGateway.STRIPE else WiPayGateway

    def open_session(self, payment, payer, description) -> GatewaySession:
        if self.fail_open:
            raise GatewayUnavailable("Gateway timed out.", details={"gateway": self.name.value})
        self.opened.append(payment.id)
        reference = f"{self.name.value.lower()}_ref_{payment.id}"
        if self.name == PaymentGateway.STRIPE:
            return GatewaySession(external_reference=reference, client_secret=f"{reference}_secret")
        return GatewaySession(
            external_reference=reference,
            redirect_url=f"https://sandbox.wipayfinancial.com/checkout/{reference}",
        )

    def fetch_status(self, reference: str) -> str:
        if self.fail_poll:
            raise GatewayUnavailable("Gateway timed out.", details={"gateway": self.name.value})
        return self.statuses.get(reference, "processing")

    def normalize_status(self, reported: str):
        return self._normalizer.normalize_status(reported)


@pytest.fixture
def fake_gateways(monkeypatch) -> dict[PaymentGateway, FakeGateway]:
    registry = {name: FakeGateway(name) for name in PaymentGateway}

    def _get_gateway(name, settings=None):
        return registry[name]

    monkeypatch.setattr("app.services.payments.get_gateway", _get_gateway)
    monkeypatch.setattr("app.services.gateways.get_gateway", _get_gateway)
    return registry
