"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment
os.environ.setdefault("DATABASE_URL", "sqlite:///./storefront_payments_test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test-key-secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test-webhook-secret")

from app.main import app  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import Base, Order, OrderStatus, User  # noqa: E402
from app.models.api_key import ApiKey, ApiScope  # noqa: E402
from app.services.psp_razorpay import (  # noqa: E402
    GatewayOrder,
    GatewayRefund,
    PaymentDetails,
    RazorpayGateway,
    get_gateway,
    to_minor_units,
)
from app.utils.apikey import hash_key  # noqa: E402
from app.utils.errors import GatewayError  # noqa: E402

DB_PATH = Path("./storefront_payments_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.attributes["sqlalchemy.url"] = os.environ["DATABASE_URL"]
    command.upgrade(cfg, "head")


# --- (1) Reset the file database at session start
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                                   future=True, expire_on_commit=False)

# --- (2) Build the schema through Alembic only
_run_migrations()


class FakeGateway(RazorpayGateway):
    """Gateway double: real signature checks, scripted network calls."""

    def __init__(self) -> None:
        super().__init__(get_settings().gateway_settings(), client=object())
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.payment_status = "captured"
        self.payment_method = "card"
        self.payment_email = "buyer@example.com"
        self.payment_contact = "+919876543210"
        self.fail_with: GatewayError | None = None
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{uuid4().hex[:10]}{self._counter}"

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def create_gateway_order(self, amount, currency, receipt, notes=None) -> GatewayOrder:
        self.calls.append(("create_gateway_order", (amount, currency, receipt)))
        self._maybe_fail()
        return GatewayOrder(
            gateway_order_id=self._next_id("order"),
            amount_minor_units=to_minor_units(amount),
            currency=currency,
            status="created",
        )

    def fetch_payment_details(self, gateway_payment_id: str) -> PaymentDetails:
        self.calls.append(("fetch_payment_details", (gateway_payment_id,)))
        self._maybe_fail()
        return PaymentDetails.from_entity(
            {
                "id": gateway_payment_id,
                "status": self.payment_status,
                "method": self.payment_method,
                "email": self.payment_email,
                "contact": self.payment_contact,
                "bank": "HDFC",
            }
        )

    def capture_payment(self, gateway_payment_id: str, amount, currency) -> PaymentDetails:
        self.calls.append(("capture_payment", (gateway_payment_id, amount, currency)))
        self._maybe_fail()
        return PaymentDetails.from_entity(
            {"id": gateway_payment_id, "status": "captured", "method": self.payment_method}
        )

    def create_refund(self, gateway_payment_id: str, amount, notes=None) -> GatewayRefund:
        self.calls.append(("create_refund", (gateway_payment_id, amount)))
        self._maybe_fail()
        return GatewayRefund(
            refund_id=self._next_id("rfnd"),
            status="processed",
            amount_minor_units=to_minor_units(amount) if amount is not None else None,
        )

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for called, args in self.calls if called == name]


@pytest.fixture
def db_session() -> Iterator[Session]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(delete(table))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(autouse=True)
def override_dependencies(db_session: Session, gateway: FakeGateway) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(name: str = "customer", phone: str | None = None) -> User:
        user = User(name=name, email=f"{name}-{uuid4().hex[:8]}@example.com", phone=phone)
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_order(db_session: Session) -> Callable[..., Order]:
    def _factory(user: User, total: str = "1000.00") -> Order:
        order = Order(user_id=user.id, total_amount=Decimal(total), status=OrderStatus.PENDING)
        db_session.add(order)
        db_session.commit()
        return order

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., ApiKey]:
    def _factory(
        key: str,
        scope: ApiScope = ApiScope.customer,
        user: User | None = None,
        is_active: bool = True,
    ) -> ApiKey:
        api_key = ApiKey(
            name=f"{scope.value}-{uuid4().hex}",
            prefix="test_" + scope.value,
            key_hash=hash_key(key),
            scope=scope,
            is_active=is_active,
            user_id=user.id if user is not None else None,
        )
        db_session.add(api_key)
        db_session.commit()
        return api_key

    return _factory


@pytest.fixture
def customer(make_user: Callable[..., User]) -> User:
    return make_user("customer", phone="+919876543210")


@pytest.fixture
def customer_headers(make_api_key: Callable[..., ApiKey], customer: User) -> dict[str, str]:
    token = f"customer-{uuid4().hex}"
    make_api_key(token, scope=ApiScope.customer, user=customer)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_customer_headers(
    make_api_key: Callable[..., ApiKey],
) -> Callable[[User], dict[str, str]]:
    def _factory(user: User) -> dict[str, str]:
        token = f"customer-{uuid4().hex}"
        make_api_key(token, scope=ApiScope.customer, user=user)
        return {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def admin_user(make_user: Callable[..., User]) -> User:
    return make_user("admin")


@pytest.fixture
def admin_headers(make_api_key: Callable[..., ApiKey], admin_user: User) -> dict[str, str]:
    token = f"admin-{uuid4().hex}"
    make_api_key(token, scope=ApiScope.admin, user=admin_user)
    return {"Authorization": f"Bearer {token}"}
