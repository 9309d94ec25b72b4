"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import copy
import json
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

import pytest
import pytest_asyncio

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
# 网关凭证由各测试显式注入，这里关闭以免 settings 校验失败
os.environ.setdefault("PAYMENT__MYPOS__ENABLED", "false")
os.environ.setdefault("PAYMENT__STRIPE__ENABLED", "false")

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from application.dtos.payments import (  # noqa: E402
    CheckoutSession,
    CheckoutSessionDetails,
    CheckoutSessionRequest,
    GatewayWebhookEvent,
    LegacyTransactionResult,
)
from application.services.order_events import OrderEventPublisher  # noqa: E402
from domain.common.exceptions import DuplicateOrderException  # noqa: E402
from domain.common.unit_of_work import AbstractUnitOfWork  # noqa: E402
from domain.order.repository import OrderRepository, TrademarkOrderRepository  # noqa: E402
from domain.pricing.catalog import PriceCatalog  # noqa: E402
from domain.pricing.validator import PriceValidator  # noqa: E402
from domain.webhook_event.repository import WebhookEventLedger  # noqa: E402
from infrastructure.external.payments.exceptions import PaymentSignatureError  # noqa: E402
from infrastructure.external.payments.mypos_client import MyPosClient  # noqa: E402
from infrastructure.external.payments.signing import RsaSigner, RsaVerifier  # noqa: E402
from infrastructure.database import build_engine, build_session_factory, create_tables  # noqa: E402
from infrastructure.unit_of_work import sqlalchemy_uow_factory  # noqa: E402


# ---------------------------------------------------------------------------
# RSA key material (generated once per session)
# ---------------------------------------------------------------------------

def _private_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _self_signed_cert_pem(key: rsa.RSAPrivateKey) -> bytes:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ipc-test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def merchant_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def gateway_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def merchant_private_pem(merchant_key) -> bytes:
    return _private_pem(merchant_key)


@pytest.fixture(scope="session")
def gateway_private_pem(gateway_key) -> bytes:
    return _private_pem(gateway_key)


@pytest.fixture(scope="session")
def gateway_cert_pem(gateway_key) -> bytes:
    return _self_signed_cert_pem(gateway_key)


@pytest.fixture(scope="session")
def gateway_signer(gateway_private_pem) -> RsaSigner:
    """模拟网关一侧：用网关私钥给回调签名"""
    return RsaSigner(gateway_private_pem)


@pytest.fixture
def make_mypos_client(merchant_private_pem, gateway_cert_pem):
    def _make(**kwargs: Any) -> MyPosClient:
        params = dict(
            sid="000000000000010",
            wallet_number="61938166610",
            key_index=1,
            signer=RsaSigner(merchant_private_pem),
            verifier=RsaVerifier(gateway_cert_pem),
            endpoint="https://www.mypos.eu/vmp/checkout-test",
        )
        params.update(kwargs)
        return MyPosClient(**params)

    return _make


# ---------------------------------------------------------------------------
# In-memory persistence
# ---------------------------------------------------------------------------

class InMemoryOrderRepository(OrderRepository, TrademarkOrderRepository):
    """按 order_id 存储实体副本，模拟数据库读写语义"""

    def __init__(self) -> None:
        self.rows: dict[str, Any] = {}
        self._next_id = 1

    async def create(self, order):
        if order.order_id in self.rows:
            raise DuplicateOrderException(order.order_id)
        order.id = self._next_id
        self._next_id += 1
        row = copy.deepcopy(order)
        # 事件不落库
        row.events = []
        self.rows[order.order_id] = row
        return copy.deepcopy(order)

    async def get_by_id(self, id: int):
        for row in self.rows.values():
            if row.id == id:
                return copy.deepcopy(row)
        return None

    async def get_by_order_id(self, order_id: str):
        row = self.rows.get(order_id)
        return copy.deepcopy(row) if row is not None else None

    async def update(self, order):
        if order.order_id not in self.rows:
            raise ValueError(f"Order {order.order_id} not found")
        order.events = []
        self.rows[order.order_id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    async def update_by_order_id(self, order_id: str, **fields: Any):
        row = self.rows.get(order_id)
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, copy.deepcopy(value))
        return copy.deepcopy(row)

    async def delete_stale(self, statuses: Iterable, before: datetime) -> int:
        values = {getattr(s, "value", s) for s in statuses}
        stale = [
            key for key, row in self.rows.items()
            if row.status.value in values and getattr(row, "expires_at", None) and row.expires_at < before
        ]
        for key in stale:
            del self.rows[key]
        return len(stale)


class InMemoryLedger(WebhookEventLedger):
    def __init__(self, *, fail_with: Optional[Exception] = None) -> None:
        self.events: dict[str, tuple[str, str]] = {}
        self.fail_with = fail_with

    async def try_insert(self, event_id: str, event_type: str, provider: str = "stripe") -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        if event_id in self.events:
            return False
        self.events[event_id] = (event_type, provider)
        return True

    async def purge_expired(self, now: datetime) -> int:
        return 0


class InMemoryStore:
    def __init__(self) -> None:
        self.orders = InMemoryOrderRepository()
        self.trademark_orders = InMemoryOrderRepository()
        self.ledger = InMemoryLedger()
        self.commits = 0
        self.rollbacks = 0


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store
        self.order_repository = store.orders
        self.trademark_order_repository = store.trademark_orders
        self.webhook_event_ledger = store.ledger

    async def commit(self) -> None:
        self._committed = True
        self._store.commits += 1

    async def rollback(self) -> None:
        self._store.rollbacks += 1


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def _factory(*, readonly: bool = False) -> FakeUnitOfWork:
        return FakeUnitOfWork(store, readonly=readonly)

    return _factory


@pytest.fixture
def validator() -> PriceValidator:
    return PriceValidator(PriceCatalog())


# ---------------------------------------------------------------------------
# Gateway / mirror stubs
# ---------------------------------------------------------------------------

class StubCheckoutGateway:
    """Checkout 网关替身：签名头为 "valid" 即视为验签通过，事件体直接取 JSON"""

    provider = "stripe"

    def __init__(self) -> None:
        self.sessions: dict[str, CheckoutSessionDetails] = {}
        self.created: list[CheckoutSessionRequest] = []
        self.retrieve_calls = 0

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        self.created.append(req)
        session_id = f"cs_test_{len(self.created)}"
        self.sessions[session_id] = CheckoutSessionDetails(
            session_id=session_id,
            amount_total=Decimal(req.amount),
            currency=req.currency,
            payment_status="paid",
            metadata={"orderId": req.order_id, "orderType": req.order_type},
            payment_intent_id=f"pi_{len(self.created)}",
            receipt_url=f"https://pay.stripe.com/receipts/{len(self.created)}",
            transaction_ref=f"pi_{len(self.created)}",
        )
        return CheckoutSession(session_id=session_id, client_secret=f"{session_id}_secret_abc")

    async def retrieve_session(self, session_id: str) -> CheckoutSessionDetails:
        self.retrieve_calls += 1
        return self.sessions[session_id]

    def construct_webhook_event(self, raw_body: bytes, signature_header: str) -> GatewayWebhookEvent:
        if signature_header != "valid":
            raise PaymentSignatureError("No signatures found matching the expected signature", provider=self.provider)
        body = json.loads(raw_body)
        return GatewayWebhookEvent(id=body["id"], type=body["type"], provider=self.provider, data=body.get("data", {}))

    async def aclose(self) -> None:
        return None


class StubLegacyGateway:
    """只用于管理接口（查询/退款）的旧网关替身"""

    provider = "mypos"
    sid = "000000000000010"

    def __init__(self, *, refund_status: str = "0") -> None:
        self.refunds: list[tuple[str, str, Decimal, str]] = []
        self.status_queries: list[str] = []
        self.refund_status = refund_status

    def build_purchase_form(self, req):
        raise NotImplementedError

    def verify_callback(self, fields) -> bool:
        return True

    async def get_transaction_status(self, order_id: str) -> LegacyTransactionResult:
        self.status_queries.append(order_id)
        return LegacyTransactionResult(
            order_id=order_id,
            method="IPCGetTxnStatus",
            success=True,
            status_code="0",
            status_message="Success",
            transaction_ref="TRN-1",
        )

    async def refund(self, order_id: str, transaction_ref: str, amount: Decimal, currency: str):
        self.refunds.append((order_id, transaction_ref, amount, currency))
        return LegacyTransactionResult(
            order_id=order_id,
            method="IPCRefund",
            success=self.refund_status == "0",
            status_code=self.refund_status,
            transaction_ref=transaction_ref,
        )

    async def aclose(self) -> None:
        return None


class RecordingEventPublisher(OrderEventPublisher):
    """记录提交后分发的领域事件"""

    def __init__(self) -> None:
        self.published = []

    def dispatch(self, event) -> None:
        self.published.append(event)
        super().dispatch(event)

    def types(self) -> list[str]:
        return [type(e).__name__ for e in self.published]


class RecordingMirror:
    def __init__(self, *, fail: bool = False) -> None:
        self.records = []
        self.fail = fail

    async def upsert(self, record) -> None:
        if self.fail:
            raise RuntimeError("mirror store unavailable")
        self.records.append(record)


@pytest.fixture
def checkout_gateway() -> StubCheckoutGateway:
    return StubCheckoutGateway()


@pytest.fixture
def legacy_stub() -> StubLegacyGateway:
    return StubLegacyGateway()


@pytest.fixture
def mirror_store() -> RecordingMirror:
    return RecordingMirror()


@pytest.fixture
def failing_mirror() -> RecordingMirror:
    return RecordingMirror(fail=True)


@pytest.fixture
def event_sink() -> RecordingEventPublisher:
    return RecordingEventPublisher()


# ---------------------------------------------------------------------------
# SQLite (aiosqlite) database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def sql_uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory, event_retention_days=60)


@pytest.fixture
def memory_ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def broken_ledger() -> InMemoryLedger:
    return InMemoryLedger(fail_with=ConnectionError("ledger unavailable"))
