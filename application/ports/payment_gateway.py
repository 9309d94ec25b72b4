"""
Payment gateway ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, Sequence, runtime_checkable

from application.dtos.payments import (
    CheckoutSession,
    CheckoutSessionDetails,
    CheckoutSessionRequest,
    GatewayWebhookEvent,
    LegacyPaymentForm,
    LegacyPurchaseRequest,
    LegacyTransactionResult,
)


@runtime_checkable
class LegacyGateway(Protocol):
    """RSA 签名的 IPC 表单网关（myPOS Checkout）"""

    provider: str
    sid: str

    def build_purchase_form(self, req: LegacyPurchaseRequest) -> LegacyPaymentForm: ...

    def verify_callback(self, fields: Sequence[tuple[str, str]]) -> bool: ...

    async def get_transaction_status(self, order_id: str) -> LegacyTransactionResult: ...

    async def refund(
        self, order_id: str, transaction_ref: str, amount: Decimal, currency: str
    ) -> LegacyTransactionResult: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class CheckoutGateway(Protocol):
    """Checkout Session + HMAC webhook 网关（Stripe）"""

    provider: str

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession: ...

    async def retrieve_session(self, session_id: str) -> CheckoutSessionDetails: ...

    def construct_webhook_event(self, raw_body: bytes, signature_header: str) -> GatewayWebhookEvent: ...

    async def aclose(self) -> None: ...
