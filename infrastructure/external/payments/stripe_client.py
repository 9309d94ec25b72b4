"""
Stripe Checkout Sessions adapter using the official stripe-python SDK.

Notes on SDK usage:
- The SDK is synchronous; calls run in a worker thread and are bounded by
  ``asyncio.wait_for`` with the configured total timeout.
- The API key is passed per request instead of mutating ``stripe.api_key``.
- Webhook verification uses ``stripe.Webhook.construct_event`` over the raw
  request bytes and the ``Stripe-Signature`` header.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

import stripe
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import (
    CheckoutSession,
    CheckoutSessionDetails,
    CheckoutSessionRequest,
    GatewayWebhookEvent,
)
from core.settings import PaymentSettings
from domain.pricing.money import from_minor_units, to_minor_units
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)


T = TypeVar("T")

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}
_TRANSIENT_STRIPE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, asyncio.TimeoutError)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """StripeObject 既支持下标也支持属性；展开前字段可能只是 ID 字符串"""
    if obj is None or isinstance(obj, str):
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        value = getattr(obj, key, default)
    return default if value is None else value


def _id_of(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    return _get(obj, "id")


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ):
        super().__init__(timeouts=timeouts, retry=retry)
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance_seconds

    @classmethod
    def from_settings(cls, settings: PaymentSettings) -> "StripeClient":
        return cls(
            secret_key=settings.stripe.secret_key or "",
            webhook_secret=settings.stripe.webhook_secret or "",
            tolerance_seconds=settings.webhook.tolerance_seconds,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        # Stripe expects amounts in the smallest currency unit
        if currency.upper() in ZERO_DECIMAL_CURRENCIES:
            return int(amount.to_integral_value())
        return to_minor_units(amount)

    @staticmethod
    def _from_minor(amount: int, currency: str) -> Decimal:
        if currency.upper() in ZERO_DECIMAL_CURRENCIES:
            return Decimal(amount)
        return from_minor_units(amount)

    @staticmethod
    def idempotency_key_for(order_id: str, amount_minor: int, currency: str) -> str:
        raw = f"checkout:{order_id}:{amount_minor}:{currency.lower()}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """在线程中执行同步 SDK 调用，总耗时受 timeouts.total 限制"""
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args, **kwargs),
            timeout=self._timeouts_cfg["total"],
        )

    async def _call_with_retry(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(_TRANSIENT_STRIPE_ERRORS),
            reraise=True,
        ):
            with attempt:
                return await self._call(fn, *args, **kwargs)
        raise AssertionError("unreachable")

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        amount_minor = self._to_minor(req.amount, req.currency)
        params: dict[str, Any] = {
            "ui_mode": "custom",
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": req.currency.lower(),
                        "product_data": {"name": req.description or f"Order {req.order_id}"},
                        "unit_amount": amount_minor,
                    },
                    "quantity": 1,
                }
            ],
            "metadata": {"orderId": req.order_id, "orderType": req.order_type},
            "return_url": req.return_url,
        }
        if req.customer_email:
            params["customer_email"] = req.customer_email

        try:
            session = await self._call_with_retry(
                stripe.checkout.Session.create,
                api_key=self._secret_key,
                idempotency_key=req.idempotency_key
                or self.idempotency_key_for(req.order_id, amount_minor, req.currency),
                **params,
            )
        except _TRANSIENT_STRIPE_ERRORS as exc:
            self._log("checkout_session_unavailable", order_id=req.order_id, error=str(exc))
            raise PaymentRecoverableError(
                "Payment gateway temporarily unavailable",
                provider=self.provider,
                details={"order_id": req.order_id},
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                str(exc),
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
                details={"order_id": req.order_id},
            ) from exc

        client_secret = _get(session, "client_secret")
        if not client_secret:
            raise PaymentProviderError("Checkout session has no client_secret", provider=self.provider)
        self._log("checkout_session_created", order_id=req.order_id, session_id=_get(session, "id"))
        return CheckoutSession(session_id=str(_get(session, "id")), client_secret=str(client_secret))

    async def retrieve_session(self, session_id: str) -> CheckoutSessionDetails:
        """只在回调应答路径上调用：单次请求，不重试，由网关重投兜底"""
        try:
            session = await self._call(
                stripe.checkout.Session.retrieve,
                session_id,
                expand=["payment_intent.latest_charge"],
                api_key=self._secret_key,
            )
        except _TRANSIENT_STRIPE_ERRORS as exc:
            raise PaymentRecoverableError(
                "Payment gateway temporarily unavailable",
                provider=self.provider,
                details={"session_id": session_id},
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc), provider=self.provider, details={"session_id": session_id}) from exc

        currency = str(_get(session, "currency", "eur")).upper()
        payment_intent = _get(session, "payment_intent")
        charge = _get(payment_intent, "latest_charge")
        metadata = _get(session, "metadata", {}) or {}
        return CheckoutSessionDetails(
            session_id=session_id,
            amount_total=self._from_minor(int(_get(session, "amount_total", 0)), currency),
            currency=currency,
            payment_status=_get(session, "payment_status"),
            metadata={str(k): str(v) for k, v in dict(metadata).items()},
            payment_intent_id=_id_of(payment_intent),
            receipt_url=_get(charge, "receipt_url"),
            transaction_ref=_id_of(payment_intent),
        )

    def construct_webhook_event(self, raw_body: bytes, signature_header: str) -> GatewayWebhookEvent:
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing PAYMENT__STRIPE__WEBHOOK_SECRET", provider=self.provider)
        if not signature_header:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=raw_body,
                sig_header=signature_header,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc

        # 签名已校验，原始报文可信；直接解析 JSON 以得到普通 dict
        body = json.loads(raw_body)
        return GatewayWebhookEvent(
            id=str(_get(event, "id")),
            type=str(_get(event, "type")),
            provider=self.provider,
            data=body.get("data", {}) or {},
        )
