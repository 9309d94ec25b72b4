"""
Payment DTOs (Pydantic v2) used at gateway boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field, field_validator
from pydantic.types import condecimal

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "BGN", "CHF", "PLN", "RON", "JPY", "KRW", "CAD",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class LegacyCartLine(BaseModel):
    article: str
    quantity: int = 1
    price: Decimal
    currency: str = "EUR"

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity


class LegacyCustomer(BaseModel):
    email: str = "noemail@example.com"
    first_name: str = "Customer"
    last_name: str = "User"
    phone: str = ""
    country: str = "BGR"
    city: str = ""
    zip_code: str = ""
    address: str = ""


class LegacyPurchaseRequest(BaseModel):
    order_id: str
    amount: condecimal(ge=0)  # type: ignore[valid-type]
    currency: str = Field(default="EUR")
    cart: list[LegacyCartLine]
    customer: LegacyCustomer = Field(default_factory=LegacyCustomer)
    url_ok: str
    url_cancel: str
    url_notify: str
    note: Optional[str] = None
    delivery: Decimal = Decimal("0")

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class LegacyPaymentForm(BaseModel):
    """已签名的表单：fields 的顺序即签名顺序，Signature 在最后"""
    endpoint: str
    fields: list[tuple[str, str]]

    def as_dict(self) -> dict[str, str]:
        return dict(self.fields)


class LegacyTransactionResult(BaseModel):
    order_id: str
    method: str
    success: bool
    status_code: Optional[str] = None
    status_message: Optional[str] = None
    transaction_ref: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class CheckoutSessionRequest(BaseModel):
    order_id: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="EUR")
    customer_email: Optional[str] = None
    description: Optional[str] = None
    return_url: str
    order_type: Literal["order", "trademark"] = "order"
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class CheckoutSession(BaseModel):
    session_id: str
    client_secret: str


class CheckoutSessionDetails(BaseModel):
    session_id: str
    amount_total: Decimal
    currency: str
    payment_status: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    payment_intent_id: Optional[str] = None
    receipt_url: Optional[str] = None
    transaction_ref: Optional[str] = None


class GatewayWebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any] = Field(default_factory=dict)
