"""
Order DTOs (Pydantic v2) used at the HTTP boundary.

The public API speaks camelCase; Python code uses snake_case.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.common.exceptions import DomainValidationException
from domain.pricing.trademark import validate_mark_type

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^[\d\+\-\s]{7,20}$"
EIK_PATTERN = r"^\d{9,13}$"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemIn(ApiModel):
    id: str = Field(min_length=1)
    type: Literal["document", "package"]
    price: Optional[Decimal] = None
    name: Optional[str] = None
    description: Optional[str] = None
    form_data: dict[str, Any] = Field(default_factory=dict)
    document_ids: list[str] = Field(default_factory=list)


class CreateOrderRequest(ApiModel):
    items: list[OrderItemIn] = Field(min_length=1)
    user_id: Optional[int] = None
    customer_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class LegacyPaymentParams(ApiModel):
    endpoint: str
    fields: dict[str, str]


class CreateLegacyOrderResponse(ApiModel):
    order_id: str
    amount: Decimal
    vat: Decimal
    total: Decimal
    currency: str
    payment_params: LegacyPaymentParams


class CreateCheckoutOrderResponse(ApiModel):
    order_id: str
    amount: Decimal
    vat: Decimal
    total: Decimal
    currency: str
    client_secret: str


class CheckoutSessionForOrderRequest(ApiModel):
    order_id: str = Field(min_length=1)
    order_type: Literal["order", "trademark"]


class CheckoutSessionResponse(ApiModel):
    order_id: str
    client_secret: str


class PaymentStatusResponse(ApiModel):
    order_id: str
    status: str
    paid: bool
    amount: Decimal
    currency: str
    paid_at: Optional[datetime] = None


class CatalogEntryOut(ApiModel):
    id: str
    name: str
    price: Decimal
    documents: list[str] = Field(default_factory=list)


class PricesResponse(ApiModel):
    documents: list[CatalogEntryOut]
    packages: list[CatalogEntryOut]
    vat_rate: Decimal
    currency: str


class PriorityClaimIn(ApiModel):
    country: str = Field(min_length=2)
    application_date: str = Field(min_length=1)
    application_number: str = Field(min_length=1)


class TrademarkCustomerIn(ApiModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    phone: str = Field(pattern=PHONE_PATTERN)
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    is_company: bool = False
    company_name: Optional[str] = None
    company_eik: Optional[str] = Field(default=None, pattern=EIK_PATTERN)
    company_address: Optional[str] = None

    @model_validator(mode="after")
    def _company_fields_required(self):
        if self.is_company:
            missing = [
                name for name in ("company_name", "company_eik", "company_address")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Company applicants require: {', '.join(to_camel(m) for m in missing)}")
        return self


class TrademarkIn(ApiModel):
    mark_type: str
    mark_text: Optional[str] = None
    goods_and_services: str = Field(min_length=1)
    nice_classes: list[int] = Field(min_length=1)
    is_collective: bool = False
    is_certified: bool = False
    priority_claims: list[PriorityClaimIn] = Field(default_factory=list)

    @field_validator("mark_type")
    @classmethod
    def _valid_mark_type(cls, v: str) -> str:
        try:
            return validate_mark_type(v)
        except DomainValidationException as exc:
            raise ValueError(exc.message) from exc

    @field_validator("nice_classes")
    @classmethod
    def _valid_classes(cls, v: list[int]) -> list[int]:
        if any(c < 1 or c > 45 for c in v):
            raise ValueError("Nice classes must be between 1 and 45")
        return v


class CreateTrademarkOrderRequest(ApiModel):
    customer: TrademarkCustomerIn
    trademark: TrademarkIn
    user_id: Optional[int] = None


class TrademarkPricingOut(ApiModel):
    subtotal: Decimal
    vat: Decimal
    total: Decimal
    currency: str


class CreateTrademarkOrderResponse(ApiModel):
    order_id: str
    pricing: TrademarkPricingOut
    client_secret: str


class AdminStatusUpdateRequest(ApiModel):
    status: str = Field(min_length=1)


class AdminStatusUpdateResponse(ApiModel):
    order_id: str
    previous_status: str
    status: str
    changed: bool


class RefundRequestIn(ApiModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)


class GatewayOperationResponse(ApiModel):
    order_id: str
    method: str
    success: bool
    status_code: Optional[str] = None
    status_message: Optional[str] = None
    transaction_ref: Optional[str] = None
