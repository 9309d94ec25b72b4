"""
Payment-related settings using pydantic-settings v2 with nested env keys.

All keys live under the ``PAYMENT__`` prefix, e.g. ``PAYMENT__MYPOS__SID`` or
``PAYMENT__PRICING__AMOUNT_TOLERANCE__JPY``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class FatalConfigError(RuntimeError):
    """启动时发现的致命配置错误（缺少凭证、密钥无法加载等）"""


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    event_retention_days: int = 60
    ledger_backend: str = "database"  # database | redis


class PricingSettings(BaseModel):
    currency: str = "EUR"
    vat_rate: Decimal = Decimal("0.20")
    default_amount_tolerance: Decimal = Decimal("0.01")
    # 按币种覆盖容差（零小数位币种容差为 1 个单位）
    amount_tolerance: dict[str, Decimal] = Field(
        default_factory=lambda: {"JPY": Decimal("1"), "KRW": Decimal("1")}
    )

    def tolerance_for(self, currency: str) -> Decimal:
        return self.amount_tolerance.get(currency.upper(), self.default_amount_tolerance)


class OrderSettings(BaseModel):
    expiry_hours: int = 24
    mirror_enabled: bool = True


class MyPosSettings(BaseModel):
    enabled: bool = True
    sid: Optional[str] = None
    wallet_number: Optional[str] = None
    key_index: int = 1
    # PEM 文本或文件路径；环境变量中的 "\n" 会被还原为换行
    private_key: Optional[str] = None
    public_cert: Optional[str] = None
    is_production: bool = False
    language: str = "bg"
    version: str = "1.4"
    allowed_webhook_ips: list[str] | None = None
    skip_signature_verification: bool = False
    # 回调验签方案
    signature_hash: str = "sha1"
    signature_separator: str = ""
    signature_base64_message: bool = False

    @field_validator("private_key", "public_cert", mode="before")
    @classmethod
    def _unescape_newlines(cls, v):
        if isinstance(v, str):
            return v.replace("\\n", "\n")
        return v

    @property
    def endpoint(self) -> str:
        if self.is_production:
            return "https://www.mypos.eu/vmp/checkout"
        return "https://www.mypos.eu/vmp/checkout-test"


class StripeSettings(BaseModel):
    enabled: bool = True
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)

    mypos: MyPosSettings = Field(default_factory=MyPosSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    def missing_credentials(self) -> list[str]:
        missing: list[str] = []
        if self.mypos.enabled:
            for name in ("sid", "wallet_number", "private_key", "public_cert"):
                if not getattr(self.mypos, name):
                    missing.append(f"PAYMENT__MYPOS__{name.upper()}")
        if self.stripe.enabled:
            for name in ("secret_key", "webhook_secret"):
                if not getattr(self.stripe, name):
                    missing.append(f"PAYMENT__STRIPE__{name.upper()}")
        if self.webhook.ledger_backend not in {"database", "redis"}:
            missing.append("PAYMENT__WEBHOOK__LEDGER_BACKEND (database|redis)")
        return missing

    def ensure_configured(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise FatalConfigError("Missing payment configuration: " + ", ".join(missing))


payment_settings = PaymentSettings()
