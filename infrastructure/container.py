"""
服务装配

FastAPI lifespan 与 Celery 任务共用：网关、账本、镜像与应用服务在这里各创建一次。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from application.ports.payment_gateway import CheckoutGateway, LegacyGateway
from application.services.mirror_sync import MirrorSync
from application.services.order_events import OrderEventPublisher
from application.services.order_admin_service import OrderAdminService
from application.services.order_service import OrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from application.services.retention_service import RetentionService
from core.config import Settings, settings as app_settings
from core.logging_config import get_logger
from core.settings import FatalConfigError, PaymentSettings, payment_settings
from domain.pricing.catalog import PriceCatalog
from domain.pricing.validator import AmountTolerance, PriceValidator
from domain.webhook_event.repository import WebhookEventLedger
from infrastructure.database import build_engine, build_session_factory
from infrastructure.external.cache import RedisClient, create_redis_client
from infrastructure.external.payments import build_checkout_gateway, build_legacy_gateway
from infrastructure.repositories.order_mirror_repository import SQLAlchemyOrderMirror
from infrastructure.repositories.redis_webhook_ledger import RedisWebhookEventLedger
from infrastructure.unit_of_work import sqlalchemy_uow_factory


logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    session_factory: Callable[[], AsyncSession]
    validator: PriceValidator
    order_service: OrderApplicationService
    reconciliation_service: ReconciliationService
    admin_service: OrderAdminService
    retention_service: RetentionService
    legacy_gateway: Optional[LegacyGateway] = None
    checkout_gateway: Optional[CheckoutGateway] = None
    redis: Optional[RedisClient] = None

    async def aclose(self) -> None:
        for gateway in (self.legacy_gateway, self.checkout_gateway):
            if gateway is not None:
                await gateway.aclose()
        if self.redis is not None:
            await self.redis.close()
        await self.engine.dispose()


def build_price_validator(cfg: PaymentSettings) -> PriceValidator:
    catalog = PriceCatalog(vat_rate=cfg.pricing.vat_rate, currency=cfg.pricing.currency)
    tolerance = AmountTolerance(cfg.pricing.default_amount_tolerance, cfg.pricing.amount_tolerance)
    return PriceValidator(catalog, tolerance)


async def build_container(
    app_cfg: Optional[Settings] = None,
    pay_cfg: Optional[PaymentSettings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
) -> ServiceContainer:
    """
    创建全部服务

    Raises:
        FatalConfigError: 已启用的网关缺少凭证、密钥无法加载或账本后端不可用
    """
    app_cfg = app_cfg or app_settings
    pay_cfg = pay_cfg or payment_settings
    pay_cfg.ensure_configured()

    engine = engine or build_engine(app_cfg.database.url, echo=app_cfg.database.echo)
    session_factory = build_session_factory(engine)
    retention_days = pay_cfg.webhook.event_retention_days
    uow_factory = sqlalchemy_uow_factory(session_factory, event_retention_days=retention_days)

    legacy = build_legacy_gateway(pay_cfg)
    checkout = build_checkout_gateway(pay_cfg)

    redis: Optional[RedisClient] = None
    ledger: Optional[WebhookEventLedger] = None
    if pay_cfg.webhook.ledger_backend == "redis":
        if not app_cfg.redis.url:
            raise FatalConfigError("PAYMENT__WEBHOOK__LEDGER_BACKEND=redis requires REDIS__URL")
        redis = await create_redis_client(
            app_cfg.redis.url,
            namespace=app_cfg.redis.namespace,
            max_connections=app_cfg.redis.max_connections,
        )
        ledger = RedisWebhookEventLedger(redis, retention_days=retention_days)

    mirror = MirrorSync(SQLAlchemyOrderMirror(session_factory) if pay_cfg.orders.mirror_enabled else None)
    validator = build_price_validator(pay_cfg)
    events = OrderEventPublisher()

    container = ServiceContainer(
        engine=engine,
        session_factory=session_factory,
        validator=validator,
        order_service=OrderApplicationService(
            uow_factory,
            validator,
            legacy_gateway=legacy,
            checkout_gateway=checkout,
            mirror=mirror,
            frontend_url=app_cfg.FRONTEND_URL,
            backend_url=app_cfg.BACKEND_URL,
            order_expiry_hours=pay_cfg.orders.expiry_hours,
        ),
        reconciliation_service=ReconciliationService(
            uow_factory,
            validator,
            legacy_gateway=legacy,
            checkout_gateway=checkout,
            ledger=ledger,
            mirror=mirror,
            legacy_allowed_ips=pay_cfg.mypos.allowed_webhook_ips,
            checkout_allowed_ips=pay_cfg.webhook.ip_allowlist,
            events=events,
        ),
        admin_service=OrderAdminService(uow_factory, legacy_gateway=legacy, mirror=mirror, events=events),
        retention_service=RetentionService(uow_factory, ledger=ledger),
        legacy_gateway=legacy,
        checkout_gateway=checkout,
        redis=redis,
    )
    logger.info(
        "services_initialized",
        legacy_gateway=bool(legacy),
        checkout_gateway=bool(checkout),
        ledger_backend=pay_cfg.webhook.ledger_backend,
        mirror_enabled=mirror.enabled,
    )
    return container
