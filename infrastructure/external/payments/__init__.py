"""
Factories for the payment gateway clients.

Clients are built once at application startup and injected into services.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import CheckoutGateway, LegacyGateway
from core.settings import PaymentSettings, payment_settings


def build_legacy_gateway(settings: Optional[PaymentSettings] = None) -> Optional[LegacyGateway]:
    cfg = settings or payment_settings
    if not cfg.mypos.enabled:
        return None
    from .mypos_client import MyPosClient
    return MyPosClient.from_settings(cfg.mypos, cfg)


def build_checkout_gateway(settings: Optional[PaymentSettings] = None) -> Optional[CheckoutGateway]:
    cfg = settings or payment_settings
    if not cfg.stripe.enabled:
        return None
    from .stripe_client import StripeClient
    return StripeClient.from_settings(cfg)
