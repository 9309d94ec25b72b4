"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, TrademarkOrderModel, OrderDocumentModel
from .webhook_event import WebhookEventModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "TrademarkOrderModel",
    "OrderDocumentModel",
    "WebhookEventModel",
]
