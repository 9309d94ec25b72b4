"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# myPOS IPC callback methods
LEGACY_SUCCESS_METHODS = frozenset({"IPCPurchaseNotify", "IPCPurchaseOK"})
LEGACY_FAILURE_METHODS = frozenset({"IPCPurchaseRollback", "IPCPurchaseCancel"})
LEGACY_CALLBACK_METHODS = LEGACY_SUCCESS_METHODS | LEGACY_FAILURE_METHODS

# IPC "Status" field: "0" means the request succeeded
LEGACY_STATUS_SUCCESS = "0"

# Stripe checkout session payment_status → whether money was captured
CHECKOUT_PAYMENT_STATUS_PAID = {
    "paid": True,
    "no_payment_required": True,
    "unpaid": False,
}
