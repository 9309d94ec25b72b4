"""
Exceptions raised by the gateway adapters, mapped to BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentGatewayError(BusinessException):
    code_value: int = PaymentCode.PROVIDER_ERROR
    error_type_name: str = "PaymentGatewayError"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider}
        if provider_code is not None:
            full_details["provider_code"] = provider_code
        if details:
            full_details.update(details)
        super().__init__(
            code=self.code_value,
            message=message,
            error_type=self.error_type_name,
            details=full_details,
        )
        self.provider = provider


class PaymentProviderError(PaymentGatewayError):
    """网关返回了明确的业务失败（不可重试）"""
    code_value = PaymentCode.PROVIDER_ERROR
    error_type_name = "PaymentProviderError"


class PaymentRecoverableError(PaymentGatewayError):
    """超时、连接失败或 5xx，重试后仍失败"""
    code_value = PaymentCode.PROVIDER_RECOVERABLE
    error_type_name = "PaymentRecoverableError"


class PaymentSignatureError(PaymentGatewayError):
    """签名校验失败：Webhook 返回 400，网关可重投"""
    code_value = PaymentCode.SIGNATURE_ERROR
    error_type_name = "PaymentSignatureError"
