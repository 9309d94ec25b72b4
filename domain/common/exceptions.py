"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PriceValidationException(BusinessException):
    """客户端提交的价格与服务端价目表不一致"""

    def __init__(self, errors: list[str]):
        super().__init__(
            code=BusinessCode.PRICE_VALIDATION_ERROR,
            message="Price validation failed",
            error_type="PriceValidationError",
            details={"errors": list(errors)},
        )
        self.errors = list(errors)


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class OrderNotPendingException(BusinessException):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_PENDING,
            message=f"Order {order_id} is not pending (status: {status})",
            error_type="OrderNotPending",
            details={"order_id": order_id, "status": status},
        )


class InvalidStatusTransitionException(BusinessException):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.ORDER_STATUS_CONFLICT,
            message=f"Cannot move order {order_id} from {current} to {target}",
            error_type="InvalidStatusTransition",
            details={"order_id": order_id, "current": current, "target": target},
            field="status",
        )


class DuplicateOrderException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_STATUS_CONFLICT,
            message=f"Order {order_id} already exists",
            error_type="DuplicateOrder",
            details={"order_id": order_id},
        )


class GatewayNotConfiguredException(BusinessException):
    """对应的支付网关未启用"""

    def __init__(self, provider: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=f"Payment gateway {provider} is not enabled",
            error_type="GatewayNotConfigured",
            details={"provider": provider},
        )
