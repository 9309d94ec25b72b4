"""
Legacy gateway (myPOS IPC) routes.

Keep this thin: pricing, signing and reconciliation live in the services.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from api.dependencies import get_client_ip, get_order_service, get_reconciliation_service
from application.dtos.orders import (
    CreateLegacyOrderResponse,
    CreateOrderRequest,
    LegacyPaymentParams,
    PaymentStatusResponse,
    PricesResponse,
)
from application.services.order_service import OrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from core.response import Response as ApiResponse, success_response
from core.logging_config import get_logger


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.get("/prices", summary="价目表", response_model=ApiResponse[PricesResponse])
async def get_prices(service: OrderApplicationService = Depends(get_order_service)):
    return success_response(data=service.get_prices().model_dump(mode="json", by_alias=True))


@router.post("/create-order", summary="创建订单（myPOS）", response_model=ApiResponse[CreateLegacyOrderResponse])
async def create_order(
    payload: CreateOrderRequest,
    request: Request,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    校验价格并创建待支付订单，返回签名后的支付表单参数

    客户端提交的价格只用于比对；不一致时返回 400 并列出全部错误。
    """
    result = await service.create_legacy_order(payload, client_ip=get_client_ip(request))
    return success_response(data=result.model_dump(mode="json", by_alias=True), message="Order created")


@router.get("/params/{order_id}", summary="重新生成支付参数", response_model=ApiResponse[LegacyPaymentParams])
async def get_payment_params(order_id: str, service: OrderApplicationService = Depends(get_order_service)):
    params = await service.get_legacy_payment_params(order_id)
    return success_response(data=params.model_dump(mode="json", by_alias=True))


@router.post("/notify", summary="myPOS 支付回调", response_class=PlainTextResponse)
async def notify(request: Request, service: ReconciliationService = Depends(get_reconciliation_service)):
    # 网关只认纯文本 "OK"；业务结果只体现在订单状态和日志里
    raw_body = await request.body()
    decision = await service.handle_legacy_webhook(raw_body, client_ip=get_client_ip(request))
    logger.info(
        "legacy_webhook_handled",
        outcome=decision.outcome.value,
        order_id=decision.order_id,
        status=decision.status,
    )
    return PlainTextResponse(decision.acknowledgement, status_code=200)


@router.get("/payment-status/{order_id}", summary="支付状态", response_model=ApiResponse[PaymentStatusResponse])
async def payment_status(order_id: str, service: OrderApplicationService = Depends(get_order_service)):
    status = await service.get_payment_status(order_id)
    return success_response(data=status.model_dump(mode="json", by_alias=True))
