"""
Checkout gateway (Stripe) routes.

The webhook reads the raw request bytes; the HMAC signature covers them verbatim.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi import Response as HttpResponse

from api.dependencies import get_client_ip, get_order_service, get_reconciliation_service
from application.dtos.orders import (
    CheckoutSessionForOrderRequest,
    CheckoutSessionResponse,
    CreateCheckoutOrderResponse,
    CreateOrderRequest,
    PaymentStatusResponse,
)
from application.services.order_service import OrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/stripe", tags=["Stripe"])
logger = get_logger(__name__)


@router.post("/create-order", summary="创建订单（Stripe）", response_model=ApiResponse[CreateCheckoutOrderResponse])
async def create_order(
    payload: CreateOrderRequest,
    request: Request,
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.create_checkout_order(payload, client_ip=get_client_ip(request))
    return success_response(data=result.model_dump(mode="json", by_alias=True), message="Order created")


@router.post(
    "/create-session/checkout",
    summary="为已有订单创建 Checkout Session",
    response_model=ApiResponse[CheckoutSessionResponse],
)
async def create_checkout_session(
    payload: CheckoutSessionForOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.create_checkout_session(payload.order_id, payload.order_type)
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.post("/webhook", summary="Stripe 回调", status_code=200)
async def webhook(request: Request, service: ReconciliationService = Depends(get_reconciliation_service)):
    """
    签名无效返回 400；幂等账本写入失败向上抛出（500，Stripe 会重投）；其余一律 200
    """
    if not service.verify_checkout_source(get_client_ip(request)):
        logger.warning("checkout_webhook_ip_rejected", client_ip=get_client_ip(request))
        raise UnauthorizedException("Webhook source not allowed")

    raw_body = await request.body()
    signature = request.headers.get("stripe-signature", "")
    decision = await service.handle_checkout_webhook(raw_body, signature)
    logger.info(
        "checkout_webhook_handled",
        outcome=decision.outcome.value,
        order_id=decision.order_id,
        status=decision.status,
    )
    return HttpResponse(status_code=200)


@router.get("/payment-status/{order_id}", summary="支付状态", response_model=ApiResponse[PaymentStatusResponse])
async def payment_status(order_id: str, service: OrderApplicationService = Depends(get_order_service)):
    status = await service.get_payment_status(order_id)
    return success_response(data=status.model_dump(mode="json", by_alias=True))
