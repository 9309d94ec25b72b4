"""
管理接口 - 需要 X-Admin-Key
"""
from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import AdminGuard, get_admin_service
from application.dtos.orders import (
    AdminStatusUpdateRequest,
    AdminStatusUpdateResponse,
    GatewayOperationResponse,
    RefundRequestIn,
)
from application.services.order_admin_service import OrderAdminService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[AdminGuard])


@router.patch(
    "/orders/{order_id}/status",
    summary="变更订单状态",
    response_model=ApiResponse[AdminStatusUpdateResponse],
)
async def update_order_status(
    order_id: str,
    payload: AdminStatusUpdateRequest,
    service: OrderAdminService = Depends(get_admin_service),
):
    result = await service.update_order_status(order_id, payload.status)
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.patch(
    "/trademark-orders/{order_id}/status",
    summary="变更商标订单状态",
    response_model=ApiResponse[AdminStatusUpdateResponse],
)
async def update_trademark_status(
    order_id: str,
    payload: AdminStatusUpdateRequest,
    service: OrderAdminService = Depends(get_admin_service),
):
    result = await service.update_trademark_status(order_id, payload.status)
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.get(
    "/orders/{order_id}/gateway-status",
    summary="查询网关交易状态",
    response_model=ApiResponse[GatewayOperationResponse],
)
async def gateway_status(order_id: str, service: OrderAdminService = Depends(get_admin_service)):
    result = await service.query_gateway_status(order_id)
    return success_response(data=result.model_dump(mode="json", by_alias=True))


@router.post(
    "/orders/{order_id}/refund",
    summary="退款",
    response_model=ApiResponse[GatewayOperationResponse],
)
async def refund(
    order_id: str,
    payload: Optional[RefundRequestIn] = None,
    service: OrderAdminService = Depends(get_admin_service),
):
    result = await service.refund(order_id, payload.amount if payload else None)
    return success_response(data=result.model_dump(mode="json", by_alias=True))
