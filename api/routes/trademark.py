"""
商标申请订单路由
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_order_service
from application.dtos.orders import CreateTrademarkOrderRequest, CreateTrademarkOrderResponse
from application.services.order_service import OrderApplicationService
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/trademark", tags=["Trademark"])


@router.post("/create-order", summary="创建商标申请订单", response_model=ApiResponse[CreateTrademarkOrderResponse])
async def create_trademark_order(
    payload: CreateTrademarkOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    按尼斯分类数量与优先权数量计算官费，固化价格快照后创建 Checkout Session

    - **customer**: 申请人信息（公司申请人需提供 companyName / companyEik / companyAddress）
    - **trademark**: 商标类型、商品与服务描述、尼斯分类（1-45）
    """
    result = await service.create_trademark_order(payload)
    return success_response(data=result.model_dump(mode="json", by_alias=True), message="Trademark order created")
