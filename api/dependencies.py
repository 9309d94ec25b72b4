"""
API依赖项 - 服务注入与管理接口鉴权

服务实例在 lifespan 中创建一次并挂到 app.state，这里只负责取出。
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from application.services.order_admin_service import OrderAdminService
from application.services.order_service import OrderApplicationService
from application.services.reconciliation_service import ReconciliationService
from core.config import settings
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger


logger = get_logger(__name__)


def get_order_service(request: Request) -> OrderApplicationService:
    return request.app.state.order_service


def get_reconciliation_service(request: Request) -> ReconciliationService:
    return request.app.state.reconciliation_service


def get_admin_service(request: Request) -> OrderAdminService:
    return request.app.state.admin_service


def get_client_ip(request: Request) -> Optional[str]:
    ip = getattr(request.state, "client_ip", None)
    if ip:
        return ip
    return request.client.host if request.client else None


async def require_admin_key(x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key")) -> None:
    """校验 X-Admin-Key；未配置密钥时一律拒绝"""
    expected = settings.ADMIN_API_KEY
    if not expected or not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        logger.warning("admin_auth_failed", has_key=bool(x_admin_key))
        raise UnauthorizedException("Invalid or missing X-Admin-Key")


AdminGuard = Depends(require_admin_key)
