"""
Request ID 中间件
用于生成或透传追踪ID，并通过contextvars传递给日志系统
"""
import ipaddress
import uuid
from contextvars import ContextVar
from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from core.logging_config import get_logger


logger = get_logger(__name__)

# 定义context变量，用于在请求生命周期内共享request_id
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    功能：
    1. 从请求头获取或生成新的request_id
    2. 将request_id与客户端IP存入contextvars与request.state
    3. 在响应头中返回request_id

    webhook 的 IP 白名单读取 request.state.client_ip。
    """

    HEADER_NAME = "X-Request-ID"

    def __init__(self, app, trusted_proxies: Optional[Iterable[str]] = None) -> None:
        super().__init__(app)
        self._trusted_networks = _parse_networks(trusted_proxies or ())

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self._get_client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        """
        解析客户端IP

        代理头可被客户端伪造，仅当 socket 对端是可信代理时才读取；
        X-Forwarded-For 从右向左取第一个非可信代理的地址。
        """
        peer = request.client.host if request.client else None
        if not peer or not self._is_trusted(peer):
            return peer or "unknown"

        x_forwarded_for = request.headers.get("X-Forwarded-For")
        if x_forwarded_for:
            hops = [hop.strip() for hop in x_forwarded_for.split(",") if hop.strip()]
            for hop in reversed(hops):
                if not self._is_trusted(hop):
                    return hop
            if hops:
                return hops[0]
        client_ip = request.headers.get("X-Real-IP")
        if client_ip:
            return client_ip.strip()
        return peer

    def _is_trusted(self, ip: str) -> bool:
        if not self._trusted_networks:
            return False
        try:
            addr = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return any(addr in network for network in self._trusted_networks)


def _parse_networks(entries: Iterable[str]) -> list:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(str(entry).strip(), strict=False))
        except ValueError:
            logger.warning("trusted_proxy_entry_invalid", entry=entry)
    return networks


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    return client_ip_var.get()
