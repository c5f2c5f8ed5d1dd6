"""
Request ID 中间件

Stripe 的投递不带追踪ID，这里为每次投递生成一个，并与客户端IP、
User-Agent 一起绑定到 structlog 上下文，使同一次投递产生的日志
（入队、处理、锁、Stripe API 调用）可以串起来查询。
"""
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog


class RequestIDMiddleware(BaseHTTPMiddleware):
    """透传或生成 X-Request-ID，并在响应头中返回"""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or uuid.uuid4().hex
        client_ip = client_ip_from(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            user_agent=request.headers.get("User-Agent"),
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            # 避免上下文泄漏到同一任务中后续的日志（如 lifespan 或后台任务）
            structlog.contextvars.clear_contextvars()

        response.headers[self.HEADER_NAME] = request_id
        return response


def client_ip_from(request: Request) -> Optional[str]:
    """客户端IP：优先取反向代理写入的 X-Forwarded-For 第一跳"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
