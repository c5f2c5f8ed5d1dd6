"""
请求/响应日志中间件

每次投递记录一条开始日志与一条结束日志（含耗时）。对 webhook 投递额外
记录 Stripe 事件 id/类型，便于与 Stripe 控制台的投递记录对照。
"""
import json
import time
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

_QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

# 事件对象中可能出现的敏感字段，记录请求体时打码
_REDACTED_KEYS = frozenset({"client_secret", "secret", "api_key", "card", "payment_method_details", "billing_details"})


def redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: "***" if str(k).lower() in _REDACTED_KEYS else redact(v) for k, v in data.items()}
    if isinstance(data, list):
        return [redact(v) for v in data]
    return data


def _flag(value: Optional[str]) -> Optional[bool]:
    value = (value or "").strip().lower()
    if value in {"true", "1", "yes"}:
        return True
    if value in {"false", "0", "no"}:
        return False
    return None


class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, *, body_limit: Optional[int] = None):
        super().__init__(app)
        self.body_limit = body_limit or settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in _QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        fields = await self._describe(request)
        logger.info("request_started", **fields)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
                **fields,
            )
            raise

        duration = time.perf_counter() - started
        self._finished(response, duration, fields)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _describe(self, request: Request) -> dict:
        fields: dict[str, Any] = {"method": request.method, "path": request.url.path}
        if request.query_params:
            fields["query_params"] = dict(request.query_params)
        if request.method != "POST":
            return fields

        fields["signed"] = "stripe-signature" in request.headers
        body = await request.body()
        payload = self._json(body, request.headers.get("content-type", ""))
        if isinstance(payload, dict):
            fields["event_id"] = payload.get("id")
            fields["event_type"] = payload.get("type")

        if self._log_body(request) and body:
            fields["body"] = redact(payload) if payload is not None else body[: self.body_limit].decode("utf-8", errors="ignore")
        return fields

    @staticmethod
    def _json(body: bytes, content_type: str) -> Any:
        if not body or "application/json" not in content_type.lower():
            return None
        try:
            return json.loads(body)
        except ValueError:
            return None

    @staticmethod
    def _log_body(request: Request) -> bool:
        # X-Log-Body 请求头可按请求覆盖默认设置
        override = _flag(request.headers.get("X-Log-Body"))
        if override is not None:
            return override
        return settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG

    @staticmethod
    def _finished(response: Response, duration: float, fields: dict) -> None:
        status_code = response.status_code
        if status_code >= 500:
            # Stripe 会重投
            log, event = logger.error, "request_server_error"
        elif status_code >= 400:
            log, event = logger.warning, "request_client_error"
        else:
            log, event = logger.info, "request_completed"
        log(event, status_code=status_code, duration=round(duration, 4), **fields)
