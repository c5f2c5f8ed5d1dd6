"""
Stripe 网关异常，统一映射为 BusinessException。

core.exceptions 按业务码决定 HTTP 状态：签名失败 400（Stripe 不会因此
修复请求），网关错误 502/503（Stripe 按退避策略重投）。
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class _GatewayError(BusinessException):
    code = PaymentCode.PROVIDER_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        merged: dict[str, Any] = {"provider": provider, "retryable": self.retryable}
        if provider_code:
            merged["provider_code"] = provider_code
        # Stripe 控制台按 request id 检索请求日志
        if request_id:
            merged["stripe_request_id"] = request_id
        merged.update(details or {})
        super().__init__(
            code=self.code,
            message=message,
            error_type=type(self).__name__,
            details=merged,
        )

    @classmethod
    def from_stripe(cls, exc: Any, *, provider: str) -> "_GatewayError":
        return cls(
            str(getattr(exc, "user_message", None) or exc),
            provider=provider,
            provider_code=getattr(exc, "code", None),
            request_id=getattr(exc, "request_id", None),
        )


class PaymentProviderError(_GatewayError):
    """Stripe 返回的不可重试错误（参数、权限等）"""


class PaymentRecoverableError(_GatewayError):
    """限流或网络错误，稍后重试可能成功"""

    code = PaymentCode.PROVIDER_RECOVERABLE
    retryable = True


class PaymentSignatureError(_GatewayError):
    """签名校验失败或载荷无法解析"""

    code = PaymentCode.SIGNATURE_ERROR
