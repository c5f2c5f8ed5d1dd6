"""领域异常。

每个异常携带业务码，由 core.exceptions 映射为 HTTP 状态码；领域层不依赖 core。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode, WebhookCode


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


class GatewayResourceNotFound(BusinessException):
    """支付网关返回 404（对象不存在或不属于当前账户）"""

    def __init__(self, message: str, *, resource_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.RESOURCE_NOT_FOUND,
            message=message,
            error_type="GatewayResourceNotFound",
            details={"resource_id": resource_id} if resource_id else None,
        )


class WebhookProcessingError(BusinessException):
    """处理器抛出的异常在严格模式下被包装为此异常向上传播"""

    def __init__(self, message: str, *, event_id: Optional[str] = None, event_type: Optional[str] = None):
        details = {k: v for k, v in {"event_id": event_id, "event_type": event_type}.items() if v}
        super().__init__(
            code=WebhookCode.PROCESSING_FAILED,
            message=message,
            error_type="WebhookProcessingError",
            details=details or None,
        )


class BalanceTransactionError(BusinessException):
    """获取余额交易（手续费/结算信息）失败，属于可重试错误"""

    def __init__(self, balance_transaction_id: str):
        super().__init__(
            code=WebhookCode.BALANCE_TRANSACTION_ERROR,
            message=f"Error retrieving balanceTransaction {balance_transaction_id}",
            error_type="BalanceTransactionError",
            details={"balance_transaction_id": balance_transaction_id},
        )


class InvalidProcessorError(BusinessException):
    def __init__(self, provider: Optional[str]):
        super().__init__(
            code=WebhookCode.INVALID_PROCESSOR,
            message=f"Invalid payment processor: {provider or 'unknown'} is not a Stripe processor",
            error_type="InvalidProcessor",
            details={"provider": provider},
        )


class ProcessorNotFoundException(BusinessException):
    def __init__(self, processor_id: int):
        super().__init__(
            code=WebhookCode.PROCESSOR_NOT_FOUND,
            message=f"Payment processor {processor_id} is not configured",
            error_type="ProcessorNotFound",
            details={"processor_id": processor_id},
        )
