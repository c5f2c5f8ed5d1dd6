"""
自定义异常映射与全局异常处理器

Stripe 只看 HTTP 状态码：2xx 视为送达，其余按退避策略重投。
因此这里的映射决定了哪些失败会触发重投。
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
import traceback
import uuid
from starlette import status as http_status

from .response import error_json_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode, WebhookCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


# 业务码 -> HTTP 状态码；未列出的业务码默认 400
_HTTP_STATUS_BY_CODE = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.UNSUPPORTED_MEDIA_TYPE: http_status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    # 签名失败返回 400，让 Stripe 标记投递失败
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.RESOURCE_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,

    WebhookCode.PROCESSING_FAILED: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    WebhookCode.BALANCE_TRANSACTION_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    WebhookCode.INVALID_PROCESSOR: http_status.HTTP_400_BAD_REQUEST,
    WebhookCode.PROCESSOR_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
}

_BUSINESS_CODE_BY_HTTP_STATUS = {
    404: BusinessCode.NOT_FOUND,
    415: BusinessCode.UNSUPPORTED_MEDIA_TYPE,
    500: BusinessCode.SYSTEM_ERROR,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    return _HTTP_STATUS_BY_CODE.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or uuid.uuid4().hex


def register_exception_handlers(app: FastAPI):
    """注册全局异常处理器"""
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        request_id = _request_id(request)
        status_code = business_code_to_http_status(exc.code)
        # 5xx 会触发 Stripe 重投，按 error 级别记录
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "business_exception",
            request_id=request_id,
            path=request.url.path,
            code=int(exc.code),
            error_type=exc.error_type,
            error=exc.message,
        )
        return error_json_response(
            status_code,
            exc.code,
            exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        return error_json_response(
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            BusinessCode.PARAM_VALIDATION_ERROR,
            f"Validation failed: {first.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in errors]},
            field=".".join(str(loc) for loc in first.get("loc", [])[1:]),
            request_id=_request_id(request),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return error_json_response(
            exc.status_code,
            _BUSINESS_CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.PARAM_ERROR),
            str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """兜底：未捕获异常返回 500，Stripe 稍后重投"""
        request_id = _request_id(request)
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            path=request.url.path,
            error=str(exc),
            exc_info=True,
        )
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if app.debug else None
        return error_json_response(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            BusinessCode.SYSTEM_ERROR,
            "Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )
