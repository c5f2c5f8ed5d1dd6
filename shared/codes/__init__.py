"""
业务码（各层共用）。

BusinessCode 为通用码；支付网关与 webhook 处理相关的码在
shared.codes.payment_codes 中定义，号段互不重叠。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 请求参数 1xxxx
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_VALIDATION_ERROR = 10003
    UNSUPPORTED_MEDIA_TYPE = 10004

    # 业务 2xxxx
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006

    # 系统 4xxxx
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
