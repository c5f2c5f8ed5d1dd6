"""
Structlog 日志配置模块

structlog 与标准库 logging 共用一条处理链，celery/uvicorn/sqlalchemy 的日志
也按同样格式输出。DEBUG 下输出彩色控制台格式，其余输出单行 JSON。
"""
import json
import logging
import re
from typing import Any, List, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 第三方库日志默认较吵，统一压到 WARNING
_NOISY_LOGGERS = ("sqlalchemy.engine", "stripe", "celery.app.trace", "aiosqlite")

# Stripe 密钥与签名密钥不应出现在日志中
_SECRET_PATTERN = re.compile(r"\b(sk|rk|whsec)_(live_|test_)?[A-Za-z0-9]{6,}")


def mask_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if isinstance(value, str) and ("sk_" in value or "rk_" in value or "whsec_" in value):
            event_dict[key] = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}_***", value)
    return event_dict


def _renderer(debug: bool) -> Any:
    if debug:
        return ConsoleRenderer(colors=True)
    return JSONRenderer(serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw))


def configure_logging(debug: Optional[bool] = None) -> None:
    """配置 structlog 并桥接标准库 logging。

    Args:
        debug: 是否以调试模式输出；为空时读取 settings.DEBUG
    """
    debug = settings.DEBUG if debug is None else debug

    pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        mask_secrets,
    ]

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, _renderer(debug)],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
