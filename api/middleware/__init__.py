from .request_id import RequestIDMiddleware, client_ip_from
from .logging import LoggingMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "client_ip_from",
]
