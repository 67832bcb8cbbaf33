from .logging import AccessLogMiddleware
from .request_id import RequestIDMiddleware

__all__ = ["AccessLogMiddleware", "RequestIDMiddleware"]
