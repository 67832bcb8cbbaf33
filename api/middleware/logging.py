"""
访问日志：每个订单接口一行 request_completed，慢请求升级为 warning。

创建订单会同步等待网关（含重试），所以慢请求阈值按网关超时来定。
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger


logger = get_logger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
    SLOW_REQUEST_MS = 5000.0

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        client = request.client.host if request.client else None
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", client=client, duration_ms=self._elapsed(started))
            raise

        duration_ms = self._elapsed(started)
        if response.status_code >= 500 or duration_ms >= self.SLOW_REQUEST_MS:
            log = logger.warning
        else:
            log = logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms, client=client)
        return response

    @staticmethod
    def _elapsed(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
