"""
网关 HTTP 传输层

为支付网关适配器提供统一的 HTTP 调用：
- 每次调用附带凭据（不写入默认请求头，也不进日志）
- 超时控制（connect/read/write/total）
- 仅对幂等读请求（GET）做超时/网络错误重试，创建订单绝不自动重试
- 结构化请求/响应日志（敏感字段由日志处理器打码）
"""
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger
from core.settings import PaymentRetry, PaymentTimeouts

logger = get_logger(__name__)


class HTTPMethod(Enum):
    """网关只用到读取与创建"""
    GET = "GET"
    POST = "POST"


@dataclass
class GatewayRequest:
    """一次网关调用"""
    method: HTTPMethod
    path: str
    json: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    auth: Optional[httpx.Auth] = None

    @property
    def idempotent(self) -> bool:
        return self.method == HTTPMethod.GET


@dataclass
class GatewayResponse:
    """网关响应封装"""
    status_code: int
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class GatewayTransportError(Exception):
    """未拿到响应：超时或网络不可达。"""

    TIMEOUT = "timeout"
    NETWORK = "network"

    def __init__(self, kind: str, message: str, *, retryable: bool = True):
        self.kind = kind
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class GatewayHTTPError(Exception):
    """拿到了响应，但状态码 >= 400。"""

    def __init__(self, status_code: int, payload: Any, request_id: Optional[str] = None):
        self.status_code = status_code
        self.payload = payload
        self.request_id = request_id
        super().__init__(f"Gateway responded with status {status_code}")

    def __str__(self):
        parts = [self.args[0]]
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class GatewayTransport:
    """
    支付网关 HTTP 传输

    复用一个 httpx.AsyncClient；测试可注入 httpx.MockTransport。
    """

    def __init__(
        self,
        base_url: str,
        *,
        provider: str,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.provider = provider
        self.timeouts = timeouts or PaymentTimeouts()
        self.retry = retry or PaymentRetry()
        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "pos-payment-orders/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            t = self.timeouts
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(t.total, connect=t.connect, read=t.read, write=t.write),
                headers=self.default_headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """关闭HTTP客户端"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, request: GatewayRequest) -> Any:
        """
        发送请求并返回解析后的 JSON。

        Raises:
            GatewayTransportError: 超时或网络错误（GET 已按策略重试）
            GatewayHTTPError: 状态码 >= 400
        """
        if not request.idempotent:
            return (await self._send_once(request)).data

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.retry.max + 1),
            wait=wait_exponential(
                multiplier=self.retry.base_backoff,
                min=self.retry.base_backoff,
                max=self.retry.base_backoff * 8,
            ),
            retry=retry_if_exception_type(GatewayTransportError),
            before_sleep=self._log_retry,
        )
        async for attempt in retrying:
            with attempt:
                return (await self._send_once(request)).data

    async def _send_once(self, request: GatewayRequest) -> GatewayResponse:
        method = request.method.value
        logger.debug(
            "gateway_request",
            provider=self.provider,
            method=method,
            path=request.path,
            params=request.params,
            body=request.json,
        )
        started = time.perf_counter()
        try:
            response = await self.client.request(
                method,
                request.path,
                json=request.json,
                params=request.params,
                headers=request.headers or None,
                auth=request.auth if request.auth is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as exc:
            logger.warning("gateway_timeout", provider=self.provider, method=method, path=request.path)
            raise GatewayTransportError(
                GatewayTransportError.TIMEOUT, f"Request timeout after {self.timeouts.total}s"
            ) from exc
        except httpx.TransportError as exc:
            logger.warning(
                "gateway_unreachable", provider=self.provider, method=method, path=request.path, error=str(exc)
            )
            raise GatewayTransportError(GatewayTransportError.NETWORK, f"Network error: {exc}") from exc

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        result = GatewayResponse(
            status_code=response.status_code,
            data=self._decode(response),
            elapsed_ms=elapsed_ms,
            request_id=response.headers.get("x-request-id"),
        )
        logger.info(
            "gateway_response",
            provider=self.provider,
            method=method,
            path=request.path,
            status_code=result.status_code,
            elapsed_ms=elapsed_ms,
        )
        if result.is_error:
            raise GatewayHTTPError(result.status_code, result.data, result.request_id)
        return result

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            # non-JSON bodies (HTML error pages) are kept short for diagnostics
            return {"raw": response.text[:500]}

    def _log_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "gateway_retry",
            provider=self.provider,
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
        )
