"""
Request ID 中间件

透传收银端的 X-Request-ID（不合法则重新生成），并把 request_id 与路径里的
order_id 绑定到 structlog 上下文；由该请求启动的订单任务会继承这份上下文。
"""
import re
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")
_ORDER_PATH = re.compile(r"/payment-orders/(?P<order_id>[^/]+)")


def _incoming_request_id(value: Optional[str]) -> str:
    if value and _VALID_REQUEST_ID.match(value):
        return value
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = _incoming_request_id(request.headers.get(self.HEADER_NAME))
        request.state.request_id = request_id

        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        match = _ORDER_PATH.search(request.url.path)
        if match:
            context["order_id"] = match.group("order_id")
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[self.HEADER_NAME] = request_id
        return response
