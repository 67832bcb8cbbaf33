"""
API 响应信封

所有接口都返回 {code, message, data, error}；订单失败时 error 额外携带
ErrorDetail 的 kind / retryable，方便收银端决定是否提示“重新生成”。
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


T = TypeVar("T")


def _utc_z(ts: datetime) -> str:
    ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


class ErrorInfo(BaseModel):
    type: str
    kind: Optional[str] = None
    retryable: Optional[bool] = None
    field: Optional[str] = None
    details: Optional[dict] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def _serialize_timestamp(self, timestamp: datetime) -> str:
        return _utc_z(timestamp)


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    *,
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    detail: Any = None,
) -> Response:
    """
    构造错误响应

    Args:
        detail: 可选的 ErrorDetail；存在时把 kind / retryable 提到 error 顶层
    """
    kind = getattr(detail, "kind", None)
    error = ErrorInfo(
        type=error_type,
        kind=getattr(kind, "value", kind),
        retryable=getattr(detail, "retryable", None),
        field=field,
        details=details,
        request_id=request_id,
    )
    return Response(code=code, message=message, error=error)
