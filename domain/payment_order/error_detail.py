"""
ErrorDetail - the classified form of every failure attached to an order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from shared.codes.payment_codes import DEFAULT_MESSAGES, RETRYABLE_BY_KIND, ErrorKind


@dataclass(frozen=True)
class ErrorDetail:
    kind: ErrorKind
    message: str
    retryable: bool
    code: Optional[str] = None
    http_status: Optional[int] = None

    @classmethod
    def of(
        cls,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        retryable: Optional[bool] = None,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
    ) -> "ErrorDetail":
        """Build a detail using the taxonomy defaults for anything not given."""
        return cls(
            kind=kind,
            message=message or DEFAULT_MESSAGES[kind],
            retryable=RETRYABLE_BY_KIND[kind] if retryable is None else retryable,
            code=code,
            http_status=http_status,
        )

    @classmethod
    def unexpected(cls, exc: BaseException) -> "ErrorDetail":
        """Safe default for failures nobody classified."""
        return cls.of(ErrorKind.GATEWAY_INTERNAL_ERROR, code=type(exc).__name__)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "code": self.code,
            "http_status": self.http_status,
        }
