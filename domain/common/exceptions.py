"""Errors that may cross from the domain to the API boundary.

core/ decides the HTTP status; nothing here knows about HTTP.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base error carrying a business code and an optional classified detail."""

    detail: Any = None

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field

    def log_fields(self) -> dict[str, Any]:
        """Flat kwargs for a structlog event."""
        fields: dict[str, Any] = {"code": int(self.code), "error_type": self.error_type, "error": self.message}
        if self.field:
            fields["field"] = self.field
        kind = getattr(self.detail, "kind", None)
        if kind is not None:
            fields["error_kind"] = getattr(kind, "value", kind)
            fields["retryable"] = self.detail.retryable
        return fields


class DomainValidationException(BusinessException):
    """Input refused by a domain invariant."""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
