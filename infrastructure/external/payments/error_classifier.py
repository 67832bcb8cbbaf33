"""
ErrorClassifier - reduces any gateway failure to an ErrorDetail.

Precedence for HTTP errors: 401/403 first, then a known code embedded in the
body, then the HTTP status itself. Anything unrecognised is treated as a
retryable gateway_internal_error. ``classify`` never raises.
"""
from __future__ import annotations

from typing import Any, Iterator, Optional

from core.logging_config import get_logger
from domain.payment_order.error_detail import ErrorDetail
from domain.payment_order.exceptions import PaymentGatewayError
from infrastructure.external.api_clients.base import GatewayHTTPError, GatewayTransportError
from infrastructure.external.payments.exceptions import (
    GatewayDeclinedError,
    GatewayNotConfiguredError,
    IncompleteGatewayResponseError,
)
from infrastructure.external.payments.normalizer import dig
from shared.codes.payment_codes import (
    DEFAULT_MESSAGES,
    HTTP_STATUS_TO_KIND,
    KNOWN_ERROR_CODES,
    ErrorKind,
)

logger = get_logger(__name__)

# kinds whose gateway message is useful to the operator
_GATEWAY_MESSAGE_KINDS = {ErrorKind.VALIDATION_REJECTED, ErrorKind.PAYMENT_DECLINED}

# where providers put error codes, most specific first
_CODE_PATHS: tuple[tuple, ...] = (
    ("errors", 0, "code"),
    ("error_messages", 0, "code"),
    ("charges", 0, "last_transaction", "gateway_response", "errors", 0, "code"),
    ("charges", 0, "last_transaction", "gateway_response", "code"),
    ("charges", 0, "last_transaction", "refused_code"),
    ("gateway_response", "errors", 0, "code"),
    ("gateway_response", "code"),
    ("refused_code",),
    ("code",),
    ("error",),
)

_MESSAGE_PATHS: tuple[tuple, ...] = (
    ("errors", 0, "message"),
    ("error_messages", 0, "description"),
    ("error_messages", 0, "message"),
    ("charges", 0, "last_transaction", "gateway_response", "errors", 0, "message"),
    ("charges", 0, "last_transaction", "acquirer_message"),
    ("message",),
    ("error_description",),
)


def _scalar(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


class ErrorClassifier:
    def __init__(self, provider: str):
        self.provider = provider
        self._known = {k.lower(): v for k, v in KNOWN_ERROR_CODES.get(provider, {}).items()}

    def classify(self, error: Any) -> ErrorDetail:
        try:
            return self._classify(error)
        except Exception:
            logger.exception("error_classification_failed", provider=self.provider)
            return ErrorDetail.of(ErrorKind.GATEWAY_INTERNAL_ERROR)

    def to_gateway_error(self, error: Any) -> PaymentGatewayError:
        if isinstance(error, PaymentGatewayError):
            return error
        return PaymentGatewayError(self.classify(error), provider=self.provider)

    def _classify(self, error: Any) -> ErrorDetail:
        if isinstance(error, PaymentGatewayError):
            return error.detail
        if isinstance(error, ErrorDetail):
            return error
        if isinstance(error, GatewayTransportError):
            kind = ErrorKind.TIMEOUT if error.kind == GatewayTransportError.TIMEOUT else ErrorKind.NETWORK_UNAVAILABLE
            return ErrorDetail.of(kind, code=error.kind)
        if isinstance(error, GatewayHTTPError):
            return self._from_http(error.status_code, error.payload)
        if isinstance(error, GatewayDeclinedError):
            return self._from_decline(error)
        if isinstance(error, IncompleteGatewayResponseError):
            return ErrorDetail.of(ErrorKind.INCOMPLETE_GATEWAY_RESPONSE, retryable=not error.final)
        if isinstance(error, GatewayNotConfiguredError):
            return ErrorDetail.of(ErrorKind.AUTHENTICATION_FAILED, str(error), code="not_configured")
        if isinstance(error, dict):
            status = error.get("status_code") or error.get("status")
            return self._from_http(status if isinstance(status, int) else None, error)
        return ErrorDetail.of(ErrorKind.GATEWAY_INTERNAL_ERROR, code=type(error).__name__)

    def _from_http(self, status_code: Optional[int], payload: Any) -> ErrorDetail:
        codes = list(self._codes(payload))
        gateway_message = self._message(payload)

        kind: Optional[ErrorKind] = None
        matched_code: Optional[str] = None
        if status_code in (401, 403):
            kind = ErrorKind.AUTHENTICATION_FAILED
        if kind is None:
            for code in codes:
                known = self._known.get(code.lower())
                if known is not None:
                    kind, matched_code = known, code
                    break
        if kind is None and status_code is not None:
            if status_code in HTTP_STATUS_TO_KIND:
                kind = HTTP_STATUS_TO_KIND[status_code]
            elif status_code == 408:
                kind = ErrorKind.TIMEOUT
            elif status_code >= 500:
                kind = ErrorKind.GATEWAY_INTERNAL_ERROR
        if kind is None:
            kind = ErrorKind.GATEWAY_INTERNAL_ERROR

        code = matched_code or (codes[0] if codes else (str(status_code) if status_code else None))
        return ErrorDetail.of(
            kind,
            self._message_for(kind, gateway_message),
            code=code,
            http_status=status_code,
        )

    def _from_decline(self, error: GatewayDeclinedError) -> ErrorDetail:
        codes = [error.code] if error.code else []
        codes.extend(c for c in self._codes(error.payload) if c not in codes)
        kind = ErrorKind.PAYMENT_DECLINED
        for code in codes:
            known = self._known.get(code.lower())
            if known is not None:
                kind = known
                break
        message = error.message or self._message(error.payload)
        return ErrorDetail.of(kind, self._message_for(kind, message), code=codes[0] if codes else None)

    def _codes(self, payload: Any) -> Iterator[str]:
        if not isinstance(payload, dict):
            return
        for path in _CODE_PATHS:
            code = _scalar(dig(payload, *path))
            if code is not None:
                yield code
        # Pagar.me validation errors: {"errors": {"field.path": ["message"]}}
        errors = payload.get("errors")
        if isinstance(errors, dict):
            if _scalar(errors.get("code")):
                yield _scalar(errors.get("code"))
            if any(isinstance(v, list) for v in errors.values()):
                yield "validation_error"

    def _message(self, payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return None
        for path in _MESSAGE_PATHS:
            message = _scalar(dig(payload, *path))
            if message is not None:
                return message
        return None

    @staticmethod
    def _message_for(kind: ErrorKind, gateway_message: Optional[str]) -> str:
        base = DEFAULT_MESSAGES[kind]
        if gateway_message and kind in _GATEWAY_MESSAGE_KINDS:
            return f"{base}: {gateway_message}"
        return base
