"""
Payment specific codes, error taxonomy and provider status mapping.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    INCOMPLETE_RESPONSE = 60005


class ErrorKind(str, Enum):
    """Closed taxonomy every gateway failure is reduced to."""

    AUTHENTICATION_FAILED = "authentication_failed"
    RESOURCE_NOT_FOUND = "resource_not_found"
    VALIDATION_REJECTED = "validation_rejected"
    GATEWAY_INTERNAL_ERROR = "gateway_internal_error"
    PAYMENT_DECLINED = "payment_declined"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_UNAVAILABLE = "network_unavailable"
    INCOMPLETE_GATEWAY_RESPONSE = "incomplete_gateway_response"


RETRYABLE_BY_KIND: dict[ErrorKind, bool] = {
    ErrorKind.AUTHENTICATION_FAILED: False,
    ErrorKind.RESOURCE_NOT_FOUND: False,
    ErrorKind.VALIDATION_REJECTED: False,
    ErrorKind.GATEWAY_INTERNAL_ERROR: True,
    ErrorKind.PAYMENT_DECLINED: False,
    ErrorKind.RATE_LIMITED: True,
    ErrorKind.TIMEOUT: True,
    ErrorKind.NETWORK_UNAVAILABLE: True,
    # Retryable exactly once; the classifier flips it after the re-read.
    ErrorKind.INCOMPLETE_GATEWAY_RESPONSE: True,
}


DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTHENTICATION_FAILED: "Payment gateway rejected the credentials; check the provider configuration",
    ErrorKind.RESOURCE_NOT_FOUND: "Payment gateway does not know this order",
    ErrorKind.VALIDATION_REJECTED: "Payment data was rejected; fix the order data before trying again",
    ErrorKind.GATEWAY_INTERNAL_ERROR: "Payment gateway failed unexpectedly; try again shortly",
    ErrorKind.PAYMENT_DECLINED: "Payment was not approved by the gateway",
    ErrorKind.RATE_LIMITED: "Payment gateway is throttling requests; try again shortly",
    ErrorKind.TIMEOUT: "Payment gateway did not answer in time; try again shortly",
    ErrorKind.NETWORK_UNAVAILABLE: "Payment gateway is unreachable; check the network and try again",
    ErrorKind.INCOMPLETE_GATEWAY_RESPONSE: "Payment gateway answered without QR code, barcode or payment link",
}


# HTTP status -> taxonomy, consulted when the body carries no known code
HTTP_STATUS_TO_KIND: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION_REJECTED,
    401: ErrorKind.AUTHENTICATION_FAILED,
    403: ErrorKind.AUTHENTICATION_FAILED,
    404: ErrorKind.RESOURCE_NOT_FOUND,
    409: ErrorKind.VALIDATION_REJECTED,
    422: ErrorKind.VALIDATION_REJECTED,
    429: ErrorKind.RATE_LIMITED,
}


# Provider error codes -> taxonomy. Lookups are case-insensitive.
KNOWN_ERROR_CODES: dict[str, dict[str, ErrorKind]] = {
    "pagarme": {
        "500": ErrorKind.GATEWAY_INTERNAL_ERROR,
        "internal_error": ErrorKind.GATEWAY_INTERNAL_ERROR,
        "unknown_error": ErrorKind.GATEWAY_INTERNAL_ERROR,
        "timeout": ErrorKind.TIMEOUT,
        "validation_error": ErrorKind.VALIDATION_REJECTED,
        "invalid_recipient": ErrorKind.VALIDATION_REJECTED,
        "invalid_recipient_account": ErrorKind.VALIDATION_REJECTED,
        "invalid_sender": ErrorKind.VALIDATION_REJECTED,
        "invalid_transfer": ErrorKind.VALIDATION_REJECTED,
        "acquirer": ErrorKind.PAYMENT_DECLINED,
        "antifraud": ErrorKind.PAYMENT_DECLINED,
        "insufficient_funds": ErrorKind.PAYMENT_DECLINED,
        "card_blocked": ErrorKind.PAYMENT_DECLINED,
        "expired_card": ErrorKind.PAYMENT_DECLINED,
        "invalid_card": ErrorKind.PAYMENT_DECLINED,
        "invalid_cvv": ErrorKind.PAYMENT_DECLINED,
        "transaction_denied": ErrorKind.PAYMENT_DECLINED,
        "transfer_rejected": ErrorKind.PAYMENT_DECLINED,
        "transfer_not_authorized": ErrorKind.PAYMENT_DECLINED,
        "3000": ErrorKind.PAYMENT_DECLINED,
        "3001": ErrorKind.PAYMENT_DECLINED,
        "3002": ErrorKind.PAYMENT_DECLINED,
        "3003": ErrorKind.PAYMENT_DECLINED,
        "3004": ErrorKind.PAYMENT_DECLINED,
        "3005": ErrorKind.PAYMENT_DECLINED,
    },
    "pagseguro": {
        "40001": ErrorKind.VALIDATION_REJECTED,  # required parameter
        "40002": ErrorKind.VALIDATION_REJECTED,  # invalid parameter
        "40003": ErrorKind.VALIDATION_REJECTED,  # parameter not allowed
        "40004": ErrorKind.VALIDATION_REJECTED,  # invalid tax_id
        "unauthorized": ErrorKind.AUTHENTICATION_FAILED,
        "invalid_parameter": ErrorKind.VALIDATION_REJECTED,
        "10000": ErrorKind.PAYMENT_DECLINED,
        "10001": ErrorKind.PAYMENT_DECLINED,
        "10002": ErrorKind.PAYMENT_DECLINED,
        "10003": ErrorKind.PAYMENT_DECLINED,
        "20000": ErrorKind.PAYMENT_DECLINED,
        "declined": ErrorKind.PAYMENT_DECLINED,
        "internal_error": ErrorKind.GATEWAY_INTERNAL_ERROR,
        "500": ErrorKind.GATEWAY_INTERNAL_ERROR,
    },
}


# Provider -> internal gateway status (pending | paid | failed | canceled | expired)
PROVIDER_STATUS_TO_INTERNAL: dict[str, dict[str, str]] = {
    "pagarme": {
        "pending": "pending",
        "waiting_payment": "pending",
        "generated": "pending",
        "paid": "paid",
        "authorized": "paid",
        "processing": "paid",
        "overpaid": "paid",
        "underpaid": "pending",
        "failed": "failed",
        "with_error": "failed",
        "chargeback": "failed",
        "not_authorized": "failed",
        "canceled": "canceled",
        "voided": "canceled",
        "refunded": "canceled",
        "expired": "expired",
    },
    "pagseguro": {
        "WAITING": "pending",
        "IN_ANALYSIS": "pending",
        "AUTHORIZED": "pending",
        "PAID": "paid",
        "DECLINED": "failed",
        "CANCELED": "canceled",
        "EXPIRED": "expired",
    },
}
