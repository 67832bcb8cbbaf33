import pytest

from domain.payment_order import ErrorDetail, PaymentGatewayError
from infrastructure.external.api_clients.base import GatewayHTTPError, GatewayTransportError
from infrastructure.external.payments.error_classifier import ErrorClassifier
from infrastructure.external.payments.exceptions import (
    GatewayDeclinedError,
    GatewayNotConfiguredError,
    IncompleteGatewayResponseError,
)
from shared.codes.payment_codes import ErrorKind, PaymentCode


@pytest.fixture
def pagarme():
    return ErrorClassifier("pagarme")


@pytest.mark.parametrize(
    "status,kind,retryable",
    [
        (400, ErrorKind.VALIDATION_REJECTED, False),
        (401, ErrorKind.AUTHENTICATION_FAILED, False),
        (403, ErrorKind.AUTHENTICATION_FAILED, False),
        (404, ErrorKind.RESOURCE_NOT_FOUND, False),
        (408, ErrorKind.TIMEOUT, True),
        (422, ErrorKind.VALIDATION_REJECTED, False),
        (429, ErrorKind.RATE_LIMITED, True),
        (500, ErrorKind.GATEWAY_INTERNAL_ERROR, True),
        (503, ErrorKind.GATEWAY_INTERNAL_ERROR, True),
        (418, ErrorKind.GATEWAY_INTERNAL_ERROR, True),
    ],
)
def test_http_status_mapping(pagarme, status, kind, retryable):
    detail = pagarme.classify(GatewayHTTPError(status, {}))
    assert detail.kind == kind
    assert detail.retryable is retryable
    assert detail.http_status == status


def test_auth_status_beats_body_code(pagarme):
    detail = pagarme.classify(GatewayHTTPError(401, {"errors": [{"code": "validation_error"}]}))
    assert detail.kind == ErrorKind.AUTHENTICATION_FAILED


def test_known_code_beats_http_status(pagarme):
    detail = pagarme.classify(GatewayHTTPError(400, {"errors": [{"code": "insufficient_funds"}]}))
    assert detail.kind == ErrorKind.PAYMENT_DECLINED
    assert detail.code == "insufficient_funds"


def test_pagarme_field_errors_are_validation(pagarme):
    payload = {"message": "The request is invalid.", "errors": {"customer.document": ["invalid"]}}
    detail = pagarme.classify(GatewayHTTPError(422, payload))
    assert detail.kind == ErrorKind.VALIDATION_REJECTED
    assert "The request is invalid." in detail.message


def test_pagseguro_error_messages():
    payload = {"error_messages": [{"code": "40002", "description": "invalid_parameter", "parameter_name": "tax_id"}]}
    detail = ErrorClassifier("pagseguro").classify(GatewayHTTPError(400, payload))
    assert detail.kind == ErrorKind.VALIDATION_REJECTED
    assert detail.code == "40002"


def test_non_json_500_is_internal(pagarme):
    detail = pagarme.classify(GatewayHTTPError(502, {"raw": "<html>Bad Gateway</html>"}))
    assert detail.kind == ErrorKind.GATEWAY_INTERNAL_ERROR
    assert detail.retryable is True


@pytest.mark.parametrize(
    "kind,expected",
    [(GatewayTransportError.TIMEOUT, ErrorKind.TIMEOUT), (GatewayTransportError.NETWORK, ErrorKind.NETWORK_UNAVAILABLE)],
)
def test_transport_errors(pagarme, kind, expected):
    detail = pagarme.classify(GatewayTransportError(kind, "boom"))
    assert detail.kind == expected
    assert detail.retryable is True


def test_decline_uses_known_code(pagarme):
    detail = pagarme.classify(GatewayDeclinedError({}, code="antifraud", message="Suspeita de fraude"))
    assert detail.kind == ErrorKind.PAYMENT_DECLINED
    assert detail.retryable is False
    assert detail.message.endswith("Suspeita de fraude")


def test_decline_without_code(pagarme):
    detail = pagarme.classify(GatewayDeclinedError({}))
    assert detail.kind == ErrorKind.PAYMENT_DECLINED
    assert detail.code is None


def test_incomplete_is_retryable_until_final(pagarme):
    assert pagarme.classify(IncompleteGatewayResponseError({})).retryable is True
    final = pagarme.classify(IncompleteGatewayResponseError({}, final=True))
    assert final.kind == ErrorKind.INCOMPLETE_GATEWAY_RESPONSE
    assert final.retryable is False


def test_missing_credentials(pagarme):
    detail = pagarme.classify(GatewayNotConfiguredError("pagarme"))
    assert detail.kind == ErrorKind.AUTHENTICATION_FAILED
    assert detail.code == "not_configured"


def test_unknown_exception_is_internal(pagarme):
    detail = pagarme.classify(RuntimeError("surprise"))
    assert detail.kind == ErrorKind.GATEWAY_INTERNAL_ERROR
    assert detail.code == "RuntimeError"


def test_classified_values_pass_through(pagarme):
    detail = ErrorDetail.of(ErrorKind.RATE_LIMITED)
    assert pagarme.classify(detail) is detail
    error = PaymentGatewayError(detail, provider="pagarme")
    assert pagarme.to_gateway_error(error) is error


def test_gateway_error_code_follows_retryability(pagarme):
    recoverable = pagarme.to_gateway_error(GatewayHTTPError(500, {}))
    fatal = pagarme.to_gateway_error(GatewayHTTPError(401, {}))
    assert recoverable.code == PaymentCode.PROVIDER_RECOVERABLE
    assert fatal.code == PaymentCode.PROVIDER_ERROR
    assert fatal.details["kind"] == "authentication_failed"
