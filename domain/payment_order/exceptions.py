"""
Payment order exceptions.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException, DomainValidationException
from domain.payment_order.error_detail import ErrorDetail
from shared.codes import BusinessCode
from shared.codes.payment_codes import ErrorKind, PaymentCode


class OrderValidationRejected(DomainValidationException):
    """Order input rejected before any gateway call was made."""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, field=field, details=details)
        self.error_type = "OrderValidationRejected"
        self.detail = ErrorDetail.of(ErrorKind.VALIDATION_REJECTED, message)


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message=f"Payment order not found: {order_id}",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class OrderAlreadyExistsException(OrderValidationRejected):
    """An active order already uses this order code."""

    def __init__(self, order_id: str):
        super().__init__(
            f"Payment order {order_id} is still active",
            field="order_code",
            details={"order_id": order_id},
        )
        self.code = BusinessCode.ORDER_ALREADY_EXISTS
        self.error_type = "OrderAlreadyExists"


class OrderNotRegenerableException(BusinessException):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_REGENERABLE,
            message=f"Payment order {order_id} cannot be regenerated while {status}",
            error_type="OrderNotRegenerable",
            details={"order_id": order_id, "status": status},
        )


class InvalidTransitionException(BusinessException):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message=f"Payment order {order_id} cannot move from {current} to {target}",
            error_type="InvalidTransition",
            details={"order_id": order_id, "current": current, "target": target},
        )


class PaymentGatewayError(BusinessException):
    """A gateway operation failed; `detail` carries the classification."""

    def __init__(self, detail: ErrorDetail, *, provider: str):
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE if detail.retryable else PaymentCode.PROVIDER_ERROR,
            message=detail.message,
            error_type="PaymentGatewayError",
            details={"provider": provider, **detail.to_dict()},
        )
        self.detail = detail
        self.provider = provider
