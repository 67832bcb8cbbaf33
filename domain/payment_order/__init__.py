from .entity import OrderStatus, PaymentOrder
from .error_detail import ErrorDetail
from .events import OrderStatusChanged
from .exceptions import (
    InvalidTransitionException,
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderNotRegenerableException,
    OrderValidationRejected,
    PaymentGatewayError,
)
from .state_machine import OrderStateMachine
from .value_objects import (
    Address,
    Customer,
    GatewayOrderView,
    GatewayStatus,
    LineItem,
    PaymentMethod,
    Phone,
)

__all__ = [
    "Address",
    "Customer",
    "ErrorDetail",
    "GatewayOrderView",
    "GatewayStatus",
    "InvalidTransitionException",
    "LineItem",
    "OrderAlreadyExistsException",
    "OrderNotFoundException",
    "OrderNotRegenerableException",
    "OrderStateMachine",
    "OrderStatus",
    "OrderStatusChanged",
    "OrderValidationRejected",
    "PaymentGatewayError",
    "PaymentMethod",
    "PaymentOrder",
    "Phone",
]
