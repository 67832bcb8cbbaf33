"""
PaymentOrder aggregate - one attempt at collecting a PIX or boleto payment.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from domain.payment_order.error_detail import ErrorDetail
from domain.payment_order.exceptions import OrderNotRegenerableException, OrderValidationRejected
from domain.payment_order.value_objects import Customer, LineItem, PaymentMethod, require_positive_amount


class OrderStatus(str, Enum):
    GENERATING = "generating"  # gateway request in flight
    WAITING = "waiting"        # payment instructions issued
    PAID = "paid"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


@dataclass
class PaymentOrder:
    """
    Payment order aggregate.

    Rules:
    1. amount is a positive integer in minor units (centavos)
    2. expires_at is always after created_at
    3. identifiers, amount and method never change after creation
    4. only the state machine moves `status`; terminal states are final
    5. regeneration produces a new order linked through `regenerated_from`
    """

    order_id: str
    provider: str
    method: PaymentMethod
    amount_minor_units: int
    customer: Customer
    created_at: datetime
    expires_at: datetime
    line_items: tuple[LineItem, ...] = ()
    status: OrderStatus = OrderStatus.GENERATING

    # Gateway identifiers, set once while generating
    gateway_order_id: Optional[str] = None
    charge_id: Optional[str] = None
    transaction_id: Optional[str] = None

    # Payment instructions
    qr_payload: Optional[str] = None
    qr_image_url: Optional[str] = None
    payment_url: Optional[str] = None
    barcode: Optional[str] = None

    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    last_error: Optional[ErrorDetail] = None
    retry_count: int = 0
    regenerated_from: Optional[str] = None
    degraded_fields: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.order_id:
            raise OrderValidationRejected("order_id is required", field="order_id")
        require_positive_amount(self.amount_minor_units, "amount_minor_units")
        try:
            self.method = PaymentMethod(self.method)
        except ValueError:
            raise OrderValidationRejected(f"unsupported payment method: {self.method}", field="method") from None
        self.line_items = tuple(self.line_items)
        self.created_at = _ensure_utc(self.created_at)
        self.expires_at = _ensure_utc(self.expires_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.updated_at = _ensure_utc(self.updated_at) or self.created_at
        self.canceled_at = _ensure_utc(self.canceled_at)
        if self.expires_at <= self.created_at:
            raise OrderValidationRejected("expires_at must be after created_at", field="expires_at")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_canceled(self) -> bool:
        return self.canceled_at is not None

    @property
    def ttl(self) -> timedelta:
        """The lifetime requested when the order was created."""
        return self.expires_at - self.created_at

    @property
    def has_payment_instructions(self) -> bool:
        return any((self.qr_payload, self.qr_image_url, self.payment_url, self.barcode))

    def remaining_seconds(self, now: datetime) -> float:
        return max(0.0, (self.expires_at - now).total_seconds())

    def snapshot(self) -> "PaymentOrder":
        """Detached copy handed to callbacks and persistence."""
        return dataclasses.replace(self)

    def ensure_regenerable(self) -> None:
        if self.status == OrderStatus.PAID:
            raise OrderNotRegenerableException(self.order_id, self.status.value)
        if self.status in (OrderStatus.EXPIRED, OrderStatus.FAILED):
            return
        if self.is_canceled:
            return
        raise OrderNotRegenerableException(self.order_id, self.status.value)

    def regenerate(self, new_order_id: str, now: datetime) -> "PaymentOrder":
        """New attempt with the same cart, customer and requested lifetime."""
        self.ensure_regenerable()
        return PaymentOrder(
            order_id=new_order_id,
            provider=self.provider,
            method=self.method,
            amount_minor_units=self.amount_minor_units,
            customer=self.customer,
            line_items=self.line_items,
            created_at=now,
            expires_at=now + self.ttl,
            retry_count=self.retry_count + 1,
            regenerated_from=self.order_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "provider": self.provider,
            "method": self.method.value,
            "amount_minor_units": self.amount_minor_units,
            "status": self.status.value,
            "gateway_order_id": self.gateway_order_id,
            "charge_id": self.charge_id,
            "transaction_id": self.transaction_id,
            "qr_payload": self.qr_payload,
            "qr_image_url": self.qr_image_url,
            "payment_url": self.payment_url,
            "barcode": self.barcode,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "paid_at": _iso(self.paid_at),
            "updated_at": _iso(self.updated_at),
            "canceled_at": _iso(self.canceled_at),
            "customer": self.customer.to_dict(),
            "line_items": [item.to_dict() for item in self.line_items],
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "retry_count": self.retry_count,
            "regenerated_from": self.regenerated_from,
            "degraded_fields": list(self.degraded_fields),
        }
