"""
OrderStateMachine - the only code allowed to move a PaymentOrder's status.

    generating -> waiting | failed
    waiting    -> paid | expired | failed

Every method returns the OrderStatusChanged event for the transition it
performed, or None when the message changed nothing. Messages that reach an
order already in a terminal state are ignored, so each order reports its
terminal state exactly once.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from domain.payment_order.entity import OrderStatus, PaymentOrder
from domain.payment_order.error_detail import ErrorDetail
from domain.payment_order.events import OrderStatusChanged
from domain.payment_order.exceptions import InvalidTransitionException
from domain.payment_order.value_objects import GatewayOrderView, GatewayStatus
from shared.codes.payment_codes import ErrorKind

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.GENERATING: frozenset({OrderStatus.WAITING, OrderStatus.FAILED}),
    OrderStatus.WAITING: frozenset({OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class OrderStateMachine:
    def __init__(self, order: PaymentOrder):
        self.order = order

    @property
    def status(self) -> OrderStatus:
        return self.order.status

    def _move(self, target: OrderStatus, now: datetime, reason: Optional[str] = None) -> OrderStatusChanged:
        current = self.order.status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionException(self.order.order_id, current.value, target.value)
        self.order.status = target
        self.order.updated_at = now
        return OrderStatusChanged(
            order_id=self.order.order_id,
            previous=current.value,
            current=target.value,
            reason=reason,
            occurred_at=now,
        )

    def complete_generation(self, view: GatewayOrderView, now: datetime) -> Optional[OrderStatusChanged]:
        """Seed the order from the first gateway response."""
        if self.order.status != OrderStatus.GENERATING:
            return None
        if not view.has_payment_instructions:
            # adapters should have caught this; never let a dead order reach waiting
            return self.fail(ErrorDetail.of(ErrorKind.INCOMPLETE_GATEWAY_RESPONSE, retryable=False), now)

        order = self.order
        order.gateway_order_id = view.gateway_order_id
        order.charge_id = view.charge_id
        order.transaction_id = view.transaction_id
        order.qr_payload = view.qr_payload
        order.qr_image_url = view.qr_image_url
        order.payment_url = view.payment_url
        order.barcode = view.barcode
        if view.expires_at and view.expires_at > order.created_at:
            order.expires_at = view.expires_at
        order.degraded_fields = tuple(view.degraded_fields)
        order.last_error = None
        return self._move(OrderStatus.WAITING, now)

    def fail(self, detail: ErrorDetail, now: datetime) -> Optional[OrderStatusChanged]:
        if self.order.status.is_terminal:
            return None
        self.order.last_error = detail
        return self._move(OrderStatus.FAILED, now, reason=detail.kind.value)

    def observe(self, view: GatewayOrderView, now: datetime) -> Optional[OrderStatusChanged]:
        """Apply one status check result."""
        if self.order.status != OrderStatus.WAITING:
            return None
        # wall-clock expiry wins over whatever the gateway reports
        if now >= self.order.expires_at:
            return self.expire(now)

        if view.status == GatewayStatus.PAID:
            self.order.paid_at = view.paid_at or now
            self.order.last_error = None
            return self._move(OrderStatus.PAID, now)
        if view.status in (GatewayStatus.FAILED, GatewayStatus.CANCELED):
            detail = ErrorDetail.of(
                ErrorKind.PAYMENT_DECLINED,
                view.failure_message,
                code=view.failure_code or view.status.value,
            )
            return self.fail(detail, now)
        if view.status == GatewayStatus.EXPIRED:
            return self.expire(now)
        return None

    def poll_failed(self, detail: ErrorDetail, now: datetime) -> Optional[OrderStatusChanged]:
        """A status check raised; transient errors leave the order waiting."""
        if self.order.status != OrderStatus.WAITING:
            return None
        if now >= self.order.expires_at:
            return self.expire(now)
        if detail.retryable:
            self.order.last_error = detail
            return None
        return self.fail(detail, now)

    def expire(self, now: datetime) -> Optional[OrderStatusChanged]:
        if self.order.status != OrderStatus.WAITING:
            return None
        return self._move(OrderStatus.EXPIRED, now, reason="expired")

    def tick(self, now: datetime) -> Optional[OrderStatusChanged]:
        """Expire the order if its deadline has passed."""
        if self.order.status == OrderStatus.WAITING and now >= self.order.expires_at:
            return self.expire(now)
        return None
