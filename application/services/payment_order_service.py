"""
Application service for the payment order lifecycle.

Creates PIX/boleto orders against the configured gateways, keeps one actor
per live order, and reports every status change to subscribers and to the
snapshot sink. Gateways, settings, clock and sink are injected from the
composition root (API/main); nothing here reads configuration on its own.
"""
from __future__ import annotations

import asyncio
import inspect
import uuid
from collections import defaultdict
from datetime import timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from application.dtos.payment_orders import OrderHandle
from application.ports.clock import Clock, SystemClock
from application.ports.order_sink import OrderSnapshotSink
from application.ports.payment_gateway import PaymentGateway
from application.services.order_actor import OrderActor
from application.services.polling_scheduler import PollingScheduler
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.payment_order.entity import OrderStatus, PaymentOrder
from domain.payment_order.events import OrderStatusChanged
from domain.payment_order.exceptions import (
    InvalidTransitionException,
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderValidationRejected,
)
from domain.payment_order.value_objects import Customer, LineItem, PaymentMethod, require_positive_amount

logger = get_logger(__name__)

# (order_id, snapshot) -> None | Awaitable[None]
StatusCallback = Callable[[str, PaymentOrder], Any]

SECONDS_PER_DAY = 86400


def new_order_id() -> str:
    return f"ord_{uuid.uuid4().hex}"


class PaymentOrderService:
    def __init__(
        self,
        gateways: Mapping[str, PaymentGateway],
        settings: PaymentSettings,
        *,
        clock: Optional[Clock] = None,
        sink: Optional[OrderSnapshotSink] = None,
        scheduler: Optional[PollingScheduler] = None,
        id_factory: Callable[[], str] = new_order_id,
    ) -> None:
        self._gateways = {name.lower(): gw for name, gw in gateways.items()}
        self._settings = settings
        self._clock = clock or SystemClock()
        self._sink = sink
        self._scheduler = scheduler or PollingScheduler(settings.poll_interval_seconds, self._clock)
        self._id_factory = id_factory
        self._orders: dict[str, PaymentOrder] = {}
        self._actors: dict[str, OrderActor] = {}
        self._listeners: dict[str, list[StatusCallback]] = defaultdict(list)
        self._background: set[asyncio.Task] = set()
        self._evictions: dict[str, asyncio.Task] = {}

    @property
    def providers(self) -> list[str]:
        return sorted(self._gateways)

    async def create_order(
        self,
        amount_minor_units: int,
        method: str,
        customer: Mapping[str, Any] | Customer,
        line_items: Optional[Sequence[Mapping[str, Any] | LineItem]] = None,
        ttl_seconds: Optional[int] = None,
        order_code: Optional[str] = None,
        provider: Optional[str] = None,
        on_status_changed: Optional[StatusCallback] = None,
    ) -> OrderHandle:
        """
        Create a payment order and wait for the gateway to issue instructions.

        Input problems raise OrderValidationRejected before any gateway call.
        Gateway problems never raise: the returned order is failed and carries
        the classified error in ``last_error``.
        """
        provider_name = (provider or self._settings.default_provider or "").strip().lower()
        gateway = self._gateways.get(provider_name)
        if gateway is None:
            raise OrderValidationRejected(f"unknown payment provider: {provider or provider_name}", field="provider")
        require_positive_amount(amount_minor_units, "amount_minor_units")

        try:
            payment_method = PaymentMethod(str(method).lower())
        except ValueError:
            raise OrderValidationRejected(f"unsupported payment method: {method}", field="method") from None

        if order_code is not None:
            order_code = str(order_code).strip()
            if not order_code:
                raise OrderValidationRejected("order_code must not be blank", field="order_code")

        customer_snapshot = Customer.from_mapping(customer)
        ttl = self._resolve_ttl(payment_method, ttl_seconds)
        items = self._caller_line_items(amount_minor_units, line_items)
        if order_code is not None:
            self._ensure_code_available(order_code)
        order_id = order_code or self._id_factory()
        if not items:
            items = (LineItem(description=f"Pedido {order_id}", amount_minor_units=amount_minor_units),)
        now = self._clock.now()

        order = PaymentOrder(
            order_id=order_id,
            provider=provider_name,
            method=payment_method,
            amount_minor_units=amount_minor_units,
            customer=customer_snapshot,
            line_items=items,
            created_at=now,
            expires_at=now + ttl,
        )
        logger.info(
            "order_created",
            order_id=order_id,
            provider=provider_name,
            method=payment_method.value,
            amount_minor_units=amount_minor_units,
            ttl_seconds=int(ttl.total_seconds()),
        )
        return await self._launch(order, gateway, [on_status_changed] if on_status_changed else [])

    async def cancel(self, order_id: str) -> None:
        """Safe from any state and idempotent; terminal orders are left untouched."""
        self._require(order_id)
        actor = self._actors.get(order_id)
        if actor is None:
            return
        await actor.cancel()
        order = self._orders.get(order_id)
        if order is not None and order.is_canceled:
            self._schedule_eviction(order_id)

    async def regenerate(self, order_id: str, on_status_changed: Optional[StatusCallback] = None) -> OrderHandle:
        """New attempt for an expired, failed or canceled order; keeps its subscribers."""
        previous = self._require(order_id)
        previous.ensure_regenerable()
        gateway = self._gateways.get(previous.provider)
        if gateway is None:
            raise OrderValidationRejected(f"unknown payment provider: {previous.provider}", field="provider")

        order = previous.regenerate(self._id_factory(), self._clock.now())
        listeners = list(self._listeners.get(order_id, []))
        if on_status_changed is not None:
            listeners.append(on_status_changed)
        logger.info(
            "order_regenerated",
            order_id=order.order_id,
            regenerated_from=order_id,
            retry_count=order.retry_count,
        )
        return await self._launch(order, gateway, listeners)

    def get_order(self, order_id: str) -> PaymentOrder:
        return self._require(order_id).snapshot()

    def list_orders(self) -> list[PaymentOrder]:
        return [order.snapshot() for order in self._orders.values()]

    def subscribe(self, order_id: str, callback: StatusCallback) -> None:
        self._require(order_id)
        self._listeners[order_id].append(callback)

    def release(self, order_id: str) -> None:
        """Forget a finished order; live orders must be canceled first."""
        order = self._require(order_id)
        if not (order.is_terminal or order.is_canceled):
            raise InvalidTransitionException(order_id, order.status.value, "released")
        self._forget(order_id)

    async def aclose(self) -> None:
        evictions = list(self._evictions.values())
        for task in evictions:
            task.cancel()
        if evictions:
            await asyncio.gather(*evictions, return_exceptions=True)
        for actor in list(self._actors.values()):
            await actor.aclose()
        await self._scheduler.aclose()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        for gateway in self._gateways.values():
            await gateway.aclose()

    async def _launch(
        self, order: PaymentOrder, gateway: PaymentGateway, listeners: Iterable[StatusCallback]
    ) -> OrderHandle:
        actor = OrderActor(order, gateway, self._scheduler, self._clock, self._publish)
        self._orders[order.order_id] = order
        self._actors[order.order_id] = actor
        self._listeners[order.order_id] = list(listeners)

        self._publish(order.snapshot(), None)
        await actor.generate()
        if order.status == OrderStatus.WAITING and not order.is_canceled:
            actor.start()
            logger.info(
                "order_waiting",
                order_id=order.order_id,
                expires_in_seconds=round(order.remaining_seconds(self._clock.now())),
                degraded_fields=list(order.degraded_fields),
            )
        elif order.status == OrderStatus.FAILED and order.last_error is not None:
            logger.warning(
                "order_generation_failed",
                order_id=order.order_id,
                kind=order.last_error.kind.value,
                code=order.last_error.code,
                retryable=order.last_error.retryable,
            )
        return OrderHandle(order_id=order.order_id, order=order.snapshot())

    def _publish(self, snapshot: PaymentOrder, event: Optional[OrderStatusChanged]) -> None:
        if self._sink is not None:
            self._spawn(self._sink.persist(snapshot), "order_persist_failed", snapshot.order_id)
        if event is None:
            return
        for callback in list(self._listeners.get(snapshot.order_id, [])):
            try:
                outcome = callback(snapshot.order_id, snapshot)
            except Exception:
                logger.exception("status_callback_failed", order_id=snapshot.order_id)
                continue
            if inspect.isawaitable(outcome):
                self._spawn(outcome, "status_callback_failed", snapshot.order_id)
        if snapshot.is_terminal:
            self._schedule_eviction(snapshot.order_id)

    def _schedule_eviction(self, order_id: str) -> None:
        order = self._orders.get(order_id)
        if order is None or order_id in self._evictions:
            return
        self._evictions[order_id] = asyncio.ensure_future(self._evict_later(order_id, order))

    async def _evict_later(self, order_id: str, order: PaymentOrder) -> None:
        await self._clock.sleep(self._settings.terminal_retention_seconds)
        self._evictions.pop(order_id, None)
        if self._orders.get(order_id) is order:
            self._forget(order_id)
            logger.info("order_evicted", order_id=order_id, status=order.status.value)

    def _forget(self, order_id: str) -> None:
        self._orders.pop(order_id, None)
        self._actors.pop(order_id, None)
        self._listeners.pop(order_id, None)
        task = self._evictions.pop(order_id, None)
        if task is not None:
            task.cancel()

    def _spawn(self, awaitable: Any, failure_event: str, order_id: str) -> None:
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(failure_event, order_id=order_id, error=str(exc), exc_info=exc)

        task.add_done_callback(_done)

    def _require(self, order_id: str) -> PaymentOrder:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    def _ensure_code_available(self, order_code: str) -> None:
        existing = self._orders.get(order_code)
        if existing is None:
            return
        if existing.is_terminal or existing.is_canceled:
            self.release(order_code)
            return
        raise OrderAlreadyExistsException(order_code)

    def _resolve_ttl(self, method: PaymentMethod, ttl_seconds: Optional[int]) -> timedelta:
        settings = self._settings
        if ttl_seconds is not None and (isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int)):
            raise OrderValidationRejected("ttl_seconds must be an integer", field="ttl_seconds")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise OrderValidationRejected(f"ttl_seconds must be positive: {ttl_seconds}", field="ttl_seconds")

        if method == PaymentMethod.BOLETO:
            if ttl_seconds is None:
                return timedelta(days=settings.boleto_due_days)
            if ttl_seconds < SECONDS_PER_DAY:
                raise OrderValidationRejected("boleto due date must be at least one day ahead", field="ttl_seconds")
            return timedelta(seconds=ttl_seconds)

        if ttl_seconds is None:
            ttl_seconds = settings.default_expiry_minutes * 60
        clamped = min(max(ttl_seconds, settings.pix_min_expiry_seconds), settings.pix_max_expiry_seconds)
        return timedelta(seconds=clamped)

    @staticmethod
    def _caller_line_items(
        amount_minor_units: int, line_items: Optional[Sequence[Mapping[str, Any] | LineItem]]
    ) -> tuple[LineItem, ...]:
        """Gateways charge the item total, so it must match the order amount."""
        if not line_items:
            return ()
        items = tuple(LineItem.from_mapping(item) for item in line_items)
        total = sum(item.amount_minor_units * item.quantity for item in items)
        if total != amount_minor_units:
            raise OrderValidationRejected(
                f"line items total {total} does not match amount_minor_units {amount_minor_units}",
                field="line_items",
                details={"line_items_total": total, "amount_minor_units": amount_minor_units},
            )
        return items
