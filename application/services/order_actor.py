"""
OrderActor - single writer for one payment order.

While the order is generating, the coroutine awaiting ``generate`` is the
only writer. Once it is waiting, every change goes through the actor's inbox
and is applied by one task in arrival order: poll results, poll failures,
the expiry countdown and cancel requests. Leaving ``waiting`` stops polling
and the countdown in the same step, so nothing arrives late.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Union

from application.ports.clock import Clock
from application.ports.payment_gateway import PaymentGateway
from application.services.polling_scheduler import PollingScheduler
from core.logging_config import get_logger
from domain.payment_order.entity import OrderStatus, PaymentOrder
from domain.payment_order.error_detail import ErrorDetail
from domain.payment_order.events import OrderStatusChanged
from domain.payment_order.exceptions import PaymentGatewayError
from domain.payment_order.state_machine import OrderStateMachine
from domain.payment_order.value_objects import GatewayOrderView

logger = get_logger(__name__)


@dataclass
class PollCompleted:
    view: GatewayOrderView


@dataclass
class PollFailed:
    detail: ErrorDetail


@dataclass
class ExpiryFired:
    pass


@dataclass
class CancelRequested:
    done: asyncio.Future


Message = Union[PollCompleted, PollFailed, ExpiryFired, CancelRequested]

# publish(order, event): event is None for snapshots that are not transitions
Publisher = Callable[[PaymentOrder, Optional[OrderStatusChanged]], None]


class OrderActor:
    def __init__(
        self,
        order: PaymentOrder,
        gateway: PaymentGateway,
        scheduler: PollingScheduler,
        clock: Clock,
        publish: Publisher,
    ) -> None:
        self.order = order
        self.machine = OrderStateMachine(order)
        self._gateway = gateway
        self._scheduler = scheduler
        self._clock = clock
        self._publish = publish
        self._inbox: asyncio.Queue[Message] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._countdown: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def order_id(self) -> str:
        return self.order.order_id

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def generate(self) -> None:
        """Send the one creation request and seed the order from its answer."""
        try:
            view = await self._gateway.create(self.order)
        except PaymentGatewayError as exc:
            if self._discard_if_canceled("create_failed"):
                return
            self._apply(self.machine.fail(exc.detail, self._clock.now()))
            return
        except Exception as exc:
            logger.exception("gateway_create_unexpected_error", order_id=self.order_id)
            if self._discard_if_canceled("create_failed"):
                return
            self._apply(self.machine.fail(ErrorDetail.unexpected(exc), self._clock.now()))
            return

        if self._discard_if_canceled("created"):
            return
        self._apply(self.machine.complete_generation(view, self._clock.now()))

    def start(self) -> None:
        """Start the inbox loop, status polling and the expiry countdown."""
        if self.order.status != OrderStatus.WAITING or self._cancel_requested or self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name=f"order:{self.order_id}")
        self._scheduler.start(self.order_id, self._check, self._inbox.put_nowait)
        self._countdown = asyncio.create_task(self._count_down(), name=f"expiry:{self.order_id}")

    def deliver(self, message: Message) -> None:
        self._inbox.put_nowait(message)

    async def cancel(self) -> None:
        """Idempotent; returns once polling and the countdown are stopped."""
        if self._cancel_requested or self.order.is_terminal:
            return
        if self.order.status == OrderStatus.GENERATING:
            # the pending gateway answer will be dropped by generate()
            self._mark_canceled()
            return
        if not self.is_running or self._task is asyncio.current_task():
            self._mark_canceled()
            return
        done = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(CancelRequested(done))
        await done
        await self._stop_timers_and_wait()

    async def aclose(self) -> None:
        self._stop_timers()
        if self.is_running:
            self._task.cancel()
        await self._stop_timers_and_wait()

    async def _check(self) -> Message:
        try:
            view = await self._gateway.check_status(self.order)
        except PaymentGatewayError as exc:
            return PollFailed(exc.detail)
        return PollCompleted(view)

    async def _count_down(self) -> None:
        await self._clock.sleep(self.order.remaining_seconds(self._clock.now()))
        self._inbox.put_nowait(ExpiryFired())

    async def _run(self) -> None:
        try:
            while self.order.status == OrderStatus.WAITING and not self._cancel_requested:
                message = await self._inbox.get()
                self._handle(message)
        finally:
            self._stop_timers()
            self._drain()

    def _handle(self, message: Message) -> None:
        now = self._clock.now()
        # the deadline is checked before anything else, including a late "paid"
        expired = self.machine.tick(now)
        if expired is not None:
            logger.info("order_expired_before_message", order_id=self.order_id, message=type(message).__name__)
            self._apply(expired)
            if isinstance(message, CancelRequested) and not message.done.done():
                message.done.set_result(None)
            return

        if isinstance(message, PollCompleted):
            self._apply(self.machine.observe(message.view, now))
        elif isinstance(message, PollFailed):
            detail = message.detail
            if detail.retryable and self.order.status == OrderStatus.WAITING:
                logger.info(
                    "poll_transient_error",
                    order_id=self.order_id,
                    kind=detail.kind.value,
                    code=detail.code,
                )
            self._apply(self.machine.poll_failed(detail, now))
        elif isinstance(message, ExpiryFired):
            self._apply(self.machine.expire(now))
        elif isinstance(message, CancelRequested):
            self._mark_canceled()
            if not message.done.done():
                message.done.set_result(None)

    def _apply(self, event: Optional[OrderStatusChanged]) -> None:
        if event is None:
            return
        if self.order.status != OrderStatus.WAITING:
            self._stop_timers()
        logger.info(
            "order_status_changed",
            order_id=self.order_id,
            previous=event.previous,
            current=event.current,
            reason=event.reason,
        )
        self._publish(self.order.snapshot(), event)

    def _mark_canceled(self) -> None:
        self._cancel_requested = True
        self._stop_timers()
        now = self._clock.now()
        self.order.canceled_at = now
        self.order.updated_at = now
        logger.info("order_canceled", order_id=self.order_id, status=self.order.status.value)
        self._publish(self.order.snapshot(), None)

    def _discard_if_canceled(self, outcome: str) -> bool:
        if not self._cancel_requested:
            return False
        logger.info("gateway_response_discarded", order_id=self.order_id, outcome=outcome)
        return True

    def _stop_timers(self) -> None:
        self._scheduler.cancel(self.order_id)
        if self._countdown is not None and not self._countdown.done():
            self._countdown.cancel()

    async def _stop_timers_and_wait(self) -> None:
        current = asyncio.current_task()
        tasks = [
            t for t in (self._countdown, self._task)
            if t is not None and t is not current and not t.done()
        ]
        await self._scheduler.stop(self.order_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _drain(self) -> None:
        while not self._inbox.empty():
            message = self._inbox.get_nowait()
            if isinstance(message, CancelRequested) and not message.done.done():
                message.done.set_result(None)
