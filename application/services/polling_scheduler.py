"""
PollingScheduler - one fixed-cadence status check loop per order.

A tick whose previous check is still running is skipped, so checks for the
same order never overlap. ``stop`` cancels the ticker and any in-flight
check; whatever that check would have produced is dropped.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from application.ports.clock import Clock, SystemClock
from core.logging_config import get_logger

logger = get_logger(__name__)

CheckFn = Callable[[], Awaitable[Any]]
UpdateFn = Callable[[Any], Any]


@dataclass
class _Poller:
    order_id: str
    check: CheckFn
    on_update: UpdateFn
    ticker: Optional[asyncio.Task] = None
    inflight: Optional[asyncio.Task] = None
    stopped: bool = False
    ticks: int = field(default=0)

    def tasks(self) -> list[asyncio.Task]:
        return [t for t in (self.ticker, self.inflight) if t is not None]


class PollingScheduler:
    def __init__(self, interval_seconds: float = 3.0, clock: Optional[Clock] = None) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._clock = clock or SystemClock()
        self._pollers: dict[str, _Poller] = {}

    def is_running(self, order_id: str) -> bool:
        return order_id in self._pollers

    def start(self, order_id: str, check: CheckFn, on_update: UpdateFn) -> None:
        """Begin polling; the first check runs one interval after start."""
        if order_id in self._pollers:
            raise RuntimeError(f"polling already running for order {order_id}")
        poller = _Poller(order_id=order_id, check=check, on_update=on_update)
        poller.ticker = asyncio.create_task(self._tick_loop(poller), name=f"poll:{order_id}")
        self._pollers[order_id] = poller
        logger.debug("polling_started", order_id=order_id, interval_seconds=self.interval_seconds)

    def cancel(self, order_id: str) -> list[asyncio.Task]:
        """Stop polling without waiting; returns the tasks being cancelled."""
        poller = self._pollers.pop(order_id, None)
        if poller is None:
            return []
        poller.stopped = True
        tasks = poller.tasks()
        for task in tasks:
            task.cancel()
        logger.debug("polling_stopped", order_id=order_id, ticks=poller.ticks)
        return tasks

    async def stop(self, order_id: str) -> None:
        tasks = [t for t in self.cancel(order_id) if t is not asyncio.current_task()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        for order_id in list(self._pollers):
            await self.stop(order_id)

    async def _tick_loop(self, poller: _Poller) -> None:
        while not poller.stopped:
            await self._clock.sleep(self.interval_seconds)
            if poller.stopped:
                return
            poller.ticks += 1
            if poller.inflight is not None and not poller.inflight.done():
                logger.debug("poll_tick_skipped", order_id=poller.order_id, tick=poller.ticks)
                continue
            poller.inflight = asyncio.create_task(
                self._check_once(poller), name=f"poll-check:{poller.order_id}"
            )

    async def _check_once(self, poller: _Poller) -> None:
        try:
            result = await poller.check()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("poll_check_failed", order_id=poller.order_id)
            return
        if poller.stopped:
            return
        try:
            outcome = poller.on_update(result)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("poll_update_failed", order_id=poller.order_id)
