"""In-memory implementation of OrderSnapshotSink.

Single-process only. Keeps the latest snapshot per order plus the full
history, which is what the POS front end and the tests read back.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Optional

from application.ports.order_sink import OrderSnapshotSink
from core.logging_config import get_logger
from domain.payment_order.entity import PaymentOrder

logger = get_logger(__name__)


class InMemoryOrderSnapshotSink(OrderSnapshotSink):
    def __init__(self) -> None:
        self._latest: dict[str, dict[str, Any]] = {}
        self._history: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def persist(self, order: PaymentOrder) -> None:  # type: ignore[override]
        row = order.to_dict()
        async with self._lock:
            self._latest[order.order_id] = row
            self._history[order.order_id].append(row)
        logger.debug("order_snapshot_persisted", order_id=order.order_id, status=row["status"])

    def latest(self, order_id: str) -> Optional[dict[str, Any]]:
        return self._latest.get(order_id)

    def history(self, order_id: str) -> list[dict[str, Any]]:
        return list(self._history.get(order_id, []))
