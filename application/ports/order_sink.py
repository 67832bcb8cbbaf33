"""
Persistence port for order snapshots.

The lifecycle core hands a full snapshot to the sink on creation, on every
transition and on cancel. The call is fire-and-forget: a failing sink is
logged and never blocks the state machine.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment_order.entity import PaymentOrder


@runtime_checkable
class OrderSnapshotSink(Protocol):
    async def persist(self, order: PaymentOrder) -> None: ...
