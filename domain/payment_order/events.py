"""
Payment order domain events.

Returned by the state machine for every transition; the application layer
turns them into callbacks and persistence snapshots.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentOrderEvent:
    order_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderStatusChanged(PaymentOrderEvent):
    previous: str = ""
    current: str = ""
    reason: Optional[str] = None
