"""Pytest bootstrap configuration.

Shared fixtures: a controllable clock, stub gateways that never touch the
network, ready-made settings and customer data.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from core.settings import PaymentSettings
from domain.payment_order.value_objects import GatewayOrderView, GatewayStatus


START = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


async def drain(rounds: int = 25) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Clock whose time only moves when a test calls ``advance``."""

    def __init__(self, start: datetime = START):
        self._now = start
        self._sleepers: list[tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        entry = (self._now + timedelta(seconds=seconds), future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking sleepers in deadline order."""
        target = self._now + timedelta(seconds=seconds)
        # freshly started tasks register their sleeps first
        await drain()
        while True:
            pending = [deadline for deadline, fut in self._sleepers if not fut.done()]
            if not pending or min(pending) > target:
                break
            self._now = max(self._now, min(pending))
            for deadline, fut in list(self._sleepers):
                if deadline <= self._now and not fut.done():
                    fut.set_result(None)
            await drain()
        self._now = target
        await drain()


class StubGateway:
    """Gateway double: scripted create/check results, counts calls."""

    def __init__(self, provider: str = "pagarme", create_result: Any = None, statuses: Optional[list] = None):
        self.provider = provider
        self.create_result = create_result
        self.statuses = list(statuses or [])
        self.create_calls = 0
        self.status_calls = 0
        self.closed = False
        self.created_orders: list = []

    async def create(self, order):
        self.create_calls += 1
        self.created_orders.append(order)
        result = self.create_result
        if callable(result) and not isinstance(result, GatewayOrderView):
            result = await result(order)
        if isinstance(result, BaseException):
            raise result
        return result

    async def check_status(self, order):
        self.status_calls += 1
        result = self.statuses.pop(0) if len(self.statuses) > 1 else (self.statuses[0] if self.statuses else None)
        if result is None:
            result = GatewayOrderView(gateway_order_id=order.gateway_order_id, status=GatewayStatus.PENDING)
        if isinstance(result, BaseException):
            raise result
        return result

    async def aclose(self):
        self.closed = True


def pix_view(now: datetime = START, minutes: int = 30, **overrides) -> GatewayOrderView:
    data = dict(
        gateway_order_id="or_123",
        charge_id="ch_123",
        transaction_id="tran_123",
        qr_payload="00020101021226830014br.gov.bcb.pix",
        qr_image_url="https://api.pagar.me/core/v5/transactions/tran_123/qrcode",
        expires_at=now + timedelta(minutes=minutes),
        status=GatewayStatus.PENDING,
    )
    data.update(overrides)
    return GatewayOrderView(**data)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(
        default_provider="pagarme",
        poll_interval_seconds=3.0,
        default_expiry_minutes=30,
        retry={"max": 2, "base_backoff": 0.0},
        pagarme={"api_key": "sk_test_123", "base_url": "https://api.pagar.me/core/v5"},
        pagseguro={"token": "ps_token_123", "base_url": "https://api.pagseguro.com"},
    )


@pytest.fixture
def customer_data() -> dict:
    return {
        "name": "Maria Silva",
        "email": "maria@example.com",
        "document": "123.456.789-09",
        "address": {
            "line_1": "100, Rua Augusta, Consolação",
            "zip_code": "01305-000",
            "city": "São Paulo",
            "state": "sp",
            "country": "br",
        },
        "phone": {"country_code": "55", "area_code": "11", "number": "987654321"},
    }


@pytest.fixture
def make_gateway():
    return StubGateway


@pytest.fixture
def make_view():
    return pix_view


@pytest.fixture
def settle():
    return drain


@pytest.fixture
def make_order(customer_data):
    from domain.payment_order import Customer, LineItem, PaymentOrder

    def _make(method="pix", ttl=timedelta(minutes=30), **kwargs):
        data = dict(
            order_id="ord_1",
            provider="pagarme",
            method=method,
            amount_minor_units=1000,
            customer=Customer.from_mapping(customer_data),
            line_items=(LineItem(description="Café expresso", amount_minor_units=1000),),
            created_at=START,
            expires_at=START + ttl,
        )
        data.update(kwargs)
        return PaymentOrder(**data)

    return _make
