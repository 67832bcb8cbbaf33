"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Every failure is raised as ``PaymentGatewayError`` carrying an already
classified ``ErrorDetail``; no transport or parsing error crosses this port.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment_order.entity import PaymentOrder
from domain.payment_order.value_objects import GatewayOrderView


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for PIX/boleto providers."""

    provider: str

    async def create(self, order: PaymentOrder) -> GatewayOrderView:
        """Issue payment instructions; the returned view always has at least one of them."""
        ...

    async def check_status(self, order: PaymentOrder) -> GatewayOrderView: ...

    async def aclose(self) -> None: ...
