"""
Factory for payment gateway adapters.
"""
from __future__ import annotations

from typing import Mapping, Optional

import httpx

from application.ports.clock import Clock
from application.ports.payment_gateway import PaymentGateway
from core.settings import PaymentSettings

SUPPORTED_PROVIDERS = ("pagarme", "pagseguro")


def get_payment_gateway(
    provider: str,
    settings: PaymentSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None,
) -> PaymentGateway:
    name = (provider or settings.default_provider).lower()
    if name in {"pagarme", "pagar.me", "pagar_me"}:
        from .pagarme_client import PagarmeGateway
        return PagarmeGateway(settings, transport=transport, clock=clock)
    if name in {"pagseguro", "pagbank"}:
        from .pagseguro_client import PagseguroGateway
        return PagseguroGateway(settings, transport=transport, clock=clock)
    raise ValueError(f"Unsupported payment provider: {name}")


def build_payment_gateways(
    settings: PaymentSettings,
    *,
    transports: Optional[Mapping[str, httpx.AsyncBaseTransport]] = None,
    clock: Optional[Clock] = None,
) -> dict[str, PaymentGateway]:
    """One adapter per supported provider, keyed by provider name."""
    transports = transports or {}
    return {
        name: get_payment_gateway(name, settings, transport=transports.get(name), clock=clock)
        for name in SUPPORTED_PROVIDERS
    }
