"""
Adapter-internal failures raised while interpreting gateway answers.

They never leave the payments package: adapters classify them into a
domain ``PaymentGatewayError`` before returning to the application layer.
"""
from __future__ import annotations

from typing import Any, Optional


class GatewayDeclinedError(Exception):
    """The gateway answered 2xx but the charge or transaction failed."""

    def __init__(self, payload: Any, *, code: Optional[str] = None, message: Optional[str] = None):
        self.payload = payload
        self.code = code
        self.message = message
        super().__init__(message or f"Payment declined by gateway (code={code})")


class IncompleteGatewayResponseError(Exception):
    """The gateway answered 2xx without QR code, image, payment link or barcode."""

    def __init__(self, payload: Any, *, final: bool = False):
        self.payload = payload
        # final: the one re-read was already spent
        self.final = final
        super().__init__("Gateway response carries no payment instructions")


class GatewayNotConfiguredError(Exception):
    """Credentials for the provider are missing."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Credentials for payment provider '{provider}' are not configured")
