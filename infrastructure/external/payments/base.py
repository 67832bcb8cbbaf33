"""
Base payment gateway implementing shared concerns: transport, normalization,
classification, the single re-read for incomplete answers, and logging.

Concrete providers subclass and implement payload building and auth.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import httpx

from application.ports.clock import Clock, SystemClock
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.payment_order.entity import PaymentOrder
from domain.payment_order.exceptions import PaymentGatewayError
from domain.payment_order.value_objects import GatewayOrderView, GatewayStatus
from infrastructure.external.api_clients.base import GatewayRequest, GatewayTransport, HTTPMethod
from infrastructure.external.payments.error_classifier import ErrorClassifier
from infrastructure.external.payments.exceptions import (
    GatewayDeclinedError,
    IncompleteGatewayResponseError,
)
from infrastructure.external.payments.normalizer import ResponseNormalizer


logger = get_logger(__name__)


class BasePaymentGateway(PaymentGateway):
    provider: str = "base"
    create_path: str = "/orders"

    def __init__(
        self,
        settings: PaymentSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings
        self._clock = clock or SystemClock()
        self._transport = GatewayTransport(
            self._base_url(),
            provider=self.provider,
            timeouts=settings.timeouts,
            retry=settings.retry,
            transport=transport,
        )
        self._normalizer = ResponseNormalizer(self.provider)
        self._classifier = ErrorClassifier(self.provider)

    # Provider hooks
    def _base_url(self) -> str:
        raise NotImplementedError

    def _credentials(self) -> dict[str, Any]:
        """Per-call auth: ``{"auth": httpx.Auth}`` or ``{"headers": {...}}``."""
        raise NotImplementedError

    def build_create_payload(self, order: PaymentOrder) -> dict[str, Any]:
        raise NotImplementedError

    def status_path(self, gateway_order_id: str) -> str:
        return f"/orders/{gateway_order_id}"

    # PaymentGateway
    async def create(self, order: PaymentOrder) -> GatewayOrderView:
        try:
            payload = self.build_create_payload(order)
            raw = await self._send(HTTPMethod.POST, self.create_path, json=payload)
            view = self._normalize(raw, order)
            self._raise_if_declined(view, raw)
            if not view.has_payment_instructions:
                view = await self._reread(order, raw, view)
        except PaymentGatewayError:
            raise
        except Exception as exc:
            error = self._classifier.to_gateway_error(exc)
            self._log(
                "gateway_create_failed",
                order_id=order.order_id,
                kind=error.detail.kind.value,
                code=error.detail.code,
                http_status=error.detail.http_status,
            )
            raise error from exc

        self._log(
            "gateway_order_created",
            order_id=order.order_id,
            gateway_order_id=view.gateway_order_id,
            status=view.status.value,
            degraded_fields=list(view.degraded_fields),
        )
        return view

    async def check_status(self, order: PaymentOrder) -> GatewayOrderView:
        try:
            if not order.gateway_order_id:
                raise self._classifier.to_gateway_error({"status_code": 404, "message": "no gateway order id"})
            raw = await self._send(HTTPMethod.GET, self.status_path(order.gateway_order_id))
            view = self._normalizer.normalize(
                raw,
                order.method,
                now=self._clock.now(),
                fallback_ttl=None,
                require_instructions=False,
            )
        except PaymentGatewayError:
            raise
        except Exception as exc:
            raise self._classifier.to_gateway_error(exc) from exc
        self._log(
            "gateway_status_checked",
            level="debug",
            order_id=order.order_id,
            gateway_order_id=order.gateway_order_id,
            status=view.status.value,
        )
        return view

    async def aclose(self) -> None:
        await self._transport.aclose()

    # Helpers
    async def _send(self, method: HTTPMethod, path: str, *, json: Optional[dict] = None) -> Any:
        request = GatewayRequest(method=method, path=path, json=json, **self._credentials())
        return await self._transport.send(request)

    def _normalize(self, raw: Any, order: PaymentOrder, *, require_instructions: bool = False) -> GatewayOrderView:
        return self._normalizer.normalize(
            raw,
            order.method,
            now=self._clock.now(),
            fallback_ttl=order.ttl,
            require_instructions=require_instructions,
        )

    def _raise_if_declined(self, view: GatewayOrderView, raw: Any) -> None:
        if view.status in (GatewayStatus.FAILED, GatewayStatus.CANCELED):
            raise GatewayDeclinedError(raw, code=view.failure_code, message=view.failure_message)

    async def _reread(self, order: PaymentOrder, raw: Any, first: GatewayOrderView) -> GatewayOrderView:
        """One more look at an order created without payment instructions."""
        self._log("gateway_response_incomplete", order_id=order.order_id, gateway_order_id=first.gateway_order_id)
        if first.gateway_order_id:
            raw = await self._send(HTTPMethod.GET, self.status_path(first.gateway_order_id))
        try:
            view = self._normalize(raw, order, require_instructions=True)
        except IncompleteGatewayResponseError as exc:
            raise IncompleteGatewayResponseError(exc.payload, final=True) from exc
        self._raise_if_declined(view, raw)
        return view

    @staticmethod
    def _ttl_seconds(order: PaymentOrder) -> int:
        return int(order.ttl / timedelta(seconds=1))

    def _log(self, event: str, level: str = "info", **kwargs) -> None:
        getattr(logger, level)(event, provider=self.provider, **kwargs)
