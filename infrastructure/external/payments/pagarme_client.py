"""
Pagar.me core v5 adapter.

- ``POST /orders`` with one PIX or boleto payment
- ``GET /orders/{id}`` for status checks
- HTTP Basic auth with the secret key as user name and an empty password
"""
from __future__ import annotations

from typing import Any

import httpx

from domain.payment_order.entity import PaymentOrder
from domain.payment_order.value_objects import Customer, PaymentMethod
from infrastructure.external.payments.base import BasePaymentGateway
from infrastructure.external.payments.exceptions import GatewayNotConfiguredError


class PagarmeGateway(BasePaymentGateway):
    provider = "pagarme"

    def _base_url(self) -> str:
        return self._settings.pagarme.base_url

    def _credentials(self) -> dict[str, Any]:
        api_key = self._settings.pagarme.api_key
        if api_key is None or not api_key.get_secret_value():
            raise GatewayNotConfiguredError(self.provider)
        return {"auth": httpx.BasicAuth(api_key.get_secret_value(), "")}

    def build_create_payload(self, order: PaymentOrder) -> dict[str, Any]:
        max_len = self._settings.description_max_length
        payload: dict[str, Any] = {
            "code": order.order_id,
            "items": [
                {
                    "amount": item.amount_minor_units,
                    "description": item.description[:max_len],
                    "quantity": item.quantity,
                    "code": item.code or f"{order.order_id}-{index + 1}",
                }
                for index, item in enumerate(order.line_items)
            ],
            "customer": self._customer(order.customer),
            "payments": [self._payment(order)],
            "metadata": {
                "order_id": order.order_id,
                "source": "pos",
                "retry_count": str(order.retry_count),
            },
        }
        if order.regenerated_from:
            payload["metadata"]["regenerated_from"] = order.regenerated_from
        return payload

    def _payment(self, order: PaymentOrder) -> dict[str, Any]:
        if order.method == PaymentMethod.BOLETO:
            return {
                "payment_method": "boleto",
                "boleto": {
                    "instructions": self._settings.boleto_instructions,
                    "due_at": order.expires_at.isoformat(),
                },
            }
        expires_in = min(
            max(self._ttl_seconds(order), self._settings.pix_min_expiry_seconds),
            self._settings.pix_max_expiry_seconds,
        )
        return {
            "payment_method": "pix",
            "pix": {
                "expires_in": expires_in,
                "additional_information": [{"name": "Pedido", "value": order.order_id}],
            },
        }

    @staticmethod
    def _customer(customer: Customer) -> dict[str, Any]:
        address = customer.address
        data: dict[str, Any] = {
            "name": customer.name,
            "email": customer.email,
            "document": customer.document,
            "document_type": customer.document_type,
            "type": customer.type,
            "address": {
                "line_1": address.line_1,
                "zip_code": address.zip_code,
                "city": address.city,
                "state": address.state,
                "country": address.country,
            },
        }
        if address.line_2:
            data["address"]["line_2"] = address.line_2
        if customer.phone:
            data["phones"] = {
                "mobile_phone": {
                    "country_code": customer.phone.country_code,
                    "area_code": customer.phone.area_code,
                    "number": customer.phone.number,
                }
            }
        return data
