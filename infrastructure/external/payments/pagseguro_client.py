"""
PagSeguro / PagBank orders adapter.

PIX orders carry a ``qr_codes`` entry; boleto orders carry a charge with a
BOLETO payment method. Auth is a Bearer token; ``sandbox`` switches hosts.
"""
from __future__ import annotations

from typing import Any

from domain.payment_order.entity import PaymentOrder
from domain.payment_order.value_objects import Customer, PaymentMethod
from infrastructure.external.payments.base import BasePaymentGateway
from infrastructure.external.payments.exceptions import GatewayNotConfiguredError
from infrastructure.external.payments.normalizer import DUE_DATE_TZ

COUNTRY_ALPHA3 = {"BR": "BRA"}


class PagseguroGateway(BasePaymentGateway):
    provider = "pagseguro"

    def _base_url(self) -> str:
        return self._settings.pagseguro.effective_base_url

    def _credentials(self) -> dict[str, Any]:
        token = self._settings.pagseguro.token
        if token is None or not token.get_secret_value():
            raise GatewayNotConfiguredError(self.provider)
        return {"headers": {"Authorization": f"Bearer {token.get_secret_value()}"}}

    def build_create_payload(self, order: PaymentOrder) -> dict[str, Any]:
        max_len = self._settings.description_max_length
        payload: dict[str, Any] = {
            "reference_id": order.order_id,
            "customer": self._customer(order.customer),
            "items": [
                {
                    "reference_id": item.code or f"{order.order_id}-{index + 1}",
                    "name": item.description[:max_len],
                    "quantity": item.quantity,
                    "unit_amount": item.amount_minor_units,
                }
                for index, item in enumerate(order.line_items)
            ],
        }
        if order.method == PaymentMethod.BOLETO:
            payload["charges"] = [self._boleto_charge(order)]
        else:
            payload["qr_codes"] = [
                {
                    "amount": {"value": order.amount_minor_units},
                    "expiration_date": order.expires_at.isoformat(),
                }
            ]
        return payload

    def _boleto_charge(self, order: PaymentOrder) -> dict[str, Any]:
        customer = order.customer
        address = customer.address
        return {
            "reference_id": order.order_id,
            "description": f"Pedido {order.order_id}"[: self._settings.description_max_length],
            "amount": {"value": order.amount_minor_units, "currency": "BRL"},
            "payment_method": {
                "type": "BOLETO",
                "boleto": {
                    "due_date": order.expires_at.astimezone(DUE_DATE_TZ).date().isoformat(),
                    "instruction_lines": {
                        "line_1": self._settings.boleto_instructions,
                        "line_2": f"Pedido {order.order_id}",
                    },
                    "holder": {
                        "name": customer.name,
                        "tax_id": customer.document,
                        "email": customer.email,
                        "address": {
                            "street": address.line_1,
                            "number": "S/N",
                            "locality": address.line_2 or address.city,
                            "city": address.city,
                            "region_code": address.state,
                            "country": COUNTRY_ALPHA3.get(address.country, address.country),
                            "postal_code": address.zip_code,
                        },
                    },
                },
            },
        }

    @staticmethod
    def _customer(customer: Customer) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": customer.name,
            "email": customer.email,
            "tax_id": customer.document,
        }
        if customer.phone:
            data["phones"] = [
                {
                    "country": customer.phone.country_code,
                    "area": customer.phone.area_code,
                    "number": customer.phone.number,
                    "type": "MOBILE",
                }
            ]
        return data
