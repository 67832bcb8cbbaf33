"""
Payment order DTOs (Pydantic v2) used at application boundaries.

Shapes only; business rules (document length, quantity range, TTL bounds)
are enforced by the domain so that in-process callers get the same checks.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from domain.payment_order.entity import PaymentOrder


class AddressIn(BaseModel):
    line_1: str
    line_2: Optional[str] = None
    zip_code: str
    city: str
    state: str
    country: str = "BR"


class PhoneIn(BaseModel):
    country_code: str = "55"
    area_code: str
    number: str


class CustomerIn(BaseModel):
    name: str
    email: str
    document: str
    document_type: Optional[Literal["CPF", "CNPJ"]] = None
    type: Optional[Literal["individual", "company"]] = None
    address: AddressIn
    phone: Optional[PhoneIn] = None


class LineItemIn(BaseModel):
    description: str
    amount_minor_units: StrictInt
    quantity: StrictInt = 1
    code: Optional[str] = None


class CreateOrderRequest(BaseModel):
    amount_minor_units: StrictInt = Field(description="Total in centavos")
    method: Literal["pix", "boleto"]
    customer: CustomerIn
    line_items: Optional[list[LineItemIn]] = None
    ttl_seconds: Optional[StrictInt] = None
    order_code: Optional[str] = None
    provider: Optional[str] = None

    def to_service_kwargs(self) -> dict[str, Any]:
        return {
            "amount_minor_units": self.amount_minor_units,
            "method": self.method,
            "customer": self.customer.model_dump(exclude_none=True),
            "line_items": [item.model_dump() for item in self.line_items] if self.line_items else None,
            "ttl_seconds": self.ttl_seconds,
            "order_code": self.order_code,
            "provider": self.provider,
        }


class ErrorDetailOut(BaseModel):
    kind: str
    message: str
    retryable: bool
    code: Optional[str] = None
    http_status: Optional[int] = None


class PaymentOrderOut(BaseModel):
    order_id: str
    provider: str
    method: str
    amount_minor_units: int
    status: str
    gateway_order_id: Optional[str] = None
    qr_payload: Optional[str] = None
    qr_image_url: Optional[str] = None
    payment_url: Optional[str] = None
    barcode: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    paid_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    last_error: Optional[ErrorDetailOut] = None
    retry_count: int = 0
    regenerated_from: Optional[str] = None
    degraded_fields: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_order(cls, order: PaymentOrder) -> "PaymentOrderOut":
        data = order.to_dict()
        data.pop("customer")
        data.pop("line_items")
        return cls.model_validate(data)


@dataclass(frozen=True)
class OrderHandle:
    """What create/regenerate hand back: the id plus the order right after generation."""

    order_id: str
    order: PaymentOrder

    @property
    def status(self) -> str:
        return self.order.status.value
