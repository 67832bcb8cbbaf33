"""
Payment order value objects: customer snapshot, line items and the
canonical view of a gateway order.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from domain.payment_order.exceptions import OrderValidationRejected

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DOCUMENT_LENGTHS = {"CPF": 11, "CNPJ": 14}
DESCRIPTION_MAX_LENGTH = 100
MAX_QUANTITY = 100


def _digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def _required(data: Mapping[str, Any], key: str, field_name: str) -> str:
    value = data.get(key)
    if value is None or not str(value).strip():
        raise OrderValidationRejected(f"{field_name} is required", field=field_name)
    return str(value).strip()


def require_positive_amount(value: Any, field_name: str) -> int:
    # bool is an int subclass; True must not pass as 1 cent
    if isinstance(value, bool) or not isinstance(value, int):
        raise OrderValidationRejected(f"{field_name} must be an integer amount in minor units", field=field_name)
    if value <= 0:
        raise OrderValidationRejected(f"{field_name} must be greater than 0: {value}", field=field_name)
    return value


class PaymentMethod(str, Enum):
    PIX = "pix"
    BOLETO = "boleto"


class GatewayStatus(str, Enum):
    """Gateway-reported status after per-provider normalization."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Address:
    line_1: str
    zip_code: str
    city: str
    state: str
    country: str
    line_2: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Address":
        if not isinstance(data, Mapping):
            raise OrderValidationRejected("customer address is required", field="customer.address")
        zip_code = _digits(_required(data, "zip_code", "customer.address.zip_code"))[:8]
        if not zip_code:
            raise OrderValidationRejected("zip_code must contain digits", field="customer.address.zip_code")
        return cls(
            line_1=_required(data, "line_1", "customer.address.line_1"),
            zip_code=zip_code,
            city=_required(data, "city", "customer.address.city"),
            state=_required(data, "state", "customer.address.state")[:2].upper(),
            country=_required(data, "country", "customer.address.country")[:2].upper(),
            line_2=(str(data["line_2"]).strip() or None) if data.get("line_2") else None,
        )


@dataclass(frozen=True)
class Phone:
    country_code: str
    area_code: str
    number: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Optional["Phone"]:
        if not data:
            return None
        phone = cls(
            country_code=_digits(data.get("country_code")) or "55",
            area_code=_digits(data.get("area_code")),
            number=_digits(data.get("number")),
        )
        if not phone.area_code or not phone.number:
            raise OrderValidationRejected("phone needs area_code and number", field="customer.phone")
        return phone


@dataclass(frozen=True)
class Customer:
    """Immutable snapshot of the payer, exactly as sent to the gateway."""

    name: str
    email: str
    document: str
    document_type: str
    address: Address
    type: str = "individual"
    phone: Optional[Phone] = None

    def __post_init__(self):
        if not self.name:
            raise OrderValidationRejected("customer name is required", field="customer.name")
        if not EMAIL_PATTERN.match(self.email or ""):
            raise OrderValidationRejected(f"invalid customer email: {self.email}", field="customer.email")
        expected = DOCUMENT_LENGTHS.get(self.document_type)
        if expected is None:
            raise OrderValidationRejected(
                f"unsupported document type: {self.document_type}", field="customer.document_type"
            )
        if not self.document.isdigit() or len(self.document) != expected:
            raise OrderValidationRejected(
                f"{self.document_type} must have {expected} digits", field="customer.document"
            )
        if self.type not in ("individual", "company"):
            raise OrderValidationRejected(f"invalid customer type: {self.type}", field="customer.type")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Customer":
        """Build from loose caller input, stripping punctuation from the document."""
        if isinstance(data, Customer):
            return data
        if not isinstance(data, Mapping):
            raise OrderValidationRejected("customer data is required", field="customer")
        document = _digits(data.get("document"))
        if not document:
            raise OrderValidationRejected("customer document is required", field="customer.document")
        document_type = str(data.get("document_type") or "").upper()
        if not document_type:
            document_type = "CNPJ" if len(document) == DOCUMENT_LENGTHS["CNPJ"] else "CPF"
        customer_type = data.get("type") or ("company" if document_type == "CNPJ" else "individual")
        return cls(
            name=str(data.get("name") or "").strip(),
            email=str(data.get("email") or "").strip(),
            document=document,
            document_type=document_type,
            address=Address.from_mapping(data.get("address")),
            type=customer_type,
            phone=Phone.from_mapping(data.get("phone") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "document": self.document,
            "document_type": self.document_type,
            "type": self.type,
            "address": {
                "line_1": self.address.line_1,
                "line_2": self.address.line_2,
                "zip_code": self.address.zip_code,
                "city": self.address.city,
                "state": self.address.state,
                "country": self.address.country,
            },
            "phone": (
                {
                    "country_code": self.phone.country_code,
                    "area_code": self.phone.area_code,
                    "number": self.phone.number,
                }
                if self.phone
                else None
            ),
        }


@dataclass(frozen=True)
class LineItem:
    description: str
    amount_minor_units: int
    quantity: int = 1
    code: Optional[str] = None

    def __post_init__(self):
        require_positive_amount(self.amount_minor_units, "line_items.amount_minor_units")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise OrderValidationRejected("quantity must be an integer", field="line_items.quantity")
        if not 1 <= self.quantity <= MAX_QUANTITY:
            raise OrderValidationRejected(
                f"quantity must be between 1 and {MAX_QUANTITY}: {self.quantity}", field="line_items.quantity"
            )
        if not self.description or not self.description.strip():
            raise OrderValidationRejected("line item description is required", field="line_items.description")
        # stored already truncated so the snapshot equals what was transmitted
        object.__setattr__(self, "description", self.description.strip()[:DESCRIPTION_MAX_LENGTH])

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        if isinstance(data, LineItem):
            return data
        if not isinstance(data, Mapping):
            raise OrderValidationRejected("line item must be an object", field="line_items")
        return cls(
            description=str(data.get("description") or ""),
            amount_minor_units=data.get("amount_minor_units", data.get("amount")),
            quantity=data.get("quantity", 1),
            code=data.get("code"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "amount_minor_units": self.amount_minor_units,
            "quantity": self.quantity,
            "code": self.code,
        }


@dataclass(frozen=True)
class GatewayOrderView:
    """Canonical reading of one gateway response, whatever its shape."""

    gateway_order_id: Optional[str] = None
    charge_id: Optional[str] = None
    transaction_id: Optional[str] = None
    qr_payload: Optional[str] = None
    qr_image_url: Optional[str] = None
    payment_url: Optional[str] = None
    barcode: Optional[str] = None
    expires_at: Optional[datetime] = None
    status: GatewayStatus = GatewayStatus.PENDING
    paid_at: Optional[datetime] = None
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    degraded_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_payment_instructions(self) -> bool:
        return any((self.qr_payload, self.qr_image_url, self.payment_url, self.barcode))
