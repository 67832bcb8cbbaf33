"""
ResponseNormalizer - turns any supported gateway JSON into a GatewayOrderView.

Each canonical field has an ordered tuple of extraction strategies. A
strategy is a pure function ``raw -> value | None``; the first non-empty
result wins. Transaction-level locations come first, then charge-level, then
order-level. Lookups never raise on malformed input; anything missing or of
the wrong type is simply absent.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from core.logging_config import get_logger
from domain.payment_order.value_objects import GatewayOrderView, GatewayStatus, PaymentMethod
from infrastructure.external.payments.exceptions import IncompleteGatewayResponseError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL

logger = get_logger(__name__)

Extractor = Callable[[Any], Optional[Any]]

# boleto due dates are calendar days in Brazil
DUE_DATE_TZ = ZoneInfo("America/Sao_Paulo")

TX = ("charges", 0, "last_transaction")
CHARGE = ("charges", 0)
QR = ("qr_codes", 0)
BOLETO = ("charges", 0, "payment_method", "boleto")
ORDER: tuple = ()


def dig(raw: Any, *path: Any) -> Any:
    """Walk dict keys and list indexes; None as soon as the shape does not match."""
    node = raw
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or not -len(node) <= key < len(node):
                return None
            node = node[key]
        else:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if node is None:
            return None
    return node


def at(*path: Any) -> Extractor:
    return lambda raw: dig(raw, *path)


def aliases(levels: Sequence[tuple], keys: Sequence[str]) -> tuple[Extractor, ...]:
    """Every key at every level, level-major: all keys at level 0 before level 1."""
    return tuple(at(*level, key) for level in levels for key in keys)


def link(level: tuple, *, rel: Optional[str] = None, media: Optional[str] = None) -> Extractor:
    """href of the first entry in ``level.links`` matching rel and/or media."""

    def _extract(raw: Any) -> Optional[str]:
        links = dig(raw, *level, "links")
        if not isinstance(links, list):
            return None
        for entry in links:
            if not isinstance(entry, dict):
                continue
            if rel and str(entry.get("rel", "")).upper() != rel.upper():
                continue
            if media and str(entry.get("media", "")).lower() != media.lower():
                continue
            if entry.get("href"):
                return entry["href"]
        return None

    return _extract


STRATEGIES: dict[str, tuple[Extractor, ...]] = {
    "gateway_order_id": (at("id"),),
    "charge_id": (at(*CHARGE, "id"),),
    "transaction_id": (at(*TX, "id"),),
    "qr_payload": (
        *aliases([TX], ["qr_code", "qrCode", "emv"]),
        at(*QR, "text"),
        *aliases([CHARGE, ORDER], ["qr_code", "qrCode", "emv"]),
    ),
    "qr_image_url": (
        *aliases([TX], ["qr_code_url", "qrCodeUrl"]),
        link(QR, rel="QRCODE.PNG"),
        *aliases([CHARGE, ORDER], ["qr_code_url", "qrCodeUrl"]),
    ),
    "payment_url": (
        *aliases([TX], ["pix_url", "payment_url", "url", "pdf"]),
        link(CHARGE, media="application/pdf"),
        *aliases([CHARGE, ORDER], ["pix_url", "payment_url", "url", "pdf"]),
    ),
    "barcode": (
        *aliases([TX], ["line", "digitable_line", "barcode"]),
        at(*BOLETO, "formatted_barcode"),
        at(*BOLETO, "barcode"),
        *aliases([CHARGE, ORDER], ["line", "digitable_line", "barcode"]),
    ),
    "status": (
        at(*CHARGE, "status"),
        at(*TX, "status"),
        at("status"),
    ),
    "paid_at": aliases([CHARGE, TX, ORDER], ["paid_at"]),
    "failure_code": (
        at(*TX, "refused_code"),
        at(*TX, "gateway_response", "code"),
        at(*TX, "gateway_response", "errors", 0, "code"),
        at(*TX, "acquirer_return_code"),
        at(*CHARGE, "payment_response", "code"),
    ),
    "failure_message": (
        at(*TX, "gateway_response", "errors", 0, "message"),
        at(*TX, "acquirer_message"),
        at(*CHARGE, "payment_response", "message"),
    ),
}

# Expiry locations; boleto looks at due dates first
EXPIRY_STRATEGIES: dict[PaymentMethod, tuple[Extractor, ...]] = {
    PaymentMethod.PIX: (
        *aliases([TX], ["expires_at", "expiration_date", "due_at"]),
        at(*QR, "expiration_date"),
        *aliases([CHARGE, ORDER], ["expires_at", "expiration_date", "due_at", "due_date"]),
    ),
    PaymentMethod.BOLETO: (
        *aliases([TX], ["due_at", "due_date", "expires_at"]),
        at(*BOLETO, "due_date"),
        *aliases([CHARGE, ORDER], ["due_at", "due_date", "expires_at", "expiration_date"]),
    ),
}


def first(raw: Any, strategies: Sequence[Extractor]) -> Optional[Any]:
    for strategy in strategies:
        try:
            value = strategy(raw)
        except (TypeError, ValueError, AttributeError, KeyError, IndexError):
            value = None
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if isinstance(value, (dict, list)):
            continue
        return value
    return None


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts ISO-8601 datetimes (``Z`` suffix or offset), date-only strings
    (taken as the end of that day in Brasília time) and epoch seconds or milliseconds.
    Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.isdigit():
        return parse_timestamp(int(text))
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if len(text) == 10:
        try:
            day = datetime.strptime(text, "%Y-%m-%d").date()
        except ValueError:
            return None
        return datetime.combine(day, time(23, 59, 59), tzinfo=DUE_DATE_TZ).astimezone(timezone.utc)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ResponseNormalizer:
    def __init__(self, provider: str):
        self.provider = provider
        self._status_table = PROVIDER_STATUS_TO_INTERNAL.get(provider, {})

    def normalize(
        self,
        raw: Any,
        method: PaymentMethod,
        *,
        now: datetime,
        fallback_ttl: Optional[timedelta],
        require_instructions: bool = True,
    ) -> GatewayOrderView:
        """
        Build the canonical view of ``raw``.

        With ``fallback_ttl`` set, a missing, unparsable or past expiry is
        replaced by ``now + fallback_ttl`` and reported in ``degraded_fields``;
        without it the expiry is left absent. With ``require_instructions``,
        a response lacking all four payment instruction fields raises
        IncompleteGatewayResponseError.
        """
        method = PaymentMethod(method)
        raw = raw if isinstance(raw, dict) else {}
        degraded: list[str] = []

        expires_at = self._expiry(raw, method, now)
        if expires_at is None and fallback_ttl is not None:
            expires_at = now + fallback_ttl
            degraded.append("expires_at")
            logger.warning(
                "gateway_response_degraded",
                provider=self.provider,
                field="expires_at",
                fallback_seconds=int(fallback_ttl.total_seconds()),
                gateway_order_id=_text(first(raw, STRATEGIES["gateway_order_id"])),
            )

        status = self._status(first(raw, STRATEGIES["status"]))
        view = GatewayOrderView(
            gateway_order_id=_text(first(raw, STRATEGIES["gateway_order_id"])),
            charge_id=_text(first(raw, STRATEGIES["charge_id"])),
            transaction_id=_text(first(raw, STRATEGIES["transaction_id"])),
            qr_payload=_text(first(raw, STRATEGIES["qr_payload"])),
            qr_image_url=_text(first(raw, STRATEGIES["qr_image_url"])),
            payment_url=_text(first(raw, STRATEGIES["payment_url"])),
            barcode=_text(first(raw, STRATEGIES["barcode"])),
            expires_at=expires_at,
            status=status,
            paid_at=parse_timestamp(first(raw, STRATEGIES["paid_at"])) if status == GatewayStatus.PAID else None,
            failure_code=(
                _text(first(raw, STRATEGIES["failure_code"]))
                if status in (GatewayStatus.FAILED, GatewayStatus.CANCELED)
                else None
            ),
            failure_message=(
                _text(first(raw, STRATEGIES["failure_message"]))
                if status in (GatewayStatus.FAILED, GatewayStatus.CANCELED)
                else None
            ),
            degraded_fields=tuple(degraded),
        )
        if require_instructions and not view.has_payment_instructions:
            raise IncompleteGatewayResponseError(raw)
        return view

    def _expiry(self, raw: dict, method: PaymentMethod, now: datetime) -> Optional[datetime]:
        for strategy in EXPIRY_STRATEGIES[method]:
            parsed = parse_timestamp(first(raw, (strategy,)))
            if parsed is not None and parsed > now:
                return parsed
        return None

    def _status(self, value: Any) -> GatewayStatus:
        if value is None:
            return GatewayStatus.PENDING
        text = str(value).strip()
        mapped = (
            self._status_table.get(text)
            or self._status_table.get(text.lower())
            or self._status_table.get(text.upper())
        )
        if mapped is None:
            logger.debug("gateway_status_unknown", provider=self.provider, status=text)
            return GatewayStatus.PENDING
        return GatewayStatus(mapped)
