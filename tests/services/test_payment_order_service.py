import asyncio
import itertools
import json
from datetime import timedelta

import httpx
import pytest

from application.services.payment_order_service import PaymentOrderService
from domain.payment_order import (
    ErrorDetail,
    GatewayStatus,
    InvalidTransitionException,
    OrderAlreadyExistsException,
    OrderNotFoundException,
    OrderNotRegenerableException,
    OrderStatus,
    OrderValidationRejected,
    PaymentGatewayError,
)
from infrastructure.external.payments.pagarme_client import PagarmeGateway
from infrastructure.repositories.order_snapshot_sink import InMemoryOrderSnapshotSink
from shared.codes.payment_codes import ErrorKind


class Recorder:
    """Collects (order_id, status) pairs from status callbacks."""

    def __init__(self):
        self.calls = []

    def __call__(self, order_id, order):
        self.calls.append((order_id, order.status.value))

    @property
    def statuses(self):
        return [status for _, status in self.calls]


@pytest.fixture
def build(payment_settings, fake_clock):
    def _build(*gateways, sink=None):
        ids = (f"ord_{n}" for n in itertools.count(1))
        return PaymentOrderService(
            {gw.provider: gw for gw in gateways},
            payment_settings,
            clock=fake_clock,
            sink=sink,
            id_factory=lambda: next(ids),
        )

    return _build


@pytest.mark.asyncio
async def test_pix_order_waits_for_payment(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    recorder = Recorder()

    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)

    assert handle.order_id == "ord_1"
    assert handle.status == "waiting"
    assert handle.order.qr_payload.startswith("000201")
    assert handle.order.remaining_seconds(fake_clock.now()) == pytest.approx(1800)
    assert handle.order.line_items[0].description == "Pedido ord_1"
    assert recorder.statuses == ["waiting"]
    assert gateway.create_calls == 1
    await service.aclose()
    assert gateway.closed


@pytest.mark.asyncio
async def test_payment_confirmed_by_polling(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view(), statuses=[make_view(), make_view(status=GatewayStatus.PAID)])
    service = build(gateway)
    recorder = Recorder()
    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)

    await fake_clock.advance(3)
    assert service.get_order(handle.order_id).status is OrderStatus.WAITING

    await fake_clock.advance(3)
    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.PAID
    assert order.paid_at == fake_clock.now()
    assert recorder.statuses == ["waiting", "paid"]

    await fake_clock.advance(30)
    assert gateway.status_calls == 2
    await service.aclose()


@pytest.mark.asyncio
async def test_order_expires_once_and_ignores_late_payment(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    recorder = Recorder()
    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)

    await fake_clock.advance(31 * 60)
    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.EXPIRED
    assert recorder.statuses == ["waiting", "expired"]

    checks = gateway.status_calls
    gateway.statuses = [make_view(status=GatewayStatus.PAID)]
    await fake_clock.advance(60)

    assert service.get_order(handle.order_id).status is OrderStatus.EXPIRED
    assert gateway.status_calls == checks
    assert recorder.statuses == ["waiting", "expired"]
    await service.aclose()


@pytest.mark.asyncio
async def test_transient_poll_errors_keep_order_waiting(build, make_gateway, make_view, customer_data, fake_clock):
    timeout = PaymentGatewayError(ErrorDetail.of(ErrorKind.TIMEOUT), provider="pagarme")
    gateway = make_gateway(create_result=make_view(), statuses=[timeout, timeout, make_view(status=GatewayStatus.PAID)])
    service = build(gateway)
    handle = await service.create_order(1000, "pix", customer_data)

    await fake_clock.advance(6)
    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.WAITING
    assert order.last_error.kind == ErrorKind.TIMEOUT

    await fake_clock.advance(3)
    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.PAID
    assert order.last_error is None
    await service.aclose()


@pytest.mark.asyncio
async def test_fatal_poll_error_fails_order(build, make_gateway, make_view, customer_data, fake_clock):
    denied = PaymentGatewayError(ErrorDetail.of(ErrorKind.AUTHENTICATION_FAILED), provider="pagarme")
    gateway = make_gateway(create_result=make_view(), statuses=[denied])
    service = build(gateway)
    handle = await service.create_order(1000, "pix", customer_data)

    await fake_clock.advance(3)
    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.FAILED
    assert order.last_error.kind == ErrorKind.AUTHENTICATION_FAILED
    await service.aclose()


@pytest.mark.asyncio
async def test_gateway_server_error_fails_order(build, payment_settings, fake_clock, customer_data):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(500, json={"errors": [{"code": "500"}]})

    gateway = PagarmeGateway(payment_settings, transport=httpx.MockTransport(handler), clock=fake_clock)
    service = build(gateway)

    handle = await service.create_order(1000, "pix", customer_data)

    assert handle.status == "failed"
    assert handle.order.last_error.kind == ErrorKind.GATEWAY_INTERNAL_ERROR
    assert handle.order.last_error.retryable is True
    assert handle.order.last_error.http_status == 500
    assert handle.order.last_error.code == "500"
    assert len(requests) == 1

    await fake_clock.advance(60)
    assert len(requests) == 1
    await service.aclose()


@pytest.mark.asyncio
async def test_incomplete_answer_fails_after_one_reread(build, payment_settings, fake_clock, customer_data):
    requests = []
    body = {"id": "or_9", "charges": [{"id": "ch_9", "status": "pending", "last_transaction": {"id": "tran_9"}}]}

    def handler(request):
        requests.append(request.method)
        return httpx.Response(200, json=body)

    gateway = PagarmeGateway(payment_settings, transport=httpx.MockTransport(handler), clock=fake_clock)
    service = build(gateway)

    handle = await service.create_order(1000, "pix", customer_data)

    assert requests == ["POST", "GET"]
    assert handle.status == "failed"
    assert handle.order.last_error.kind == ErrorKind.INCOMPLETE_GATEWAY_RESPONSE
    assert handle.order.last_error.retryable is False
    await service.aclose()


@pytest.mark.asyncio
async def test_unexpected_gateway_exception_fails_order(build, make_gateway, customer_data):
    service = build(make_gateway(create_result=RuntimeError("socket closed")))

    handle = await service.create_order(1000, "pix", customer_data)

    assert handle.status == "failed"
    assert handle.order.last_error.kind == ErrorKind.GATEWAY_INTERNAL_ERROR
    assert handle.order.last_error.code == "RuntimeError"
    await service.aclose()


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount_minor_units": 0},
        {"amount_minor_units": -100},
        {"amount_minor_units": 10.5},
        {"method": "credit_card"},
        {"provider": "stripe"},
        {"ttl_seconds": 0},
        {"ttl_seconds": True},
        {"method": "boleto", "ttl_seconds": 3600},
        {"order_code": "   "},
        {"line_items": [{"description": "Café", "amount_minor_units": 500, "quantity": 0}]},
    ],
)
@pytest.mark.asyncio
async def test_invalid_input_never_reaches_gateway(build, make_gateway, make_view, customer_data, overrides):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    kwargs = {"amount_minor_units": 1000, "method": "pix", "customer": customer_data}
    kwargs.update(overrides)

    with pytest.raises(OrderValidationRejected) as exc:
        await service.create_order(**kwargs)

    assert exc.value.detail.kind == ErrorKind.VALIDATION_REJECTED
    assert gateway.create_calls == 0
    assert service.list_orders() == []


@pytest.mark.asyncio
async def test_invalid_customer_never_reaches_gateway(build, make_gateway, make_view, customer_data):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    customer_data["email"] = "maria-at-example"

    with pytest.raises(OrderValidationRejected):
        await service.create_order(1000, "pix", customer_data)
    assert gateway.create_calls == 0


@pytest.mark.asyncio
async def test_pix_ttl_is_clamped(build, make_gateway, make_view, customer_data):
    gateway = make_gateway(create_result=make_view(minutes=0, expires_at=None))
    service = build(gateway)

    handle = await service.create_order(1000, "pix", customer_data, ttl_seconds=10)

    assert handle.order.ttl == timedelta(seconds=60)
    await service.aclose()


@pytest.mark.asyncio
async def test_boleto_defaults_to_due_days(build, make_gateway, make_view, customer_data, payment_settings):
    view = make_view(qr_payload=None, qr_image_url=None, barcode="34191.09008", expires_at=None)
    service = build(make_gateway(create_result=view))

    handle = await service.create_order(5000, "boleto", customer_data)

    assert handle.order.ttl == timedelta(days=payment_settings.boleto_due_days)
    assert handle.order.barcode == "34191.09008"
    await service.aclose()


@pytest.mark.asyncio
async def test_cancel_is_idempotent_and_stops_polling(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    recorder = Recorder()
    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)

    await service.cancel(handle.order_id)
    await service.cancel(handle.order_id)
    await fake_clock.advance(60)

    order = service.get_order(handle.order_id)
    assert order.is_canceled
    assert order.canceled_at == fake_clock.now() - timedelta(seconds=60)
    assert order.status is OrderStatus.WAITING
    assert gateway.status_calls == 0
    assert recorder.statuses == ["waiting"]

    await fake_clock.advance(31 * 60)
    assert recorder.statuses == ["waiting"]
    assert gateway.status_calls == 0
    # canceled orders are dropped once the retention window has passed
    with pytest.raises(OrderNotFoundException):
        service.get_order(handle.order_id)
    await service.aclose()


@pytest.mark.asyncio
async def test_cancel_after_terminal_is_noop(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view(), statuses=[make_view(status=GatewayStatus.PAID)])
    service = build(gateway)
    handle = await service.create_order(1000, "pix", customer_data)
    await fake_clock.advance(3)

    await service.cancel(handle.order_id)

    order = service.get_order(handle.order_id)
    assert order.status is OrderStatus.PAID
    assert order.canceled_at is None
    await service.aclose()


@pytest.mark.asyncio
async def test_cancel_while_generating_discards_answer(build, make_gateway, make_view, customer_data, settle):
    release = asyncio.Event()

    async def slow_create(order):
        await release.wait()
        return make_view()

    gateway = make_gateway(create_result=slow_create)
    service = build(gateway)

    creating = asyncio.create_task(service.create_order(1000, "pix", customer_data))
    await settle()
    await service.cancel("ord_1")
    release.set()
    handle = await creating

    assert handle.status == "generating"
    assert handle.order.is_canceled
    assert handle.order.qr_payload is None
    assert gateway.status_calls == 0
    await service.aclose()


@pytest.mark.asyncio
async def test_order_code_is_reserved_while_active(build, make_gateway, make_view, customer_data):
    service = build(make_gateway(create_result=make_view()))

    first = await service.create_order(1000, "pix", customer_data, order_code="PDV-42")
    assert first.order_id == "PDV-42"

    with pytest.raises(OrderAlreadyExistsException):
        await service.create_order(1000, "pix", customer_data, order_code="PDV-42")

    await service.cancel("PDV-42")
    second = await service.create_order(2000, "pix", customer_data, order_code="PDV-42")
    assert second.order.amount_minor_units == 2000
    assert len(service.list_orders()) == 1
    await service.aclose()


@pytest.mark.asyncio
async def test_regenerate_expired_order(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    recorder = Recorder()
    first = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)
    await fake_clock.advance(30 * 60)
    assert service.get_order(first.order_id).status is OrderStatus.EXPIRED

    gateway.create_result = make_view(now=fake_clock.now())
    second = await service.regenerate(first.order_id)

    assert second.order_id == "ord_2"
    assert second.status == "waiting"
    assert second.order.regenerated_from == "ord_1"
    assert second.order.retry_count == 1
    assert second.order.line_items == service.get_order("ord_1").line_items
    assert recorder.calls[-1] == ("ord_2", "waiting")
    assert gateway.create_calls == 2
    await service.aclose()


@pytest.mark.asyncio
async def test_regenerate_refuses_paid_and_live_orders(build, make_gateway, make_view, customer_data, fake_clock):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)
    live = await service.create_order(1000, "pix", customer_data)

    with pytest.raises(OrderNotRegenerableException):
        await service.regenerate(live.order_id)

    gateway.statuses = [make_view(status=GatewayStatus.PAID)]
    await fake_clock.advance(3)
    with pytest.raises(OrderNotRegenerableException):
        await service.regenerate(live.order_id)
    assert gateway.create_calls == 1
    await service.aclose()


@pytest.mark.asyncio
async def test_regenerate_canceled_order(build, make_gateway, make_view, customer_data):
    service = build(make_gateway(create_result=make_view()))
    first = await service.create_order(1000, "pix", customer_data)
    await service.cancel(first.order_id)

    second = await service.regenerate(first.order_id)

    assert second.status == "waiting"
    assert second.order.regenerated_from == first.order_id
    await service.aclose()


@pytest.mark.asyncio
async def test_snapshots_are_persisted(build, make_gateway, make_view, customer_data, fake_clock, settle):
    sink = InMemoryOrderSnapshotSink()
    gateway = make_gateway(create_result=make_view(), statuses=[make_view(status=GatewayStatus.PAID)])
    service = build(gateway, sink=sink)
    handle = await service.create_order(1000, "pix", customer_data)
    await fake_clock.advance(3)
    await settle()

    history = [row["status"] for row in sink.history(handle.order_id)]
    assert history == ["generating", "waiting", "paid"]
    assert sink.latest(handle.order_id)["paid_at"] is not None
    await service.aclose()


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_lifecycle(build, make_gateway, make_view, customer_data, fake_clock, settle):
    seen = []

    def broken(order_id, order):
        raise ValueError("display offline")

    async def notify(order_id, order):
        seen.append(order.status.value)

    gateway = make_gateway(create_result=make_view(), statuses=[make_view(status=GatewayStatus.PAID)])
    service = build(gateway)
    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=broken)
    service.subscribe(handle.order_id, notify)

    await fake_clock.advance(3)
    await settle()

    assert service.get_order(handle.order_id).status is OrderStatus.PAID
    assert seen == ["paid"]
    await service.aclose()


@pytest.mark.asyncio
async def test_snapshots_are_detached(build, make_gateway, make_view, customer_data):
    service = build(make_gateway(create_result=make_view()))
    handle = await service.create_order(1000, "pix", customer_data)

    snapshot = service.get_order(handle.order_id)
    snapshot.status = OrderStatus.PAID

    assert service.get_order(handle.order_id).status is OrderStatus.WAITING
    await service.aclose()


@pytest.mark.asyncio
async def test_release_requires_finished_order(build, make_gateway, make_view, customer_data):
    service = build(make_gateway(create_result=make_view()))
    handle = await service.create_order(1000, "pix", customer_data)

    with pytest.raises(InvalidTransitionException):
        service.release(handle.order_id)

    await service.cancel(handle.order_id)
    service.release(handle.order_id)
    with pytest.raises(OrderNotFoundException):
        service.get_order(handle.order_id)
    await service.aclose()


@pytest.mark.asyncio
async def test_unknown_order(build, make_gateway):
    service = build(make_gateway())
    with pytest.raises(OrderNotFoundException):
        await service.cancel("ord_missing")
    with pytest.raises(OrderNotFoundException):
        await service.regenerate("ord_missing")


@pytest.mark.parametrize(
    "line_items",
    [
        [{"description": "Café", "amount_minor_units": 1}],
        [{"description": "Café", "amount_minor_units": 500}],
        [{"description": "Café", "amount_minor_units": 500, "quantity": 3}],
    ],
)
@pytest.mark.asyncio
async def test_line_items_must_add_up_to_amount(build, make_gateway, make_view, customer_data, line_items):
    gateway = make_gateway(create_result=make_view())
    service = build(gateway)

    with pytest.raises(OrderValidationRejected) as exc:
        await service.create_order(1000, "pix", customer_data, line_items=line_items)

    assert exc.value.field == "line_items"
    assert gateway.create_calls == 0
    assert service.list_orders() == []


@pytest.mark.asyncio
async def test_matching_line_items_reach_gateway(customer_data, payment_settings, fake_clock):
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "id": "or_9",
                "charges": [{"id": "ch_9", "last_transaction": {"qr_code": "00020101", "expires_at": "2024-05-10T12:30:00Z"}}],
            },
        )

    gateway = PagarmeGateway(payment_settings, transport=httpx.MockTransport(handler), clock=fake_clock)
    service = PaymentOrderService({"pagarme": gateway}, payment_settings, clock=fake_clock)
    items = [
        {"description": "Café", "amount_minor_units": 300, "quantity": 2},
        {"description": "Pão de queijo", "amount_minor_units": 400},
    ]

    handle = await service.create_order(1000, "pix", customer_data, line_items=items)

    assert handle.status == "waiting"
    charged = sum(item["amount"] * item["quantity"] for item in sent[0]["items"])
    assert charged == handle.order.amount_minor_units == 1000
    await service.aclose()


@pytest.mark.asyncio
async def test_finished_orders_are_dropped_after_retention(
    build, make_gateway, make_view, customer_data, fake_clock, payment_settings
):
    gateway = make_gateway(create_result=make_view(), statuses=[make_view(status=GatewayStatus.PAID)])
    service = build(gateway)
    for _ in range(5):
        await service.create_order(1000, "pix", customer_data)

    await fake_clock.advance(3)
    assert [o.status for o in service.list_orders()] == [OrderStatus.PAID] * 5

    await fake_clock.advance(payment_settings.terminal_retention_seconds - 1)
    assert len(service.list_orders()) == 5

    await fake_clock.advance(1)
    assert service.list_orders() == []
    with pytest.raises(OrderNotFoundException):
        service.get_order("ord_1")
    await service.aclose()


@pytest.mark.asyncio
async def test_order_canceled_while_generating_is_dropped(
    build, make_gateway, make_view, customer_data, fake_clock, settle, payment_settings
):
    release = asyncio.Event()

    async def slow_create(order):
        await release.wait()
        return make_view()

    service = build(make_gateway(create_result=slow_create))
    creating = asyncio.create_task(service.create_order(1000, "pix", customer_data))
    await settle()
    await service.cancel("ord_1")
    release.set()
    await creating

    await fake_clock.advance(payment_settings.terminal_retention_seconds)
    assert service.list_orders() == []
    await service.aclose()


@pytest.mark.asyncio
async def test_expiry_wins_over_payment_reported_late(build, make_gateway, make_view, customer_data, fake_clock, settle):
    gateway = make_gateway(create_result=make_view())
    answer = asyncio.Event()
    started = []

    async def held_check(order):
        started.append(fake_clock.now())
        await answer.wait()
        return make_view(status=GatewayStatus.PAID, paid_at=fake_clock.now())

    gateway.check_status = held_check
    service = build(gateway)
    recorder = Recorder()
    handle = await service.create_order(1000, "pix", customer_data, on_status_changed=recorder)

    await fake_clock.advance(30 * 60)
    answer.set()
    await settle()

    order = service.get_order(handle.order_id)
    assert len(started) == 1
    assert order.status is OrderStatus.EXPIRED
    assert order.paid_at is None
    assert recorder.statuses == ["waiting", "expired"]
    await service.aclose()


@pytest.mark.asyncio
async def test_rejected_create_keeps_previous_order_with_same_code(build, make_gateway, make_view, customer_data):
    service = build(make_gateway(create_result=make_view()))
    await service.create_order(1000, "pix", customer_data, order_code="PDV-9")
    await service.cancel("PDV-9")

    customer_data["email"] = "maria-at-example"
    with pytest.raises(OrderValidationRejected):
        await service.create_order(1000, "pix", customer_data, order_code="PDV-9")

    assert service.get_order("PDV-9").is_canceled
    await service.aclose()
