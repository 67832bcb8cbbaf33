"""
Payment order API routes for the POS front end.

Keep this thin: validation of shapes happens in the DTOs, business rules in
the domain, and the lifecycle in the application service.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_order_service
from application.dtos.payment_orders import CreateOrderRequest, PaymentOrderOut
from application.services.payment_order_service import PaymentOrderService
from core.logging_config import get_logger
from core.response import Response, success_response


router = APIRouter(prefix="/payment-orders", tags=["Payment Orders"])
logger = get_logger(__name__)


@router.post("", response_model=Response[PaymentOrderOut])
async def create_payment_order(
    body: CreateOrderRequest,
    service: PaymentOrderService = Depends(get_payment_order_service),
):
    handle = await service.create_order(**body.to_service_kwargs())
    return success_response(data=PaymentOrderOut.from_order(handle.order), message="Payment order created")


@router.get("", response_model=Response[list[PaymentOrderOut]])
async def list_payment_orders(service: PaymentOrderService = Depends(get_payment_order_service)):
    return success_response(data=[PaymentOrderOut.from_order(o) for o in service.list_orders()])


@router.get("/{order_id}", response_model=Response[PaymentOrderOut])
async def get_payment_order(order_id: str, service: PaymentOrderService = Depends(get_payment_order_service)):
    return success_response(data=PaymentOrderOut.from_order(service.get_order(order_id)))


@router.post("/{order_id}/cancel", response_model=Response[PaymentOrderOut])
async def cancel_payment_order(order_id: str, service: PaymentOrderService = Depends(get_payment_order_service)):
    await service.cancel(order_id)
    return success_response(data=PaymentOrderOut.from_order(service.get_order(order_id)), message="Payment order canceled")


@router.post("/{order_id}/regenerate", response_model=Response[PaymentOrderOut])
async def regenerate_payment_order(
    order_id: str,
    service: PaymentOrderService = Depends(get_payment_order_service),
):
    handle = await service.regenerate(order_id)
    logger.info("order_regenerate_requested", order_id=order_id, new_order_id=handle.order_id)
    return success_response(data=PaymentOrderOut.from_order(handle.order), message="Payment order regenerated")
