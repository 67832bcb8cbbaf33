"""
API依赖项 - 从应用状态获取组合根装配好的服务
"""
from fastapi import Request

from application.services.payment_order_service import PaymentOrderService
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


async def get_payment_order_service(request: Request) -> PaymentOrderService:
    service = getattr(request.app.state, "payment_order_service", None)
    if service is None:
        raise BusinessException(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Payment order service is not running",
            error_type="ServiceUnavailable",
        )
    return service
