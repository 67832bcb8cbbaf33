"""
异常 → HTTP 映射

业务码决定 HTTP 状态；订单相关异常额外带上 ErrorDetail（kind / retryable）。
"""
import traceback
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from core.logging_config import get_logger
from core.response import Response, error_response
from domain.common.exceptions import BusinessException
from domain.payment_order.error_detail import ErrorDetail
from shared.codes import BusinessCode
from shared.codes.payment_codes import ErrorKind, PaymentCode


logger = get_logger(__name__)

_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_ALREADY_EXISTS: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_NOT_REGENERABLE: http_status.HTTP_409_CONFLICT,
    BusinessCode.INVALID_TRANSITION: http_status.HTTP_409_CONFLICT,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentCode.RATE_LIMITED: http_status.HTTP_429_TOO_MANY_REQUESTS,
    PaymentCode.INCOMPLETE_RESPONSE: http_status.HTTP_502_BAD_GATEWAY,
}

_HTTP_STATUS_TO_CODE = {
    404: BusinessCode.NOT_FOUND,
    405: BusinessCode.PARAM_ERROR,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """未登记的业务码一律 400。"""
    return _CODE_TO_HTTP_STATUS.get(code, http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _render(status_code: int, response: Response, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"), headers=headers)


def _field_path(loc) -> Optional[str]:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or None


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BusinessException)
    async def on_business_error(request: Request, exc: BusinessException):
        status_code = business_code_to_http_status(exc.code)
        if status_code >= 500:
            logger.warning("business_exception", path=request.url.path, **exc.log_fields())
        else:
            logger.info("request_rejected", path=request.url.path, **exc.log_fields())
        response = error_response(
            exc.code,
            exc.message,
            exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=_request_id(request),
            detail=exc.detail,
        )
        return _render(status_code, response)

    @app.exception_handler(RequestValidationError)
    async def on_request_validation_error(request: Request, exc: RequestValidationError):
        """请求体没通过 schema 校验：与领域校验失败同属 validation_rejected。"""
        errors = exc.errors()
        first = errors[0] if errors else {}
        response = error_response(
            BusinessCode.PARAM_VALIDATION_ERROR,
            f"Validation failed: {first.get('msg', 'unknown')}",
            "ValidationError",
            details={"errors": [{"field": _field_path(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
            field=_field_path(first.get("loc", ())),
            request_id=_request_id(request),
            detail=ErrorDetail.of(ErrorKind.VALIDATION_REJECTED),
        )
        return _render(http_status.HTTP_422_UNPROCESSABLE_ENTITY, response)

    @app.exception_handler(HTTPException)
    async def on_http_error(request: Request, exc: HTTPException):
        response = error_response(
            _HTTP_STATUS_TO_CODE.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
            str(exc.detail),
            "HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        )
        return _render(exc.status_code, response, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.error("unhandled_exception", request_id=request_id, path=request.url.path, error=str(exc), exc_info=True)
        details = {"exception": repr(exc), "traceback": traceback.format_exc()} if app.debug else None
        response = error_response(
            BusinessCode.SYSTEM_ERROR,
            "Internal server error",
            "SystemError",
            details=details,
            request_id=request_id,
        )
        return _render(http_status.HTTP_500_INTERNAL_SERVER_ERROR, response)
