"""
网关传输模块

提供与外部支付网关 REST API 通信的传输层
"""
from .base import (
    GatewayHTTPError,
    GatewayRequest,
    GatewayResponse,
    GatewayTransport,
    GatewayTransportError,
    HTTPMethod,
)

__all__ = [
    "GatewayHTTPError",
    "GatewayRequest",
    "GatewayResponse",
    "GatewayTransport",
    "GatewayTransportError",
    "HTTPMethod",
]
