"""
Business codes returned in the `code` field of every API envelope.

Gateway-level codes and the failure taxonomy live in
`shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 请求参数 (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # 订单生命周期 (2xxxx)
    NOT_FOUND = 20006
    ORDER_NOT_FOUND = 20101
    ORDER_ALREADY_EXISTS = 20102  # order_code still held by an active order
    ORDER_NOT_REGENERABLE = 20103
    INVALID_TRANSITION = 20104

    # 服务自身 (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
