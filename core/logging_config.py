"""
structlog 日志配置

- 开发环境（DEBUG）彩色控制台，其余环境 JSON 单行
- 标准库 logging（uvicorn、httpx）走同一条处理链
- 凭证整体打码；证件号只保留末两位，方便对账时人工核对
"""
import json
import logging
from typing import Any, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter

from core.config import settings

REDACTED = "***"
SECRET_KEYS = frozenset({"authorization", "api_key", "secret_key", "token", "password"})
PARTIAL_KEYS = frozenset({"document", "tax_id"})

_QUIET_LOGGERS = ("httpx", "httpcore")


def mask_partial(value: Any, keep: int = 2) -> str:
    text = str(value)
    if len(text) <= keep:
        return REDACTED
    return "*" * (len(text) - keep) + text[-keep:]


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        scrubbed = {}
        for key, item in value.items():
            name = str(key).lower()
            if name in SECRET_KEYS:
                scrubbed[key] = REDACTED
            elif name in PARTIAL_KEYS and item is not None:
                scrubbed[key] = mask_partial(item)
            else:
                scrubbed[key] = _scrub(item)
        return scrubbed
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    return value


def redact_sensitive(logger: Any, method_name: str, event_dict: dict) -> dict:
    """processor：递归打码，嵌套在请求体 / headers 里的也不放过。"""
    return _scrub(event_dict)


def add_service_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def _renderer(json_logs: bool) -> Any:
    if not json_logs:
        return structlog.dev.ConsoleRenderer(colors=True)

    # structlog 会传入 default 等参数
    def dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return structlog.processors.JSONRenderer(serializer=dumps)


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    if json_logs is None:
        json_logs = not settings.DEBUG
    if level is None:
        level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL

    pre_chain: list[Any] = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_sensitive,
    ]
    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, _renderer(json_logs)],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    # gateway_request 已记录每次调用
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
