"""
Payment-order settings using pydantic-settings v2 with nested env keys.

Keys are read with the ``PAYMENT__`` prefix, e.g. ``PAYMENT__DEFAULT_PROVIDER``,
``PAYMENT__PAGARME__API_KEY`` or ``PAYMENT__TIMEOUTS__TOTAL``. The object is
built once at process start and passed explicitly to transports, adapters and
the service.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    connect: float = 10.0
    read: float = 30.0
    write: float = 30.0
    total: float = 30.0


class PaymentRetry(BaseModel):
    """Retry policy for idempotent reads only; order creation is never retried."""

    max: int = 2
    base_backoff: float = 0.2


class PagarmeSettings(BaseModel):
    api_key: Optional[SecretStr] = None
    base_url: str = "https://api.pagar.me/core/v5"


class PagseguroSettings(BaseModel):
    token: Optional[SecretStr] = None
    base_url: str = "https://api.pagseguro.com"
    sandbox: bool = False
    sandbox_url: str = "https://sandbox.api.pagseguro.com"

    @property
    def effective_base_url(self) -> str:
        return self.sandbox_url if self.sandbox else self.base_url


class PaymentSettings(BaseSettings):
    default_provider: str = "pagarme"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    poll_interval_seconds: float = 3.0
    # 终态或已取消的订单在内存中的保留时长
    terminal_retention_seconds: float = 600.0
    default_expiry_minutes: int = 30
    pix_min_expiry_seconds: int = 60
    pix_max_expiry_seconds: int = 86400
    boleto_due_days: int = 3
    boleto_instructions: str = "Pagar até a data de vencimento"
    description_max_length: int = 100

    pagarme: PagarmeSettings = Field(default_factory=PagarmeSettings)
    pagseguro: PagseguroSettings = Field(default_factory=PagseguroSettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("default_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, v):
        return str(v).strip().lower() if v is not None else v

    @model_validator(mode="after")
    def _validate_bounds(self):
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.terminal_retention_seconds <= 0:
            raise ValueError("terminal_retention_seconds must be positive")
        if self.default_expiry_minutes <= 0:
            raise ValueError("default_expiry_minutes must be positive")
        if not 0 < self.pix_min_expiry_seconds <= self.pix_max_expiry_seconds:
            raise ValueError("PIX expiry bounds are inconsistent")
        if self.boleto_due_days < 1:
            raise ValueError("boleto_due_days must be at least 1")
        return self


@lru_cache
def get_payment_settings() -> PaymentSettings:
    return PaymentSettings()
