from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("dental_ledger.config")

ORPHAN_POLICIES = {"detach", "delete"}
PAYMENT_METHODS = {"cash", "bank_transfer"}


class Settings(BaseSettings):
    app_env: str = "development"
    database_url: str = "sqlite:///./dental_ledger.db"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    prosthetic_category: str = Field(default="prosthetic", alias="PROSTHETIC_CATEGORY")
    relink_unlinked_lab_orders: bool = Field(default=True, alias="RELINK_UNLINKED_LAB_ORDERS")
    billing_orphan_policy: str = Field(default="detach", alias="BILLING_ORPHAN_POLICY")
    default_payment_method: str = Field(default="cash", alias="DEFAULT_PAYMENT_METHOD")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @field_validator(
        "billing_orphan_policy", "prosthetic_category", "default_payment_method", mode="before"
    )
    @classmethod
    def _normalize_lower(cls, value, info):
        if value in {"", None}:
            return cls.model_fields[info.field_name].default
        return str(value).strip().lower()


def _is_production(app_env: str) -> bool:
    return app_env.strip().lower() in {"prod", "production"}


def validate_settings(settings: Settings) -> None:
    production = _is_production(settings.app_env)
    failures: list[str] = []
    warnings: list[str] = []

    if settings.billing_orphan_policy not in ORPHAN_POLICIES:
        failures.append(
            "BILLING_ORPHAN_POLICY must be one of: " + ", ".join(sorted(ORPHAN_POLICIES))
        )

    if settings.database_url.startswith("sqlite"):
        msg = "DATABASE_URL points at SQLite"
        if production:
            failures.append(msg)
        else:
            warnings.append(msg)

    if settings.default_payment_method not in PAYMENT_METHODS:
        failures.append(
            "DEFAULT_PAYMENT_METHOD must be one of: " + ", ".join(sorted(PAYMENT_METHODS))
        )

    if not settings.relink_unlinked_lab_orders:
        warnings.append("Unlinked lab order relinking is disabled")

    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    if failures:
        raise RuntimeError("Config validation failed: " + "; ".join(failures))


settings = Settings()
