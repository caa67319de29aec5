"""Configuration for the order processing engine.

Configuration is a validated pydantic model. ``load_config`` reads it from a
YAML file, searching in this order:

1. The ``path`` argument
2. The ``ORDER_PROCESSING_CONFIG`` environment variable
3. Built-in defaults

Example:
    >>> from order_processing.config import load_config
    >>>
    >>> config = load_config("config/order_processing.yaml")
    >>> config.payment_timeout_seconds
    30.0
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .logging import log_debug, log_info

CONFIG_ENV_VAR = "ORDER_PROCESSING_CONFIG"


class OrderProcessingConfig(BaseModel):
    """Tunable limits and rule data for validation and orchestration.

    Example:
        >>> config = OrderProcessingConfig(payment_timeout_seconds=5)
        >>> config.tier_order_limit("SILVER")
        5
    """

    payment_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound on waiting for the payment gateway.",
    )
    max_order_value: Decimal = Field(
        default=Decimal("100000"),
        description="Global ceiling on an order's total amount.",
    )
    max_items_per_order: int = Field(default=50, gt=0)
    max_quantity_per_item: int = Field(default=100, gt=0)
    tier_outstanding_order_limits: dict[str, int | None] = Field(
        default_factory=lambda: {"BRONZE": 3, "SILVER": 5, "GOLD": 10, "PLATINUM": None},
        description="Concurrent outstanding orders per customer tier; None is unbounded.",
    )
    default_tier: str = Field(
        default="BRONZE",
        description="Tier whose limits apply to unknown tiers.",
    )
    tier_order_value_limits: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "BRONZE": Decimal("5000"),
            "SILVER": Decimal("10000"),
            "GOLD": Decimal("25000"),
            "PLATINUM": Decimal("100000"),
        },
    )
    preferred_tiers: list[str] = Field(default_factory=lambda: ["GOLD", "PLATINUM"])
    price_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Relative tolerance for price and total comparisons.",
    )
    max_discount_ratio: Decimal = Field(default=Decimal("0.30"), ge=0, le=1)
    fraud_quantity_threshold: int = Field(default=10)
    fraud_unit_price_threshold: Decimal = Field(default=Decimal("1000"))
    high_value_threshold: Decimal = Field(default=Decimal("10000"))
    return_window_days: int = Field(default=30, ge=0)
    carrier: str = Field(default="UPS", min_length=1, pattern="^[A-Z0-9]+$")
    restricted_countries: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Product ID -> ISO country codes the product cannot ship to.",
    )
    incompatible_products: list[tuple[str, str]] = Field(
        default_factory=list,
        description="Product ID pairs that may not appear in the same order.",
    )
    shippable_countries: list[str] | None = Field(
        default=None,
        description="Allowed destination countries; None allows any.",
    )
    log_level: str = Field(
        default="info",
        pattern="^(trace|debug|info|warn|error)$",
    )

    model_config = {"extra": "forbid"}

    @field_validator("default_tier")
    @classmethod
    def _upper_tier(cls, value: str) -> str:
        return value.upper()

    def tier_order_limit(self, tier: str | None) -> int | None:
        """Outstanding-order limit for a tier, falling back to the default tier."""
        limits = self.tier_outstanding_order_limits
        key = (tier or "").upper()
        if key in limits:
            return limits[key]
        return limits.get(self.default_tier, 3)

    def tier_value_limit(self, tier: str | None) -> Decimal:
        """Order-value ceiling for a tier, falling back to the default tier."""
        limits = self.tier_order_value_limits
        key = (tier or "").upper()
        if key in limits:
            return limits[key]
        return limits.get(self.default_tier, Decimal("5000"))


def load_config(path: str | Path | None = None) -> OrderProcessingConfig:
    """Load configuration from YAML, or return defaults.

    Args:
        path: Optional path to a YAML file. Falls back to the
            ``ORDER_PROCESSING_CONFIG`` environment variable.

    Returns:
        A validated OrderProcessingConfig.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid.
    """
    source = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if not source:
        log_debug("No configuration file given, using defaults")
        return OrderProcessingConfig()

    config_path = Path(source)
    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to read configuration {config_path}: {e}",
            metadata={"path": str(config_path)},
        ) from e

    config = config_from_dict(data or {}, source=str(config_path))
    log_info("Loaded configuration", {"path": str(config_path)})
    return config


def config_from_dict(data: dict[str, Any], *, source: str = "<dict>") -> OrderProcessingConfig:
    """Validate a raw mapping into an OrderProcessingConfig.

    Raises:
        ConfigurationError: If the mapping does not match the schema.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration {source} must be a mapping",
            metadata={"path": source},
        )
    try:
        return OrderProcessingConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration {source}: {e.error_count()} error(s)",
            metadata={"path": source, "errors": e.errors(include_url=False)},
        ) from e


__all__ = [
    "CONFIG_ENV_VAR",
    "OrderProcessingConfig",
    "config_from_dict",
    "load_config",
]
