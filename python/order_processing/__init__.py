"""
Order Processing

In-process order lifecycle engine: an order state machine, a multi-rule
order validator and a saga orchestrator that drives orders through payment,
inventory reservation and shipping with compensations.

Example:
    >>> from order_processing import OrderService, OrderValidationService
    >>> from order_processing.adapters.memory import (
    ...     InMemoryCustomerDirectory, InMemoryInventory, InMemoryOrderStore,
    ...     InMemoryPaymentGateway, InMemoryProductCatalog, InMemoryShippingGateway,
    ... )

    >>> catalog = InMemoryProductCatalog()
    >>> customers = InMemoryCustomerDirectory()
    >>> service = OrderService(
    ...     InMemoryOrderStore(),
    ...     InMemoryPaymentGateway(),
    ...     InMemoryInventory(catalog),
    ...     InMemoryShippingGateway(),
    ...     OrderValidationService(customers, catalog),
    ... )

    >>> from order_processing import log_info
    >>> log_info("Processing started", {"order_id": "ord-123"})
"""

from __future__ import annotations

__version__ = "0.1.0"

# Configuration
from order_processing.config import (
    CONFIG_ENV_VAR,
    OrderProcessingConfig,
    config_from_dict,
    load_config,
)

# Side effects
from order_processing.effects import SideEffectExecutor

# Error classification
from order_processing.errors import (
    ConcurrentModificationError,
    ConfigurationError,
    InsufficientInventoryError,
    InvalidTransitionError,
    OrderError,
    OrderNotFoundError,
    OrderProcessingError,
    OrderValidationError,
    PaymentError,
    PermanentError,
    RetryableError,
)
from order_processing.errors.error_classifier import (
    ErrorClassifier,
    is_permanent,
    is_retryable,
)

# Domain events
from order_processing.event_bridge import EventBridge, EventNames

# Concurrency
from order_processing.locking import OrderLockRegistry

# Structured logging
from order_processing.logging import (
    configure_logging,
    log_debug,
    log_error,
    log_info,
    log_trace,
    log_warn,
)

# Models
from order_processing.models import (
    Address,
    CreateOrderRequest,
    Order,
    OrderHistoryEntry,
    OrderItem,
)

# Saga
from order_processing.saga import CompensationRecord, SagaRunner, SagaStep

# Orchestrator
from order_processing.service import OrderService

# State machine
from order_processing.states import (
    CANONICAL_STATES,
    CRITICAL_STATES,
    FAILURE_STATES,
    OrderEvent,
    OrderState,
    OrderStateMachine,
    TrackingNumberGenerator,
    TransitionTable,
    build_transition_table,
    is_valid_tracking_id,
    tracking_checksum,
)
from order_processing.types import LogContext, SideEffect, SideEffectKind

# Validation
from order_processing.validation import (
    DEFAULT_BUSINESS_RULES,
    BusinessRule,
    OrderValidationService,
    RuleContext,
    ValidationResult,
)


def version() -> str:
    """Return the package version string."""
    return __version__


__all__ = [
    # Version
    "__version__",
    "version",
    # Configuration
    "CONFIG_ENV_VAR",
    "OrderProcessingConfig",
    "config_from_dict",
    "load_config",
    # Errors
    "ConcurrentModificationError",
    "ConfigurationError",
    "ErrorClassifier",
    "InsufficientInventoryError",
    "InvalidTransitionError",
    "OrderError",
    "OrderNotFoundError",
    "OrderProcessingError",
    "OrderValidationError",
    "PaymentError",
    "PermanentError",
    "RetryableError",
    "is_permanent",
    "is_retryable",
    # Events
    "EventBridge",
    "EventNames",
    # Concurrency
    "OrderLockRegistry",
    # Logging
    "LogContext",
    "configure_logging",
    "log_debug",
    "log_error",
    "log_info",
    "log_trace",
    "log_warn",
    # Models
    "Address",
    "CreateOrderRequest",
    "Order",
    "OrderHistoryEntry",
    "OrderItem",
    # State machine
    "CANONICAL_STATES",
    "CRITICAL_STATES",
    "FAILURE_STATES",
    "OrderEvent",
    "OrderState",
    "OrderStateMachine",
    "SideEffect",
    "SideEffectExecutor",
    "SideEffectKind",
    "TrackingNumberGenerator",
    "TransitionTable",
    "build_transition_table",
    "is_valid_tracking_id",
    "tracking_checksum",
    # Saga
    "CompensationRecord",
    "OrderService",
    "SagaRunner",
    "SagaStep",
    # Validation
    "DEFAULT_BUSINESS_RULES",
    "BusinessRule",
    "OrderValidationService",
    "RuleContext",
    "ValidationResult",
]
