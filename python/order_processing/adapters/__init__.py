"""Collaborator interfaces consumed by the order processing core.

The core only talks to payment, inventory, shipping, storage and the
customer/product directories through these protocols. In-memory
implementations live in ``order_processing.adapters.memory``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from order_processing.models import Order, OrderItem


@runtime_checkable
class PaymentGateway(Protocol):
    """Captures and refunds payments. Any call may raise."""

    def process_payment(self, order: Order) -> bool: ...

    def refund_payment(self, order: Order, amount: Decimal) -> bool: ...


@runtime_checkable
class InventoryGateway(Protocol):
    """Stock checks and per-order reservations.

    Reservation and release are idempotent per order.
    """

    def check_availability(self, items: Sequence[OrderItem]) -> bool: ...

    def reserve_inventory(self, order: Order) -> bool: ...

    def release_inventory(self, order: Order) -> None: ...

    def reconcile(self, order: Order) -> None: ...


@runtime_checkable
class ShippingGateway(Protocol):
    def arrange_shipping(self, order: Order) -> bool: ...

    def cancel_shipping(self, order: Order) -> None: ...


@runtime_checkable
class OrderStore(Protocol):
    """Persistence for orders with atomic read-modify-write per order."""

    def save(self, order: Order) -> Order: ...

    def find_by_id(self, order_id: str) -> Order | None: ...

    def find_by_customer_id(self, customer_id: str) -> list[Order]: ...


@runtime_checkable
class CustomerDirectory(Protocol):
    """Read-only customer queries used by validation."""

    def customer_exists(self, customer_id: str) -> bool: ...

    def is_customer_active(self, customer_id: str) -> bool: ...

    def is_customer_blocked(self, customer_id: str) -> bool: ...

    def has_valid_payment_method(self, customer_id: str) -> bool: ...

    def get_customer_tier(self, customer_id: str) -> str | None: ...

    def get_outstanding_order_count(self, customer_id: str) -> int: ...

    def is_authorized_for_restricted_products(self, customer_id: str) -> bool: ...

    def get_purchased_quantity(self, customer_id: str, product_id: str) -> int: ...


@runtime_checkable
class ProductCatalog(Protocol):
    """Read-only product queries used by validation."""

    def product_exists(self, product_id: str) -> bool: ...

    def is_product_active(self, product_id: str) -> bool: ...

    def get_available_stock(self, product_id: str) -> int: ...

    def get_current_price(self, product_id: str) -> Decimal: ...

    def has_ordering_restrictions(self, product_id: str) -> bool: ...

    def requires_authorization(self, product_id: str) -> bool: ...

    def get_required_companions(self, product_id: str) -> frozenset[str]: ...

    def get_offer_window(self, product_id: str) -> tuple[datetime | None, datetime | None]: ...

    def get_purchase_cap(self, product_id: str) -> int | None: ...


@runtime_checkable
class Notifier(Protocol):
    """Outbound customer and partner notifications."""

    def notify_payment_confirmed(self, order: Order) -> None: ...

    def notify_shipment_status(self, order: Order, tracking_id: str, carrier: str) -> None: ...

    def notify_customer(self, order: Order, message: str) -> None: ...


__all__ = [
    "CustomerDirectory",
    "InventoryGateway",
    "Notifier",
    "OrderStore",
    "PaymentGateway",
    "ProductCatalog",
    "ShippingGateway",
]
