"""In-memory collaborator implementations.

These back the test suite and ``bin/demo.py``. Every adapter can share a
``journal`` list that records calls in order (``"payment.process"``,
``"inventory.release"``, ...), which makes compensation ordering visible.

Example:
    >>> journal: list[str] = []
    >>> catalog = InMemoryProductCatalog()
    >>> catalog.add_product("sku-1", price=Decimal("10"), stock=5)
    >>> inventory = InMemoryInventory(catalog, journal=journal)
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from order_processing.errors import ConcurrentModificationError
from order_processing.logging import log_debug, log_info, log_warn
from order_processing.models import Order, OrderItem


def _aggregate(items: Sequence[OrderItem]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


class InMemoryOrderStore:
    """Dict-backed order store with optimistic version checks.

    ``save`` rejects a write whose ``version`` differs from the stored one
    and returns a copy carrying the bumped version. Reads return copies, so
    callers always go through load -> mutate -> save.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.RLock()

    def save(self, order: Order) -> Order:
        with self._lock:
            current = self._orders.get(order.order_id)
            if current is not None and current.version != order.version:
                raise ConcurrentModificationError(
                    f"Order {order.order_id} version {order.version} is stale "
                    f"(stored version {current.version})",
                    metadata={"order_id": order.order_id},
                )
            stored = order.model_copy(deep=True, update={"version": order.version + 1})
            self._orders[order.order_id] = stored
            return stored.model_copy(deep=True)

    def find_by_id(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order is not None else None

    def find_by_customer_id(self, customer_id: str) -> list[Order]:
        with self._lock:
            return [
                order.model_copy(deep=True)
                for order in self._orders.values()
                if order.customer_id == customer_id
            ]

    def __len__(self) -> int:
        return len(self._orders)


@dataclass
class CustomerRecord:
    customer_id: str
    tier: str = "BRONZE"
    active: bool = True
    blocked: bool = False
    has_payment_method: bool = True
    outstanding_orders: int = 0
    authorized_for_restricted: bool = False
    purchases: dict[str, int] = field(default_factory=dict)


class InMemoryCustomerDirectory:
    def __init__(self) -> None:
        self._customers: dict[str, CustomerRecord] = {}

    def add_customer(self, customer_id: str, **attributes: object) -> CustomerRecord:
        record = CustomerRecord(customer_id=customer_id, **attributes)  # type: ignore[arg-type]
        self._customers[customer_id] = record
        return record

    def get(self, customer_id: str) -> CustomerRecord | None:
        return self._customers.get(customer_id)

    def _require(self, customer_id: str) -> CustomerRecord:
        record = self._customers.get(customer_id)
        if record is None:
            raise KeyError(customer_id)
        return record

    def customer_exists(self, customer_id: str) -> bool:
        return customer_id in self._customers

    def is_customer_active(self, customer_id: str) -> bool:
        return self._require(customer_id).active

    def is_customer_blocked(self, customer_id: str) -> bool:
        return self._require(customer_id).blocked

    def has_valid_payment_method(self, customer_id: str) -> bool:
        return self._require(customer_id).has_payment_method

    def get_customer_tier(self, customer_id: str) -> str | None:
        record = self._customers.get(customer_id)
        return record.tier if record is not None else None

    def get_outstanding_order_count(self, customer_id: str) -> int:
        return self._require(customer_id).outstanding_orders

    def is_authorized_for_restricted_products(self, customer_id: str) -> bool:
        return self._require(customer_id).authorized_for_restricted

    def get_purchased_quantity(self, customer_id: str, product_id: str) -> int:
        return self._require(customer_id).purchases.get(product_id, 0)


@dataclass
class ProductRecord:
    product_id: str
    price: Decimal
    stock: int = 0
    active: bool = True
    ordering_restricted: bool = False
    requires_authorization: bool = False
    companions: frozenset[str] = frozenset()
    offer_starts_at: datetime | None = None
    offer_ends_at: datetime | None = None
    purchase_cap: int | None = None


class InMemoryProductCatalog:
    def __init__(self) -> None:
        self._products: dict[str, ProductRecord] = {}
        self._lock = threading.RLock()

    def add_product(
        self, product_id: str, *, price: Decimal, **attributes: object
    ) -> ProductRecord:
        record = ProductRecord(
            product_id=product_id, price=Decimal(price), **attributes  # type: ignore[arg-type]
        )
        self._products[product_id] = record
        return record

    def get(self, product_id: str) -> ProductRecord | None:
        return self._products.get(product_id)

    def _require(self, product_id: str) -> ProductRecord:
        record = self._products.get(product_id)
        if record is None:
            raise KeyError(product_id)
        return record

    def adjust_stock(self, product_id: str, delta: int) -> int:
        with self._lock:
            record = self._require(product_id)
            record.stock += delta
            return record.stock

    def product_exists(self, product_id: str) -> bool:
        return product_id in self._products

    def is_product_active(self, product_id: str) -> bool:
        return self._require(product_id).active

    def get_available_stock(self, product_id: str) -> int:
        return self._require(product_id).stock

    def get_current_price(self, product_id: str) -> Decimal:
        return self._require(product_id).price

    def has_ordering_restrictions(self, product_id: str) -> bool:
        return self._require(product_id).ordering_restricted

    def requires_authorization(self, product_id: str) -> bool:
        return self._require(product_id).requires_authorization

    def get_required_companions(self, product_id: str) -> frozenset[str]:
        return self._require(product_id).companions

    def get_offer_window(self, product_id: str) -> tuple[datetime | None, datetime | None]:
        record = self._require(product_id)
        return record.offer_starts_at, record.offer_ends_at

    def get_purchase_cap(self, product_id: str) -> int | None:
        return self._require(product_id).purchase_cap


class InMemoryInventory:
    """Stock reservations against an ``InMemoryProductCatalog``.

    Reservations are tracked per order, so reserving twice or releasing an
    order that holds nothing is a no-op.
    """

    def __init__(
        self,
        catalog: InMemoryProductCatalog,
        *,
        journal: list[str] | None = None,
    ) -> None:
        self._catalog = catalog
        self._journal = journal if journal is not None else []
        self._reservations: dict[str, dict[str, int]] = {}
        self._lock = threading.RLock()
        self.fail_reservations = False
        self.release_error: Exception | None = None

    @property
    def reservations(self) -> dict[str, dict[str, int]]:
        return {k: dict(v) for k, v in self._reservations.items()}

    def check_availability(self, items: Sequence[OrderItem]) -> bool:
        self._journal.append("inventory.check")
        return self._available(items)

    def _available(self, items: Sequence[OrderItem]) -> bool:
        with self._lock:
            for product_id, quantity in _aggregate(items).items():
                if not self._catalog.product_exists(product_id):
                    return False
                if self._catalog.get_available_stock(product_id) < quantity:
                    return False
            return True

    def reserve_inventory(self, order: Order) -> bool:
        self._journal.append("inventory.reserve")
        if self.fail_reservations:
            log_warn("Simulated reservation failure", {"order_id": order.order_id})
            return False
        with self._lock:
            if order.order_id in self._reservations:
                return True
            wanted = order.quantities_by_product()
            if not self._available(order.items):
                return False
            for product_id, quantity in wanted.items():
                self._catalog.adjust_stock(product_id, -quantity)
            self._reservations[order.order_id] = wanted
        log_debug("Inventory reserved", {"order_id": order.order_id})
        return True

    def release_inventory(self, order: Order) -> None:
        self._journal.append("inventory.release")
        if self.release_error is not None:
            raise self.release_error
        with self._lock:
            held = self._reservations.pop(order.order_id, None)
            if held is None:
                log_debug("No reservation to release", {"order_id": order.order_id})
                return
            for product_id, quantity in held.items():
                self._catalog.adjust_stock(product_id, quantity)
        log_debug("Inventory released", {"order_id": order.order_id})

    def reconcile(self, order: Order) -> None:
        self._journal.append("inventory.reconcile")
        with self._lock:
            # Delivered goods leave the reservation ledger for good
            self._reservations.pop(order.order_id, None)


class InMemoryPaymentGateway:
    """Records captures and refunds; behavior is switchable per test."""

    def __init__(self, *, journal: list[str] | None = None) -> None:
        self._journal = journal if journal is not None else []
        self.approve = True
        self.approve_refunds = True
        self.error: Exception | None = None
        self.refund_error: Exception | None = None
        self.delay_seconds = 0.0
        self.captured: dict[str, Decimal] = {}
        self.refunds: list[tuple[str, Decimal]] = []

    def process_payment(self, order: Order) -> bool:
        self._journal.append("payment.process")
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        if not self.approve:
            return False
        self.captured[order.order_id] = order.total_amount
        return True

    def refund_payment(self, order: Order, amount: Decimal) -> bool:
        self._journal.append("payment.refund")
        if self.refund_error is not None:
            raise self.refund_error
        if not self.approve_refunds:
            return False
        self.refunds.append((order.order_id, Decimal(amount)))
        return True


class InMemoryShippingGateway:
    def __init__(self, *, journal: list[str] | None = None) -> None:
        self._journal = journal if journal is not None else []
        self.succeed = True
        self.error: Exception | None = None
        self.shipments: set[str] = set()
        self.cancelled: list[str] = []

    def arrange_shipping(self, order: Order) -> bool:
        self._journal.append("shipping.arrange")
        if self.error is not None:
            raise self.error
        if not self.succeed:
            return False
        self.shipments.add(order.order_id)
        return True

    def cancel_shipping(self, order: Order) -> None:
        self._journal.append("shipping.cancel")
        self.shipments.discard(order.order_id)
        self.cancelled.append(order.order_id)


class InMemoryNotifier:
    """Collects notifications instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_shipment_status = False

    def notify_payment_confirmed(self, order: Order) -> None:
        self.sent.append(("payment_confirmed", order.order_id, str(order.total_amount)))

    def notify_shipment_status(self, order: Order, tracking_id: str, carrier: str) -> None:
        if self.fail_shipment_status:
            raise ConnectionError("shipment status system unreachable")
        self.sent.append(("shipment_status", order.order_id, f"{carrier}:{tracking_id}"))

    def notify_customer(self, order: Order, message: str) -> None:
        self.sent.append(("customer", order.order_id, message))


class LoggingNotifier:
    """Default notifier: writes notifications to the log."""

    def notify_payment_confirmed(self, order: Order) -> None:
        log_info(
            "Payment confirmation sent",
            {"order_id": order.order_id, "customer_id": order.customer_id},
        )

    def notify_shipment_status(self, order: Order, tracking_id: str, carrier: str) -> None:
        log_info(
            "Shipment status published",
            {"order_id": order.order_id, "tracking_id": tracking_id, "carrier": carrier},
        )

    def notify_customer(self, order: Order, message: str) -> None:
        log_info(message, {"order_id": order.order_id, "customer_id": order.customer_id})


__all__ = [
    "CustomerRecord",
    "InMemoryCustomerDirectory",
    "InMemoryInventory",
    "InMemoryNotifier",
    "InMemoryOrderStore",
    "InMemoryPaymentGateway",
    "InMemoryProductCatalog",
    "InMemoryShippingGateway",
    "LoggingNotifier",
    "ProductRecord",
]
