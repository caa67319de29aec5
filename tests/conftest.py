"""pytest configuration and fixtures for order_processing tests.

This module wires the in-memory collaborators into an OrderService. All
gateways share one ``journal`` list so tests can assert the order in which
collaborators were called.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from order_processing import (
        EventBridge,
        Order,
        OrderLockRegistry,
        OrderProcessingConfig,
        OrderService,
        OrderValidationService,
    )
    from order_processing.adapters.memory import (
        InMemoryCustomerDirectory,
        InMemoryInventory,
        InMemoryNotifier,
        InMemoryOrderStore,
        InMemoryPaymentGateway,
        InMemoryProductCatalog,
        InMemoryShippingGateway,
    )
    from order_processing.models import Address


@pytest.fixture(scope="session")
def order_processing_module():
    """Provide the order_processing module as a fixture."""
    import order_processing

    return order_processing


@pytest.fixture
def event_bridge() -> Generator[EventBridge, None, None]:
    """Provide a fresh EventBridge for each test.

    The bridge is automatically started and cleaned up after the test.
    """
    from order_processing import EventBridge

    EventBridge.reset_instance()
    bridge = EventBridge.instance()
    bridge.start()
    yield bridge
    bridge.stop()
    EventBridge.reset_instance()


@pytest.fixture
def journal() -> list[str]:
    """Shared call journal for all in-memory gateways."""
    return []


@pytest.fixture
def config() -> OrderProcessingConfig:
    from order_processing import OrderProcessingConfig

    return OrderProcessingConfig(payment_timeout_seconds=2)


@pytest.fixture
def address() -> Address:
    from order_processing.models import Address

    return Address(line1="1 Main St", city="Springfield", postal_code="12345", country="us")


@pytest.fixture
def catalog() -> InMemoryProductCatalog:
    """Catalog with two products: sku-a at $10 and sku-b at $50."""
    from order_processing.adapters.memory import InMemoryProductCatalog

    catalog = InMemoryProductCatalog()
    catalog.add_product("sku-a", price=Decimal("10.00"), stock=100)
    catalog.add_product("sku-b", price=Decimal("50.00"), stock=20)
    return catalog


@pytest.fixture
def customers() -> InMemoryCustomerDirectory:
    from order_processing.adapters.memory import InMemoryCustomerDirectory

    customers = InMemoryCustomerDirectory()
    customers.add_customer("cust-1")
    return customers


@pytest.fixture
def store() -> InMemoryOrderStore:
    from order_processing.adapters.memory import InMemoryOrderStore

    return InMemoryOrderStore()


@pytest.fixture
def payment(journal: list[str]) -> InMemoryPaymentGateway:
    from order_processing.adapters.memory import InMemoryPaymentGateway

    return InMemoryPaymentGateway(journal=journal)


@pytest.fixture
def inventory(catalog: InMemoryProductCatalog, journal: list[str]) -> InMemoryInventory:
    from order_processing.adapters.memory import InMemoryInventory

    return InMemoryInventory(catalog, journal=journal)


@pytest.fixture
def shipping(journal: list[str]) -> InMemoryShippingGateway:
    from order_processing.adapters.memory import InMemoryShippingGateway

    return InMemoryShippingGateway(journal=journal)


@pytest.fixture
def notifier() -> InMemoryNotifier:
    from order_processing.adapters.memory import InMemoryNotifier

    return InMemoryNotifier()


@pytest.fixture
def validator(
    customers: InMemoryCustomerDirectory,
    catalog: InMemoryProductCatalog,
    config: OrderProcessingConfig,
) -> OrderValidationService:
    from order_processing import OrderValidationService

    return OrderValidationService(customers, catalog, config)


@pytest.fixture
def locks() -> OrderLockRegistry:
    """Provide the per-order lock registry shared with the service."""
    from order_processing import OrderLockRegistry

    return OrderLockRegistry()


@pytest.fixture
def service(
    store: InMemoryOrderStore,
    payment: InMemoryPaymentGateway,
    inventory: InMemoryInventory,
    shipping: InMemoryShippingGateway,
    validator: OrderValidationService,
    notifier: InMemoryNotifier,
    event_bridge: EventBridge,
    config: OrderProcessingConfig,
    locks: OrderLockRegistry,
) -> Generator[OrderService, None, None]:
    """Provide an OrderService wired to the in-memory collaborators."""
    from order_processing import OrderService

    service = OrderService(
        store,
        payment,
        inventory,
        shipping,
        validator,
        notifier=notifier,
        event_bridge=event_bridge,
        config=config,
        locks=locks,
    )
    yield service
    service.close()


@pytest.fixture
def make_request(address: Address) -> Callable[..., dict[str, Any]]:
    """Factory for create-order payloads.

    The default order has two lines, 3 x sku-a at $10 and 1 x sku-b at $50,
    for a total of $80.
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        request: dict[str, Any] = {
            "customer_id": "cust-1",
            "items": [
                {"product_id": "sku-a", "quantity": 3, "unit_price": "10.00"},
                {"product_id": "sku-b", "quantity": 1, "unit_price": "50.00"},
            ],
            "shipping_address": address,
            "billing_address": address,
            "payment_reference": "pm-visa-4242",
        }
        request.update(overrides)
        return request

    return _make


@pytest.fixture
def created_order(
    service: OrderService,
    make_request: Callable[..., dict[str, Any]],
    journal: list[str],
) -> Order:
    """A PENDING order; the journal is cleared after creation."""
    order = service.create_order(make_request())
    journal.clear()
    return order
