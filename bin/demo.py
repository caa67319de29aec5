#!/usr/bin/env python3
"""Order Processing Demo.

Runs orders through the full lifecycle against the in-memory adapters:
a happy path (create, process, deliver, refund), a shipping failure with
compensation, and a cancellation.
"""

from __future__ import annotations

import logging
import os
import sys
from decimal import Decimal

# Add the python source directory to the path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

from order_processing import (
    CreateOrderRequest,
    EventBridge,
    EventNames,
    OrderError,
    OrderEvent,
    OrderProcessingConfig,
    OrderService,
    OrderValidationService,
    configure_logging,
    load_config,
)
from order_processing.adapters.memory import (
    InMemoryCustomerDirectory,
    InMemoryInventory,
    InMemoryOrderStore,
    InMemoryPaymentGateway,
    InMemoryProductCatalog,
    InMemoryShippingGateway,
)
from order_processing.models import Address

CONFIG = load_config()
configure_logging(os.environ.get("ORDER_PROCESSING_LOG", CONFIG.log_level))
logger = logging.getLogger("order-demo")

ADDRESS = Address(line1="1 Main St", city="Springfield", postal_code="12345", country="US")


def show_banner() -> None:
    """Display startup banner."""
    logger.info("=" * 60)
    logger.info("Order Processing Demo")
    logger.info("=" * 60)
    logger.info(f"Python Version: {sys.version.split()[0]}")
    logger.info(f"Config Path: {os.environ.get('ORDER_PROCESSING_CONFIG', 'Not set')}")


def build_service(
    journal: list[str],
    config: OrderProcessingConfig,
) -> tuple[OrderService, InMemoryShippingGateway]:
    """Wire the service to freshly seeded in-memory collaborators."""
    catalog = InMemoryProductCatalog()
    catalog.add_product("widget", price=Decimal("20.00"), stock=100)
    catalog.add_product("gadget", price=Decimal("40.00"), stock=10)

    customers = InMemoryCustomerDirectory()
    customers.add_customer("cust-1", tier="GOLD")

    shipping = InMemoryShippingGateway(journal=journal)
    service = OrderService(
        InMemoryOrderStore(),
        InMemoryPaymentGateway(journal=journal),
        InMemoryInventory(catalog, journal=journal),
        shipping,
        OrderValidationService(customers, catalog, config),
        event_bridge=EventBridge.instance(),
        config=config,
    )
    return service, shipping


def new_request() -> CreateOrderRequest:
    return CreateOrderRequest.model_validate(
        {
            "customer_id": "cust-1",
            "items": [
                {"product_id": "widget", "quantity": 2, "unit_price": "20.00"},
                {"product_id": "gadget", "quantity": 1, "unit_price": "40.00"},
            ],
            "shipping_address": ADDRESS,
            "billing_address": ADDRESS,
        }
    )


def main() -> int:
    """Main entry point."""
    show_banner()

    bridge = EventBridge.instance()
    bridge.start()
    bridge.subscribe(
        EventNames.ORDER_STATE_CHANGED,
        lambda order, previous, event: logger.info(
            f"  {order.order_id}: {previous} -> {order.state} ({event})"
        ),
    )

    journal: list[str] = []
    service, shipping = build_service(journal, CONFIG)
    try:
        logger.info("Happy path")
        order = service.create_order(new_request())
        logger.info(f"  Created {order.order_id} with total {order.total_amount}")
        order = service.process_order(order.order_id)
        logger.info(f"  Tracking ID: {order.tracking_id}")
        order = service.update_order_status(order.order_id, OrderEvent.DELIVER)
        order = service.refund_order(order.order_id, Decimal("20.00"))
        logger.info(f"  Refunded {order.refund_amount}; final state {order.state}")

        logger.info("Shipping failure")
        journal.clear()
        shipping.succeed = False
        order = service.create_order(new_request())
        try:
            service.process_order(order.order_id)
        except OrderError as e:
            logger.info(f"  {type(e).__name__}: {e}")
        logger.info(f"  Calls: {', '.join(journal)}")
        logger.info(f"  Final state: {service.get_order(order.order_id).state}")
        shipping.succeed = True

        logger.info("Cancellation")
        order = service.create_order(new_request())
        order = service.cancel_order(order.order_id, "Customer changed their mind")
        logger.info(f"  Final state: {order.state} ({order.cancellation_reason})")
    except OrderError as e:
        logger.error(f"Demo failed: {e}")
        return 1
    finally:
        service.close()
        bridge.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
