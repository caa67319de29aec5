"""Tests for order entities and request models."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from order_processing import (
    Address,
    CreateOrderRequest,
    Order,
    OrderEvent,
    OrderItem,
    OrderState,
)


def _items() -> list[OrderItem]:
    return [
        OrderItem(product_id="sku-a", quantity=3, unit_price=Decimal("10.00")),
        OrderItem(product_id="sku-b", quantity=1, unit_price=Decimal("50.00")),
        OrderItem(product_id="sku-a", quantity=2, unit_price=Decimal("10.00")),
    ]


class TestOrderItem:
    def test_subtotal(self):
        assert OrderItem(product_id="sku-a", quantity=3, unit_price=Decimal("2.50")).subtotal == (
            Decimal("7.50")
        )

    @pytest.mark.parametrize(
        "fields",
        [
            {"product_id": "", "quantity": 1, "unit_price": "1"},
            {"product_id": "sku-a", "quantity": 0, "unit_price": "1"},
            {"product_id": "sku-a", "quantity": 1, "unit_price": "-1"},
        ],
    )
    def test_invalid_items(self, fields):
        with pytest.raises(ValidationError):
            OrderItem(**fields)

    def test_frozen(self):
        item = OrderItem(product_id="sku-a", quantity=1, unit_price=Decimal("1"))
        with pytest.raises(ValidationError):
            item.quantity = 5


class TestOrder:
    def test_amounts_and_aggregation(self):
        order = Order(customer_id="cust-1", items=_items(), total_amount=Decimal("100.00"))

        assert order.subtotal_amount == Decimal("100.00")
        assert order.item_count == 3
        assert order.quantities_by_product() == {"sku-a": 5, "sku-b": 1}
        assert order.totals_consistent()

    def test_totals_consistent_with_discount(self):
        order = Order(
            customer_id="cust-1",
            items=_items(),
            discount_amount=Decimal("20.00"),
            total_amount=Decimal("80.00"),
        )
        assert order.totals_consistent()
        order.total_amount = Decimal("90.00")
        assert not order.totals_consistent()

    def test_order_ids_are_unique(self):
        first = Order(customer_id="cust-1")
        second = Order(customer_id="cust-1")
        assert first.order_id != second.order_id
        assert first.order_id.startswith("ord-")

    def test_apply_transition_records_history(self):
        order = Order(customer_id="cust-1")
        before = order.updated_at

        entry = order.apply_transition(
            OrderState.VALIDATED, event=OrderEvent.PROCESS, reason="checked"
        )

        assert order.state is OrderState.VALIDATED
        assert order.history == [entry]
        assert entry.previous_state is OrderState.PENDING
        assert order.updated_at >= before


class TestCreateOrderRequest:
    def test_country_is_normalized(self):
        address = Address(line1="1 Main St", city="Springfield", postal_code="00001", country="us")
        assert address.country == "US"

    def test_requires_items(self):
        with pytest.raises(ValidationError):
            CreateOrderRequest(customer_id="cust-1", items=[])

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError, match="discount_amount exceeds order subtotal"):
            CreateOrderRequest(
                customer_id="cust-1", items=_items(), discount_amount=Decimal("100.01")
            )

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            CreateOrderRequest(customer_id="cust-1", items=_items(), coupon="SAVE10")
