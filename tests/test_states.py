"""Tests for the order state machine.

These tests verify:
- The transition table among the canonical states
- Failure state edges and terminal states
- Event resolution and guards
- Entry side effects
- Tracking identifier checksums
"""

from __future__ import annotations

import random
from decimal import Decimal

import pytest

from order_processing import (
    CANONICAL_STATES,
    CRITICAL_STATES,
    FAILURE_STATES,
    InvalidTransitionError,
    Order,
    OrderEvent,
    OrderItem,
    OrderState,
    OrderStateMachine,
    SideEffectKind,
    TrackingNumberGenerator,
    build_transition_table,
    is_valid_tracking_id,
    tracking_checksum,
)

S = OrderState

CANONICAL_TRANSITIONS = {
    S.PENDING: {S.VALIDATED, S.CANCELLED},
    S.VALIDATED: {S.PAYMENT_PROCESSING, S.CANCELLED},
    S.PAYMENT_PROCESSING: {S.PAID, S.CANCELLED},
    S.PAID: {S.INVENTORY_RESERVED, S.CANCELLED, S.REFUNDED},
    S.INVENTORY_RESERVED: {S.SHIPPED, S.CANCELLED, S.REFUNDED},
    S.SHIPPED: {S.DELIVERED, S.CANCELLED, S.REFUNDED},
    S.DELIVERED: {S.REFUNDED},
    S.CANCELLED: set(),
    S.REFUNDED: set(),
}


def _order(state: OrderState = S.PENDING, **fields) -> Order:
    return Order(
        customer_id="cust-1",
        items=[OrderItem(product_id="sku-a", quantity=2, unit_price=Decimal("10"))],
        total_amount=Decimal("20"),
        state=state,
        **fields,
    )


@pytest.fixture
def machine() -> OrderStateMachine:
    return OrderStateMachine(tracking=TrackingNumberGenerator("UPS", rng=random.Random(42)))


class TestTransitionTable:
    """Test the legality of every canonical state pair."""

    def test_canonical_pairs_match_table(self, machine):
        """Every ordered pair of canonical states is legal iff listed."""
        for current in CANONICAL_STATES:
            for target in CANONICAL_STATES:
                expected = target in CANONICAL_TRANSITIONS[current]
                assert machine.can_transition_to(current, target) is expected, (current, target)

    def test_canonical_states_only_reach_listed_canonical_states(self, machine):
        for current in CANONICAL_STATES:
            reachable = machine.possible_next_states(current) & CANONICAL_STATES
            assert reachable == CANONICAL_TRANSITIONS[current]

    def test_failure_states_only_allow_cancel(self, machine):
        for failed in FAILURE_STATES:
            assert machine.possible_next_states(failed) == frozenset({S.CANCELLED})

    def test_terminal_states(self, machine):
        terminal = {state for state in OrderState if machine.is_terminal_state(state)}
        assert terminal == {S.CANCELLED, S.REFUNDED}

    def test_initial_state(self, machine):
        assert machine.initial_state() is S.PENDING

    def test_table_is_immutable(self):
        table = build_transition_table()
        with pytest.raises(TypeError):
            table.transitions[S.CANCELLED] = frozenset({S.PENDING})  # type: ignore[index]

    def test_critical_states(self):
        assert CRITICAL_STATES == FAILURE_STATES | {S.CANCELLED, S.REFUNDED}

    def test_state_metadata(self):
        assert S.PAYMENT_PROCESSING.display_name == "Payment Processing"
        assert S.PENDING.sequence < S.SHIPPED.sequence
        assert str(S.SHIPPED) == "shipped"


class TestEventResolution:
    """Test event to target state resolution."""

    @pytest.mark.parametrize(
        ("current", "event", "target"),
        [
            (S.PENDING, OrderEvent.PROCESS, S.VALIDATED),
            (S.PENDING, OrderEvent.VALIDATION_FAILED, S.VALIDATION_FAILED),
            (S.VALIDATED, OrderEvent.PAYMENT_REQUESTED, S.PAYMENT_PROCESSING),
            (S.PAYMENT_PROCESSING, OrderEvent.PAYMENT_COMPLETED, S.PAID),
            (S.PAYMENT_PROCESSING, OrderEvent.PAYMENT_FAILED, S.PAYMENT_FAILED),
            (S.PAID, OrderEvent.INVENTORY_RESERVED, S.INVENTORY_RESERVED),
            (S.PAID, OrderEvent.INVENTORY_FAILED, S.INVENTORY_FAILED),
            (S.INVENTORY_RESERVED, OrderEvent.SHIPPING_FAILED, S.SHIPPING_FAILED),
            (S.INVENTORY_RESERVED, OrderEvent.PROCESSING_COMPLETED, S.SHIPPED),
            (S.INVENTORY_RESERVED, OrderEvent.SHIP, S.SHIPPED),
            (S.SHIPPED, OrderEvent.DELIVER, S.DELIVERED),
            (S.SHIPPED, OrderEvent.CANCEL, S.CANCELLED),
            (S.DELIVERED, OrderEvent.REFUND, S.REFUNDED),
            (S.PAYMENT_FAILED, OrderEvent.CANCEL, S.CANCELLED),
            (S.VALIDATED, OrderEvent.PROCESSING_FAILED, S.PROCESSING_FAILED),
        ],
    )
    def test_accepted_events(self, machine, current, event, target):
        assert machine.target_for(current, event) is target
        assert machine.can_fire(current, event)

    @pytest.mark.parametrize(
        ("current", "event"),
        [
            (S.VALIDATED, OrderEvent.PROCESS),
            (S.PENDING, OrderEvent.REFUND),
            (S.DELIVERED, OrderEvent.CANCEL),
            (S.CANCELLED, OrderEvent.CANCEL),
            (S.REFUNDED, OrderEvent.REFUND),
            (S.SHIPPED, OrderEvent.PROCESSING_FAILED),
            (S.PENDING, OrderEvent.SHIP),
        ],
    )
    def test_rejected_events(self, machine, current, event):
        assert machine.target_for(current, event) is None
        assert not machine.can_fire(current, event)

    def test_require_raises_without_mutation(self, machine):
        order = _order(S.DELIVERED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.require(order, OrderEvent.CANCEL)

        assert order.state is S.DELIVERED
        assert order.history == []
        assert exc_info.value.current_state == "delivered"
        assert exc_info.value.requested == "cancel"
        assert exc_info.value.retryable is False


class TestFireAndHistory:
    """Test applying events and the audit trail."""

    def test_initialize_records_creation(self, machine):
        order = _order()
        entry = machine.initialize(order)

        assert order.state is S.PENDING
        assert entry.previous_state is None
        assert entry.event is OrderEvent.CREATE
        assert len(order.history) == 1

    def test_fire_appends_history(self, machine):
        order = _order()
        machine.fire(order, OrderEvent.PROCESS, reason="checked", changed_by="tester")

        entry = order.history[-1]
        assert order.state is S.VALIDATED
        assert entry.previous_state is S.PENDING
        assert entry.new_state is S.VALIDATED
        assert entry.reason == "checked"
        assert entry.changed_by == "tester"
        assert not entry.is_critical

    def test_entry_into_failure_state_is_critical(self, machine):
        order = _order(S.PAYMENT_PROCESSING)
        machine.fire(order, OrderEvent.PAYMENT_FAILED)

        assert order.history[-1].is_critical


class TestEntrySideEffects:
    """Test on_enter side effect descriptions."""

    def test_paid_notifies_payment(self, machine):
        effects = machine.on_enter(S.PAID, _order(S.PAID))
        assert [e.kind for e in effects] == [SideEffectKind.NOTIFY_PAYMENT_CONFIRMED]

    def test_inventory_reserved_checks_backorder(self, machine):
        effects = machine.on_enter(S.INVENTORY_RESERVED, _order(S.INVENTORY_RESERVED))
        assert effects[0].kind is SideEffectKind.CHECK_BACKORDER
        assert effects[0].payload["product_ids"] == ["sku-a"]

    def test_shipped_assigns_valid_tracking_id(self, machine):
        effects = machine.on_enter(S.SHIPPED, _order(S.SHIPPED))

        assert [e.kind for e in effects] == [
            SideEffectKind.ASSIGN_TRACKING_ID,
            SideEffectKind.NOTIFY_SHIPMENT_STATUS,
        ]
        tracking_id = effects[0].payload["tracking_id"]
        assert tracking_id.startswith("UPS-")
        assert is_valid_tracking_id(tracking_id)
        assert effects[1].payload == {"tracking_id": tracking_id, "carrier": "UPS"}

    def test_shipped_keeps_existing_tracking_id(self, machine):
        order = _order(S.SHIPPED, tracking_id="UPS-12345678905")
        effects = machine.on_enter(S.SHIPPED, order)
        assert effects[0].payload["tracking_id"] == "UPS-12345678905"

    def test_delivered_starts_return_window(self):
        machine = OrderStateMachine(return_window_days=14)
        order = _order(S.DELIVERED)

        effects = machine.on_enter(S.DELIVERED, order)

        assert effects[0].kind is SideEffectKind.START_RETURN_WINDOW
        assert (effects[0].payload["ends_at"] - order.updated_at).days == 14

    def test_cancelled_releases_and_refunds_what_took_effect(self, machine):
        order = _order(S.CANCELLED, inventory_reserved=True, payment_captured=True)
        kinds = [e.kind for e in machine.on_enter(S.CANCELLED, order)]
        assert kinds == [SideEffectKind.RELEASE_INVENTORY, SideEffectKind.INITIATE_REFUND]

    def test_cancelled_skips_completed_compensations(self, machine):
        order = _order(S.CANCELLED, payment_captured=True, refund_amount=Decimal("20"))
        assert machine.on_enter(S.CANCELLED, order) == []

    def test_refunded_does_not_release_shipped_goods(self, machine):
        order = _order(
            S.REFUNDED,
            inventory_reserved=True,
            shipping_arranged=True,
            payment_captured=True,
            refund_amount=Decimal("20"),
        )
        assert machine.on_enter(S.REFUNDED, order) == []

    @pytest.mark.parametrize("state", [S.PENDING, S.VALIDATED, S.PAYMENT_PROCESSING])
    def test_states_without_effects(self, machine, state):
        assert machine.on_enter(state, _order(state)) == []


class TestTrackingIds:
    """Test tracking identifier generation and checksums."""

    def test_checksum_known_value(self):
        # weights 1,3,1,3,...: 1+6+3+12+5+18+7+24+9+0 = 85
        assert tracking_checksum("1234567890") == 5

    def test_checksum_of_zeros(self):
        assert tracking_checksum("0000000000") == 0

    @pytest.mark.parametrize("body", ["123", "12345678901", "12345abcde"])
    def test_checksum_rejects_bad_bodies(self, body):
        with pytest.raises(ValueError):
            tracking_checksum(body)

    def test_generated_ids_round_trip(self):
        generator = TrackingNumberGenerator("fedex", rng=random.Random(7))
        for _ in range(50):
            tracking_id = generator.generate()
            assert tracking_id.startswith("FEDEX-")
            assert is_valid_tracking_id(tracking_id)

    def test_altered_digit_fails_validation(self):
        assert is_valid_tracking_id("UPS-12345678905")
        assert not is_valid_tracking_id("UPS-12345678904")
        assert not is_valid_tracking_id("UPS-22345678905")

    @pytest.mark.parametrize("tracking_id", ["", "UPS12345678905", "ups-12345678905"])
    def test_malformed_ids(self, tracking_id):
        assert not is_valid_tracking_id(tracking_id)
