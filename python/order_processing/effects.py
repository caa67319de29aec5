"""Execution of state-entry side effects.

``OrderStateMachine.on_enter`` describes what should happen when an order
enters a state; ``SideEffectExecutor`` carries it out against the
collaborators and records the outcome on the order. Effects are
best-effort: a failure is logged and published, never raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .adapters import InventoryGateway, Notifier, PaymentGateway, ProductCatalog
from .errors import PaymentError
from .event_bridge import EventBridge, EventNames
from .logging import log_debug, log_warn
from .models import Order
from .types import SideEffect, SideEffectKind


class SideEffectExecutor:
    """Runs ``SideEffect`` descriptions for an order."""

    def __init__(
        self,
        payment: PaymentGateway,
        inventory: InventoryGateway,
        notifier: Notifier,
        *,
        products: ProductCatalog | None = None,
        event_bridge: EventBridge | None = None,
    ) -> None:
        self._payment = payment
        self._inventory = inventory
        self._notifier = notifier
        self._products = products
        self._bridge = event_bridge

    def execute(self, order: Order, effects: Sequence[SideEffect]) -> int:
        """Run ``effects`` in order against ``order``.

        Returns:
            The number of effects that failed.
        """
        failures = 0
        for effect in effects:
            fields = {"order_id": order.order_id, "effect": effect.kind.value}
            try:
                self._run(order, effect)
            except Exception as e:
                failures += 1
                log_warn(
                    f"Side effect failed: {e}",
                    {**fields, "error_type": type(e).__name__},
                )
                self._publish(EventNames.SIDE_EFFECT_FAILED, order, effect, e)
                continue
            log_debug("Side effect applied", fields)
            self._publish(EventNames.SIDE_EFFECT, order, effect)
        return failures

    def _run(self, order: Order, effect: SideEffect) -> None:
        payload = effect.payload
        match effect.kind:
            case SideEffectKind.NOTIFY_PAYMENT_CONFIRMED:
                self._notifier.notify_payment_confirmed(order)
            case SideEffectKind.CHECK_BACKORDER:
                self._check_backorder(order, payload.get("product_ids", []))
            case SideEffectKind.ASSIGN_TRACKING_ID:
                order.tracking_id = payload["tracking_id"]
            case SideEffectKind.NOTIFY_SHIPMENT_STATUS:
                self._notifier.notify_shipment_status(
                    order, payload["tracking_id"], payload["carrier"]
                )
            case SideEffectKind.START_RETURN_WINDOW:
                order.return_window_ends_at = payload["ends_at"]
            case SideEffectKind.RELEASE_INVENTORY:
                self._inventory.release_inventory(order)
                order.inventory_reserved = False
            case SideEffectKind.INITIATE_REFUND:
                amount = Decimal(payload["amount"])
                if not self._payment.refund_payment(order, amount):
                    raise PaymentError(
                        f"Refund of {amount} rejected for order {order.order_id}",
                        metadata={"order_id": order.order_id},
                    )
                order.refund_amount = amount

    def _check_backorder(self, order: Order, product_ids: Sequence[str]) -> None:
        if self._products is None:
            return
        for product_id in product_ids:
            if self._products.get_available_stock(product_id) <= 0:
                log_warn(
                    "Product is out of stock after reservation",
                    {"order_id": order.order_id, "product_id": product_id},
                )

    def _publish(self, event: str, *args: object) -> None:
        if self._bridge is not None:
            self._bridge.publish(event, *args)


__all__ = ["SideEffectExecutor"]
