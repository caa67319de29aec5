"""Order workflow orchestrator.

``OrderService`` drives an order through validation, payment, inventory
reservation and shipping as a saga. Every collaborator call is paired with
a state transition recording its outcome, and failures compensate the steps
that already took effect.

Example:
    >>> service = OrderService(store, payment, inventory, shipping, validator)
    >>> order = service.create_order(request)
    >>> order = service.process_order(order.order_id)
    >>> order.state
    <OrderState.SHIPPED: 'shipped'>
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from .adapters import InventoryGateway, Notifier, OrderStore, PaymentGateway, ShippingGateway
from .adapters.memory import LoggingNotifier
from .config import OrderProcessingConfig
from .effects import SideEffectExecutor
from .errors import (
    InsufficientInventoryError,
    InvalidTransitionError,
    OrderError,
    OrderNotFoundError,
    OrderProcessingError,
    OrderValidationError,
    PaymentError,
)
from .errors.error_classifier import get_classifier
from .event_bridge import EventBridge, EventNames
from .locking import OrderLockRegistry
from .logging import log_debug, log_error, log_info, log_warn
from .models import CreateOrderRequest, Order
from .saga import SagaRunner, SagaStep
from .states import OrderEvent, OrderState, OrderStateMachine, TrackingNumberGenerator
from .types import LogContext
from .validation import OrderValidationService

# Errors raised by the typed failure paths of process_order; the failure
# state has already been recorded when one of these surfaces.
_HANDLED_PROCESSING_ERRORS = (
    OrderValidationError,
    PaymentError,
    OrderProcessingError,
    InvalidTransitionError,
    OrderNotFoundError,
)

# Events carriers and fulfilment systems may report. Cancels and refunds go
# through cancel_order and refund_order; saga events are internal.
_EXTERNAL_STATUS_EVENTS = frozenset({OrderEvent.SHIP, OrderEvent.DELIVER})


class OrderService:
    """Creates, processes, cancels, refunds and updates orders.

    All public operations hold the per-order lock for their whole duration
    and go through load -> mutate -> save against the order store.

    Args:
        store: Order persistence.
        payment: Payment gateway.
        inventory: Inventory gateway.
        shipping: Shipping gateway.
        validator: Business validation run at the start of processing.
        state_machine: Transition guard; built from ``config`` if omitted.
        notifier: Outbound notifications; logs them if omitted.
        event_bridge: Receives order domain events; none are published if
            omitted.
        config: Engine configuration; defaults if omitted.
        locks: Per-order lock registry; a private one if omitted.
        effects: Executor for state-entry side effects; built from the
            collaborators if omitted.
    """

    def __init__(
        self,
        store: OrderStore,
        payment: PaymentGateway,
        inventory: InventoryGateway,
        shipping: ShippingGateway,
        validator: OrderValidationService,
        state_machine: OrderStateMachine | None = None,
        notifier: Notifier | None = None,
        event_bridge: EventBridge | None = None,
        config: OrderProcessingConfig | None = None,
        locks: OrderLockRegistry | None = None,
        effects: SideEffectExecutor | None = None,
    ) -> None:
        self._config = config or OrderProcessingConfig()
        self._store = store
        self._payment = payment
        self._inventory = inventory
        self._shipping = shipping
        self._validator = validator
        self._machine = state_machine or OrderStateMachine(
            tracking=TrackingNumberGenerator(self._config.carrier),
            return_window_days=self._config.return_window_days,
        )
        self._notifier = notifier or LoggingNotifier()
        self._bridge = event_bridge
        self._locks = locks if locks is not None else OrderLockRegistry()
        self._effects = effects or SideEffectExecutor(
            payment,
            inventory,
            self._notifier,
            products=validator.products,
            event_bridge=event_bridge,
        )
        self._payment_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="order-payment")

    @property
    def state_machine(self) -> OrderStateMachine:
        return self._machine

    def close(self) -> None:
        """Release the payment worker pool without waiting for stuck calls."""
        self._payment_pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> OrderService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        """Load an order.

        Raises:
            OrderNotFoundError: If no order has this ID.
        """
        order = self._store.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(
                f"Order {order_id} does not exist",
                metadata={"order_id": order_id},
            )
        return order

    def get_customer_orders(self, customer_id: str) -> list[Order]:
        """All orders of a customer, oldest first."""
        return sorted(self._store.find_by_customer_id(customer_id), key=lambda o: o.created_at)

    # =========================================================================
    # Commands
    # =========================================================================

    def create_order(self, request: CreateOrderRequest | dict[str, Any]) -> Order:
        """Create a PENDING order after structural and availability checks.

        Raises:
            OrderValidationError: If the request is malformed.
            InsufficientInventoryError: If the items are not in stock.
            OrderProcessingError: On any unexpected failure.
        """
        try:
            if not isinstance(request, CreateOrderRequest):
                request = CreateOrderRequest.model_validate(request)
        except ValidationError as e:
            reasons = [
                f"{'.'.join(str(part) for part in err['loc']) or 'request'}: {err['msg']}"
                for err in e.errors()
            ]
            log_warn("Rejected malformed order request", {"reasons": "; ".join(reasons)})
            raise OrderValidationError("Invalid order request", reasons=reasons) from e

        context = LogContext(customer_id=request.customer_id, operation="create_order")
        try:
            if not self._inventory.check_availability(request.items):
                log_warn("Insufficient inventory for new order", context)
                raise InsufficientInventoryError(
                    "Insufficient inventory for requested items",
                    reasons=["One or more items are not available in the requested quantities"],
                    metadata={"customer_id": request.customer_id},
                )

            order = Order(
                customer_id=request.customer_id,
                items=list(request.items),
                shipping_address=request.shipping_address,
                billing_address=request.billing_address,
                payment_reference=request.payment_reference,
                discount_amount=request.discount_amount,
            )
            order.total_amount = order.subtotal_amount - order.discount_amount
            order.updated_at = order.created_at

            with self._locks.hold(order.order_id):
                self._machine.initialize(order)
                order = self._store.save(order)
        except OrderError:
            raise
        except Exception as e:
            log_error(
                f"Unexpected failure creating order: {e}",
                {**context.model_dump(exclude_none=True), "error_type": type(e).__name__},
            )
            metadata = {"customer_id": request.customer_id}
            raise self._wrap(e, "Failed to create order", metadata) from e

        log_info(
            f"Order created with total {order.total_amount}",
            LogContext(
                order_id=order.order_id,
                customer_id=order.customer_id,
                state=order.state.value,
            ),
        )
        self._publish(EventNames.ORDER_CREATED, order)
        return order

    def process_order(self, order_id: str) -> Order:
        """Run the processing saga: validate, pay, reserve, ship.

        Returns:
            The order in SHIPPED state.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidTransitionError: If the order cannot be processed in its
                current state. Nothing is changed.
            OrderValidationError: If business validation fails; the order
                is left in VALIDATION_FAILED.
            PaymentError: If payment is declined, raises or times out; the
                order is left in PAYMENT_FAILED.
            OrderProcessingError: If reservation or shipping fails (after
                compensation), or on any unexpected failure (the order is
                left in PROCESSING_FAILED when that can be recorded).
        """
        with self._locks.hold(order_id):
            order = self.get_order(order_id)
            self._machine.require(order, OrderEvent.PROCESS)
            context = LogContext(
                order_id=order_id, customer_id=order.customer_id, operation="process_order"
            )
            log_info("Processing order", context)

            runner = SagaRunner(
                advance=self._transition,
                on_compensation_failure=self._compensation_failed,
            )
            try:
                result = self._validator.validate_order(order)
                if not result.valid:
                    self._transition(
                        order, OrderEvent.VALIDATION_FAILED, "; ".join(result.errors)
                    )
                    raise OrderValidationError(
                        f"Order {order_id} failed validation",
                        reasons=result.errors,
                        metadata={"order_id": order_id},
                    )

                order = self._transition(order, OrderEvent.PROCESS, "Validation passed")
                order = runner.run(order, self._saga_steps())
            except _HANDLED_PROCESSING_ERRORS:
                raise
            except Exception as e:
                log_error(
                    f"Unexpected failure processing order: {e}",
                    {**context.model_dump(exclude_none=True), "error_type": type(e).__name__},
                )
                self._record_processing_failure(runner.current or order, e)
                message = f"Failed to process order {order_id}"
                raise self._wrap(e, message, {"order_id": order_id}) from e

            log_info(
                "Order processing completed",
                LogContext(order_id=order_id, state=order.state.value),
            )
            return order

    def cancel_order(self, order_id: str, reason: str) -> Order:
        """Cancel an order, compensating whatever already took effect.

        Cancelling an already cancelled or refunded order is a no-op.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidTransitionError: If the order was delivered.
        """
        with self._locks.hold(order_id):
            order = self.get_order(order_id)
            context = LogContext(
                order_id=order_id, operation="cancel_order", state=order.state.value
            )

            if self._machine.is_terminal_state(order.state):
                log_info("Order already closed, nothing to cancel", context)
                return order
            if order.state == OrderState.DELIVERED:
                raise InvalidTransitionError(
                    f"Order {order_id} was delivered and cannot be cancelled; refund it instead",
                    current_state=order.state.value,
                    requested=OrderEvent.CANCEL.value,
                    metadata={"order_id": order_id},
                )
            self._machine.require(order, OrderEvent.CANCEL)

            # Shipping -> inventory -> payment
            if order.shipping_arranged:
                self._compensate(order, "shipping", self._cancel_shipping)
            if order.inventory_reserved:
                self._compensate(order, "inventory", self._release_inventory)
            if order.payment_may_be_captured and not order.refund_amount:
                self._compensate(order, "payment", self._refund_payment)

            order.cancellation_reason = reason
            order = self._transition(order, OrderEvent.CANCEL, reason)
            log_info("Order cancelled", context)
            self._publish(EventNames.ORDER_CANCELLED, order, reason)
            return order

    def update_order_status(self, order_id: str, event: OrderEvent | str) -> Order:
        """Apply an externally triggered event, e.g. from a carrier webhook.

        Only SHIP and DELIVER are accepted; cancellations and refunds go
        through ``cancel_order`` and ``refund_order``. DELIVER reconciles
        inventory; SHIP notifies the customer.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidTransitionError: If the event is not SHIP or DELIVER, or
                is not accepted in the order's current state.
        """
        with self._locks.hold(order_id):
            order = self.get_order(order_id)
            try:
                event = OrderEvent(event)
            except ValueError as e:
                raise InvalidTransitionError(
                    f"Unknown order event {event!r}",
                    current_state=order.state.value,
                    requested=str(event),
                ) from e
            if event not in _EXTERNAL_STATUS_EVENTS:
                raise InvalidTransitionError(
                    f"Event {event} cannot be applied as a status update; "
                    "use the dedicated operation",
                    current_state=order.state.value,
                    requested=event.value,
                    metadata={"order_id": order_id},
                )
            self._machine.require(order, event)
            order = self._transition(order, event, f"External status update: {event}")
            if self._after_status_update(order, event):
                order = self._store.save(order)
            return order

    def refund_order(self, order_id: str, amount: Decimal | int | str) -> Order:
        """Refund part or all of an order's total.

        Raises:
            OrderNotFoundError: If the order does not exist.
            OrderValidationError: If the amount is not positive or exceeds
                the order total.
            InvalidTransitionError: If the order cannot be refunded in its
                current state (including a second refund).
            PaymentError: If the gateway rejects or fails the refund; the
                order state is left unchanged.
        """
        with self._locks.hold(order_id):
            order = self.get_order(order_id)
            refund_amount = self._parse_amount(amount)
            if refund_amount <= 0 or refund_amount > order.total_amount:
                raise OrderValidationError(
                    f"Refund amount {refund_amount} must be positive and at most "
                    f"{order.total_amount}",
                    reasons=["Invalid refund amount"],
                    metadata={"order_id": order_id},
                )
            self._machine.require(order, OrderEvent.REFUND)

            fields = {"order_id": order_id, "amount": str(refund_amount)}
            try:
                refunded = self._payment.refund_payment(order, refund_amount)
            except Exception as e:
                log_error(f"Refund call failed: {e}", {**fields, "error_type": type(e).__name__})
                raise PaymentError(
                    f"Refund failed for order {order_id}: {e}",
                    metadata={"order_id": order_id},
                ) from e
            if not refunded:
                log_warn("Refund rejected by payment gateway", fields)
                raise PaymentError(
                    f"Refund of {refund_amount} rejected for order {order_id}",
                    retryable=False,
                    metadata={"order_id": order_id},
                )

            order.refund_amount = refund_amount
            order = self._transition(order, OrderEvent.REFUND, f"Refunded {refund_amount}")
            log_info("Order refunded", fields)
            self._publish(EventNames.ORDER_REFUNDED, order, refund_amount)
            return order

    # =========================================================================
    # Saga steps
    # =========================================================================

    def _saga_steps(self) -> list[SagaStep]:
        return [
            SagaStep(
                name="payment",
                action=self._capture_payment,
                compensation=self._refund_payment,
                start_event=OrderEvent.PAYMENT_REQUESTED,
                success_event=OrderEvent.PAYMENT_COMPLETED,
                failure_event=OrderEvent.PAYMENT_FAILED,
                record=_mark_payment_captured,
                error_type=PaymentError,
            ),
            SagaStep(
                name="inventory",
                action=self._inventory.reserve_inventory,
                compensation=self._release_inventory,
                success_event=OrderEvent.INVENTORY_RESERVED,
                failure_event=OrderEvent.INVENTORY_FAILED,
                record=_mark_inventory_reserved,
            ),
            SagaStep(
                name="shipping",
                action=self._shipping.arrange_shipping,
                compensation=self._cancel_shipping,
                success_event=OrderEvent.PROCESSING_COMPLETED,
                failure_event=OrderEvent.SHIPPING_FAILED,
                record=_mark_shipping_arranged,
            ),
        ]

    def _capture_payment(self, order: Order) -> bool:
        timeout = self._config.payment_timeout_seconds
        snapshot = order.model_copy(deep=True)
        future = self._payment_pool.submit(self._payment.process_payment, snapshot)
        try:
            approved = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            # The call keeps running on its worker and may still capture;
            # the mark makes a later cancel_order attempt a refund.
            order.payment_outcome_unknown = True
            raise PaymentError(
                f"Payment for order {order.order_id} timed out after {timeout}s",
                timed_out=True,
                metadata={"order_id": order.order_id},
            ) from e
        except OrderError:
            raise
        except Exception as e:
            raise PaymentError(
                f"Payment for order {order.order_id} failed: {e}",
                metadata={"order_id": order.order_id},
            ) from e
        if not approved:
            raise PaymentError(
                f"Payment declined for order {order.order_id}",
                retryable=False,
                metadata={"order_id": order.order_id},
            )
        return True

    def _refund_payment(self, order: Order) -> None:
        if not order.payment_may_be_captured or order.refund_amount:
            return
        amount = order.total_amount
        if not self._payment.refund_payment(order, amount):
            raise PaymentError(
                f"Refund of {amount} rejected for order {order.order_id}",
                metadata={"order_id": order.order_id},
            )
        order.refund_amount = amount

    def _release_inventory(self, order: Order) -> None:
        if not order.inventory_reserved:
            return
        self._inventory.release_inventory(order)
        order.inventory_reserved = False

    def _cancel_shipping(self, order: Order) -> None:
        if not order.shipping_arranged:
            return
        self._shipping.cancel_shipping(order)
        order.shipping_arranged = False

    # =========================================================================
    # Helpers
    # =========================================================================

    def _transition(self, order: Order, event: OrderEvent, reason: str | None = None) -> Order:
        """Fire ``event``, run its entry side effects and persist."""
        previous = order.state
        effects = self._machine.fire(order, event, reason=reason)
        if effects:
            self._effects.execute(order, effects)
        saved = self._store.save(order)
        self._publish(EventNames.ORDER_STATE_CHANGED, saved, previous, event)
        return saved

    def _after_status_update(self, order: Order, event: OrderEvent) -> bool:
        """Event-specific follow-up of an external update; True if the order changed."""
        fields = {"order_id": order.order_id, "event": event.value}
        try:
            match event:
                case OrderEvent.DELIVER:
                    self._inventory.reconcile(order)
                    order.inventory_reserved = False
                    return True
                case OrderEvent.SHIP:
                    self._notifier.notify_customer(order, "Your order has shipped")
                    return False
                case _:
                    return False
        except Exception as e:
            log_warn(
                f"Status update follow-up failed: {e}",
                {**fields, "error_type": type(e).__name__},
            )
            return False

    def _compensate(self, order: Order, step: str, compensation: Callable[[Order], None]) -> None:
        try:
            compensation(order)
        except Exception as e:
            log_error(
                f"Compensation failed: {e}",
                {"order_id": order.order_id, "step": step, "error_type": type(e).__name__},
            )
            self._compensation_failed(order, step, e)

    def _compensation_failed(self, order: Order, step: str, error: Exception) -> None:
        self._publish(EventNames.COMPENSATION_FAILED, order, step, error)

    def _record_processing_failure(self, order: Order, cause: Exception) -> None:
        """Best-effort move into PROCESSING_FAILED after an unexpected error."""
        if not self._machine.can_fire(order.state, OrderEvent.PROCESSING_FAILED):
            log_debug(
                f"Order cannot enter {OrderState.PROCESSING_FAILED} from {order.state}",
                {"order_id": order.order_id},
            )
            return
        try:
            self._transition(order, OrderEvent.PROCESSING_FAILED, str(cause))
        except Exception as e:
            log_error(
                f"Could not record processing failure: {e}",
                {"order_id": order.order_id, "error_type": type(e).__name__},
            )

    @staticmethod
    def _wrap(cause: Exception, message: str, metadata: dict[str, Any]) -> OrderProcessingError:
        classification = get_classifier().classify(cause)
        return OrderProcessingError(
            f"{message}: {cause}",
            retryable=bool(classification["retryable"]),
            metadata={**metadata, "cause": classification["error_type"]},
        )

    @staticmethod
    def _parse_amount(amount: Decimal | int | str) -> Decimal:
        try:
            return Decimal(str(amount))
        except InvalidOperation as e:
            raise OrderValidationError(
                f"Refund amount {amount!r} is not a number",
                reasons=["Invalid refund amount"],
            ) from e

    def _publish(self, event: str, *args: Any) -> None:
        if self._bridge is not None:
            self._bridge.publish(event, *args)


def _mark_payment_captured(order: Order) -> None:
    order.payment_captured = True


def _mark_inventory_reserved(order: Order) -> None:
    order.inventory_reserved = True


def _mark_shipping_arranged(order: Order) -> None:
    order.shipping_arranged = True


__all__ = ["OrderService"]
