"""Saga execution over an ordered list of compensatable steps.

A ``SagaStep`` pairs an action with the compensation that undoes it and the
lifecycle events that record its outcome. ``SagaRunner`` runs the steps in
order; when one fails, the compensations of the steps that already took
effect run in reverse order before the failure event is recorded.

Example:
    >>> runner = SagaRunner(advance=service_transition)
    >>> order = runner.run(order, [payment_step, inventory_step, shipping_step])
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .errors import OrderError, OrderProcessingError
from .logging import log_debug, log_error, log_info, log_warn
from .models import Order
from .states import OrderEvent

# (order, event, reason) -> persisted order
AdvanceCallback = Callable[[Order, OrderEvent, str | None], Order]
CompensationFailureCallback = Callable[[Order, str, Exception], None]


@dataclass(frozen=True)
class SagaStep:
    """One unit of work in a saga.

    Attributes:
        name: Step name used in logs and compensation records.
        action: Performs the work; returns False when the collaborator
            declined. Exceptions count as failure.
        compensation: Undoes the action. Only runs for steps whose action
            succeeded.
        success_event: Event fired after the action succeeded.
        failure_event: Event fired after the action failed.
        start_event: Optional event fired before the action runs.
        record: Marks the step as having taken effect on the order.
        error_type: Error raised to the caller when the step fails.
    """

    name: str
    action: Callable[[Order], bool]
    compensation: Callable[[Order], None] | None
    success_event: OrderEvent
    failure_event: OrderEvent
    start_event: OrderEvent | None = None
    record: Callable[[Order], None] | None = None
    error_type: type[OrderError] = OrderProcessingError


@dataclass(frozen=True)
class CompensationRecord:
    step: str
    succeeded: bool
    error: str | None = None


@dataclass
class SagaRunner:
    """Runs saga steps and their compensations.

    ``advance`` applies an event to the order and persists it, returning the
    stored copy. The runner always continues with the returned copy.
    ``current`` holds the latest order the runner has seen, so callers can
    record a terminal failure when an unexpected error escapes.
    """

    advance: AdvanceCallback
    on_compensation_failure: CompensationFailureCallback | None = None
    compensations: list[CompensationRecord] = field(default_factory=list)
    current: Order | None = None

    def run(self, order: Order, steps: Sequence[SagaStep]) -> Order:
        """Run ``steps`` in order and return the final persisted order.

        Raises:
            OrderError: The failing step's ``error_type`` after compensation
                and the failure transition.
            Exception: Anything raised outside a step action (for instance
                while persisting) propagates after compensation.
        """
        completed: list[SagaStep] = []
        self.current = order
        for step in steps:
            fields = {"order_id": order.order_id, "step": step.name}
            try:
                if step.start_event is not None:
                    order = self._advance(order, step.start_event, None)
                succeeded, cause = self._attempt(step, order)
                if succeeded:
                    if step.record is not None:
                        step.record(order)
                    completed.append(step)
                    order = self._advance(order, step.success_event, None)
                    log_debug("Saga step completed", fields)
                    continue
            except Exception:
                self.compensate(order, completed)
                raise

            reason = str(cause) if cause is not None else f"{step.name} was declined"
            log_warn(f"Saga step failed: {reason}", fields)
            self.compensate(order, completed)
            order = self._advance(order, step.failure_event, reason)
            error = self._failure_error(step, order, cause, reason)
            if error is cause:
                raise error
            raise error from cause

        return order

    def compensate(self, order: Order, completed: Sequence[SagaStep]) -> None:
        """Run compensations for ``completed`` in reverse order, best-effort."""
        for step in reversed(completed):
            if step.compensation is None:
                continue
            fields = {"order_id": order.order_id, "step": step.name}
            try:
                step.compensation(order)
            except Exception as e:
                log_error(
                    f"Compensation failed: {e}",
                    {**fields, "error_type": type(e).__name__},
                )
                self.compensations.append(CompensationRecord(step.name, False, str(e)))
                if self.on_compensation_failure is not None:
                    self.on_compensation_failure(order, step.name, e)
                continue
            log_info("Compensation applied", fields)
            self.compensations.append(CompensationRecord(step.name, True))

    def _advance(self, order: Order, event: OrderEvent, reason: str | None) -> Order:
        self.current = order
        order = self.advance(order, event, reason)
        self.current = order
        return order

    @staticmethod
    def _attempt(step: SagaStep, order: Order) -> tuple[bool, Exception | None]:
        try:
            return bool(step.action(order)), None
        except Exception as e:
            log_error(
                f"Saga step raised: {e}",
                {"order_id": order.order_id, "step": step.name, "error_type": type(e).__name__},
            )
            return False, e

    @staticmethod
    def _failure_error(
        step: SagaStep,
        order: Order,
        cause: Exception | None,
        reason: str,
    ) -> OrderError:
        if isinstance(cause, step.error_type):
            return cause
        return step.error_type(
            f"{step.name} failed for order {order.order_id}: {reason}",
            metadata={"order_id": order.order_id, "step": step.name, "state": order.state.value},
        )


__all__ = ["CompensationRecord", "SagaRunner", "SagaStep"]
