"""In-process event bridge for order domain events.

This module provides the EventBridge class that wraps pyee's EventEmitter
to publish order lifecycle events (creation, state changes, compensation
failures, side effects) to interested subscribers.

Example:
    >>> from order_processing import EventBridge, EventNames
    >>>
    >>> bridge = EventBridge.instance()
    >>> bridge.start()
    >>>
    >>> def on_state_changed(order, previous_state, event):
    ...     print(f"{order.order_id}: {previous_state} -> {order.state}")
    ...
    >>> bridge.subscribe(EventNames.ORDER_STATE_CHANGED, on_state_changed)
    >>>
    >>> bridge.stop()
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pyee.base import EventEmitter

from .logging import log_debug, log_info, log_warn


class EventNames:
    """Constants for event names published by ``OrderService``.

    Attributes:
        ORDER_CREATED: An order was created and persisted.
        ORDER_STATE_CHANGED: An order moved to a new state.
        ORDER_CANCELLED: An order was cancelled.
        ORDER_REFUNDED: A refund was recorded on an order.
        COMPENSATION_FAILED: A saga compensation raised or was rejected.
        SIDE_EFFECT: A state-entry side effect ran.
        SIDE_EFFECT_FAILED: A state-entry side effect failed.
    """

    ORDER_CREATED = "order.created"
    ORDER_STATE_CHANGED = "order.state_changed"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_REFUNDED = "order.refunded"
    COMPENSATION_FAILED = "order.compensation_failed"
    SIDE_EFFECT = "order.side_effect"
    SIDE_EFFECT_FAILED = "order.side_effect_failed"


class EventBridge:
    """In-process event bus for order lifecycle events.

    ``EventBridge.instance()`` returns a shared bridge; components that want
    isolation (tests, several services in one process) may construct their
    own and pass it to ``OrderService``.

    Events are only delivered while the bridge is active.

    Events:
        order.created: (order)
        order.state_changed: (order, previous_state, event)
        order.cancelled: (order, reason)
        order.refunded: (order, amount)
        order.compensation_failed: (order, step, error)
        order.side_effect: (order, effect)
        order.side_effect_failed: (order, effect, error)
    """

    _instance: EventBridge | None = None

    def __init__(self) -> None:
        """Initialize the EventBridge.

        Prefer using EventBridge.instance() to get the shared bridge.
        """
        self._emitter = EventEmitter()
        self._active = False
        self._setup_event_schema()

    @classmethod
    def instance(cls) -> EventBridge:
        """Get the shared EventBridge instance.

        Example:
            >>> bridge = EventBridge.instance()
            >>> assert bridge is EventBridge.instance()
        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the shared instance, stopping it first if active.

        This is primarily for testing to ensure a clean state between tests.
        """
        if cls._instance is not None:
            cls._instance.stop()
        cls._instance = None

    def _setup_event_schema(self) -> None:
        """Define the event schema for documentation."""
        self._event_schema: dict[str, str] = {
            EventNames.ORDER_CREATED: "Order",
            EventNames.ORDER_STATE_CHANGED: "tuple[Order, OrderState, OrderEvent]",
            EventNames.ORDER_CANCELLED: "tuple[Order, str]",
            EventNames.ORDER_REFUNDED: "tuple[Order, Decimal]",
            EventNames.COMPENSATION_FAILED: "tuple[Order, str, Exception]",
            EventNames.SIDE_EFFECT: "tuple[Order, SideEffect]",
            EventNames.SIDE_EFFECT_FAILED: "tuple[Order, SideEffect, Exception]",
        }

    def start(self) -> None:
        """Activate the event bridge.

        Calling start() multiple times is safe (no-op if already active).
        """
        if self._active:
            return
        self._active = True
        log_info("EventBridge started")

    def stop(self) -> None:
        """Deactivate the event bridge and remove all listeners.

        Calling stop() multiple times is safe (no-op if not active).
        """
        if not self._active:
            return
        self._active = False
        self._emitter.remove_all_listeners()
        log_info("EventBridge stopped")

    def subscribe(
        self,
        event: str,
        handler: Callable[..., Any],
    ) -> None:
        """Subscribe to an event.

        Args:
            event: Event name to subscribe to.
            handler: Callback invoked with the published arguments.
        """
        self._emitter.on(event, handler)
        handler_name = getattr(handler, "__name__", str(handler))
        log_debug(f"Subscribed to {event}: {handler_name}")

    def subscribe_once(
        self,
        event: str,
        handler: Callable[..., Any],
    ) -> None:
        """Subscribe to an event for a single invocation."""
        self._emitter.once(event, handler)
        handler_name = getattr(handler, "__name__", str(handler))
        log_debug(f"Subscribed once to {event}: {handler_name}")

    def unsubscribe(
        self,
        event: str,
        handler: Callable[..., Any],
    ) -> None:
        """Unsubscribe a handler from an event."""
        self._emitter.remove_listener(event, handler)
        handler_name = getattr(handler, "__name__", str(handler))
        log_debug(f"Unsubscribed from {event}: {handler_name}")

    def publish(self, event: str, *args: Any, **kwargs: Any) -> None:
        """Publish an event to all subscribers.

        If the bridge is not active the event is dropped.

        Args:
            event: Event name to publish.
            *args: Positional arguments passed to handlers.
            **kwargs: Keyword arguments passed to handlers.
        """
        if not self._active:
            log_debug(f"EventBridge not active, dropping event: {event}")
            return

        log_debug(f"Publishing event: {event}")
        try:
            self._emitter.emit(event, *args, **kwargs)
        except Exception as e:
            log_warn(
                f"Subscriber for {event} raised: {e}",
                {"error_type": type(e).__name__},
            )

    def listener_count(self, event: str) -> int:
        """Get the number of listeners for an event."""
        return len(self._emitter.listeners(event))

    def listeners(self, event: str) -> list[Callable[..., Any]]:
        """Get all listeners for an event."""
        return list(self._emitter.listeners(event))

    @property
    def is_active(self) -> bool:
        """True if the bridge is active and will deliver events."""
        return self._active

    @property
    def event_schema(self) -> dict[str, str]:
        """Dict mapping event names to their expected payload types."""
        return self._event_schema.copy()


__all__ = ["EventBridge", "EventNames"]
