"""Tests for the error hierarchy and retry classification."""

from __future__ import annotations

import pytest

from order_processing import (
    ConcurrentModificationError,
    ConfigurationError,
    InsufficientInventoryError,
    InvalidTransitionError,
    OrderError,
    OrderNotFoundError,
    OrderProcessingError,
    OrderValidationError,
    PaymentError,
    PermanentError,
    RetryableError,
)
from order_processing.errors.error_classifier import (
    ErrorClassifier,
    get_classifier,
    is_permanent,
    is_retryable,
)


class TestErrorHierarchy:
    """Test the order error classes."""

    @pytest.mark.parametrize(
        ("error_class", "base", "retryable"),
        [
            (OrderNotFoundError, PermanentError, False),
            (OrderValidationError, PermanentError, False),
            (InsufficientInventoryError, OrderValidationError, False),
            (InvalidTransitionError, PermanentError, False),
            (ConfigurationError, PermanentError, False),
            (PaymentError, RetryableError, True),
            (OrderProcessingError, RetryableError, True),
            (ConcurrentModificationError, RetryableError, True),
        ],
    )
    def test_class_defaults(self, error_class, base, retryable):
        error = error_class("failed")
        assert isinstance(error, base)
        assert isinstance(error, OrderError)
        assert error.retryable is retryable

    def test_retryable_override(self):
        declined = PaymentError("declined", retryable=False)
        assert declined.retryable is False
        assert PaymentError("gateway down").retryable is True

    def test_can_catch_by_base_class(self):
        with pytest.raises(OrderError):
            raise OrderNotFoundError("Order ord-1 does not exist")

    def test_to_dict(self):
        error = OrderProcessingError("boom", metadata={"order_id": "ord-1"})
        assert error.to_dict() == {
            "error_type": "OrderProcessingError",
            "message": "boom",
            "retryable": True,
            "metadata": {"order_id": "ord-1"},
        }

    def test_validation_error_reasons(self):
        reasons = ["Order exceeds allowable limits"]
        error = OrderValidationError("invalid", reasons=reasons)
        reasons.append("mutated")

        assert error.reasons == ["Order exceeds allowable limits"]
        assert error.to_dict()["reasons"] == ["Order exceeds allowable limits"]
        assert OrderValidationError("invalid").reasons == []

    def test_invalid_transition_metadata(self):
        error = InvalidTransitionError(
            "illegal", current_state="delivered", requested="cancel"
        )
        assert error.metadata == {"current_state": "delivered", "requested": "cancel"}

    def test_payment_error_timed_out(self):
        assert PaymentError("slow", timed_out=True).timed_out is True
        assert PaymentError("declined").timed_out is False


class TestErrorClassifier:
    """Test retry classification."""

    def test_explicit_attribute_wins(self):
        result = ErrorClassifier().classify(PaymentError("declined", retryable=False))
        assert result == {
            "error_type": "PaymentError",
            "retryable": False,
            "classification": "explicit_attribute",
        }

    @pytest.mark.parametrize("error", [ValueError("bad"), KeyError("sku"), TypeError("x")])
    def test_permanent_builtins(self, error):
        result = ErrorClassifier().classify(error)
        assert result["retryable"] is False
        assert result["classification"] == "permanent_class"

    @pytest.mark.parametrize("error", [ConnectionError("down"), TimeoutError(), OSError()])
    def test_retryable_builtins(self, error):
        result = ErrorClassifier().classify(error)
        assert result["retryable"] is True
        assert result["classification"] == "retryable_class"

    def test_default_for_unknown(self):
        class Unknown(Exception):
            pass

        assert ErrorClassifier().retryable(Unknown())
        assert ErrorClassifier(default_retryable=False).permanent(Unknown())

    def test_module_helpers_use_shared_classifier(self):
        assert get_classifier() is get_classifier()
        assert is_retryable(ConcurrentModificationError("stale"))
        assert is_permanent(OrderNotFoundError("missing"))
