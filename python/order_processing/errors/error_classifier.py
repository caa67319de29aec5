"""Error classifier for determining retry behavior.

``OrderService`` wraps unexpected exceptions into ``OrderProcessingError``;
this classifier decides whether the wrapped error tells the caller to retry.

Example:
    >>> from order_processing.errors.error_classifier import ErrorClassifier
    >>>
    >>> classifier = ErrorClassifier()
    >>> classifier.retryable(ConcurrentModificationError("stale"))
    True
    >>> classifier.retryable(OrderValidationError("invalid"))
    False
"""

from __future__ import annotations

from . import (
    ConcurrentModificationError,
    ConfigurationError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
    PermanentError,
    RetryableError,
)


class ErrorClassifier:
    """Classifies exceptions for retry behavior.

    Determines whether an exception should be retried based on:
    1. The exception's own `retryable` attribute (if it has one)
    2. Known permanent error classes (never retry)
    3. Known retryable error classes (always retry)
    4. Default behavior (configurable)

    Unknown errors are classified as retryable by default.

    Example:
        >>> classifier = ErrorClassifier()
        >>> classifier.retryable(ConnectionError("gateway down"))
        True
        >>> classifier.retryable(ValueError("invalid input"))
        False
    """

    # Exceptions that are ALWAYS permanent (never retry)
    PERMANENT_ERROR_CLASSES: tuple[type[Exception], ...] = (
        PermanentError,
        OrderValidationError,
        OrderNotFoundError,
        InvalidTransitionError,
        ConfigurationError,
        # Standard Python errors that indicate bad input/code
        ValueError,
        TypeError,
        KeyError,
        AttributeError,
        IndexError,
        AssertionError,
        NotImplementedError,
    )

    # Exceptions that are ALWAYS retryable
    RETRYABLE_ERROR_CLASSES: tuple[type[Exception], ...] = (
        RetryableError,
        ConcurrentModificationError,
        # Standard Python errors that might be transient
        ConnectionError,
        TimeoutError,
        BlockingIOError,
        InterruptedError,
        OSError,
    )

    def __init__(self, *, default_retryable: bool = True) -> None:
        """Initialize the classifier.

        Args:
            default_retryable: Default behavior for unknown exceptions.
        """
        self._default_retryable = default_retryable

    def retryable(self, exception: BaseException) -> bool:
        """Determine if an exception should be retried.

        Args:
            exception: The exception to classify

        Returns:
            True if the error should be retried, False otherwise
        """
        return bool(self.classify(exception)["retryable"])

    def permanent(self, exception: BaseException) -> bool:
        """Determine if an exception is permanent (should not retry).

        Args:
            exception: The exception to classify

        Returns:
            True if the error should NOT be retried
        """
        return not self.retryable(exception)

    def classify(self, exception: BaseException) -> dict[str, bool | str]:
        """Classify an exception and return full details.

        Args:
            exception: The exception to classify

        Returns:
            Dictionary with classification details:
            - error_type: Exception class name
            - retryable: Whether to retry
            - classification: How the classification was determined

        Example:
            >>> ErrorClassifier().classify(KeyError("sku"))
            {'error_type': 'KeyError', 'retryable': False, 'classification': 'permanent_class'}
        """
        error_type = type(exception).__name__

        if hasattr(exception, "retryable"):
            return {
                "error_type": error_type,
                "retryable": bool(exception.retryable),
                "classification": "explicit_attribute",
            }

        # Check permanent errors (order matters - check permanent first)
        if isinstance(exception, self.PERMANENT_ERROR_CLASSES):
            return {
                "error_type": error_type,
                "retryable": False,
                "classification": "permanent_class",
            }

        if isinstance(exception, self.RETRYABLE_ERROR_CLASSES):
            return {
                "error_type": error_type,
                "retryable": True,
                "classification": "retryable_class",
            }

        return {
            "error_type": error_type,
            "retryable": self._default_retryable,
            "classification": "default",
        }


_default_classifier: ErrorClassifier | None = None


def get_classifier() -> ErrorClassifier:
    """Get the default error classifier instance.

    Returns:
        The shared ErrorClassifier instance
    """
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = ErrorClassifier()
    return _default_classifier


def is_retryable(exception: BaseException) -> bool:
    """Convenience function to check if an exception is retryable.

    Args:
        exception: The exception to check

    Returns:
        True if the exception should be retried
    """
    return get_classifier().retryable(exception)


def is_permanent(exception: BaseException) -> bool:
    """Convenience function to check if an exception is permanent.

    Args:
        exception: The exception to check

    Returns:
        True if the exception should NOT be retried
    """
    return get_classifier().permanent(exception)


__all__ = [
    "ErrorClassifier",
    "get_classifier",
    "is_retryable",
    "is_permanent",
]
