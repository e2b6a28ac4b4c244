"""Exceptions shared across integrations and services."""

from __future__ import annotations

import threading


class OperationCancelledError(Exception):
    """The caller cancelled a long-running operation.

    Raised at the next cooperative checkpoint after the cancel event is set.
    Side effects already performed are left in place.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} cancelled")


def raise_if_cancelled(cancel: threading.Event | None, operation: str) -> None:
    """Raise OperationCancelledError if ``cancel`` is set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(operation)


class ConfigurationError(Exception):
    """Configuration could not be loaded or failed validation."""
