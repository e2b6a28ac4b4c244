"""Progress reporting through a context-scoped, non-blocking channel."""

from gitops_bootstrap.status.bus import (
    DEFAULT_CHANNEL_SIZE,
    DEFAULT_FLUSH_TIMEOUT,
    StatusChannel,
    StatusEvent,
    StatusHandler,
    StatusLevel,
    current_channel,
    error,
    has_channel,
    info,
    progress,
    send,
    start_handler,
    success,
    warning,
    with_channel,
)
from gitops_bootstrap.status.handler import log_status_event

__all__ = [
    "DEFAULT_CHANNEL_SIZE",
    "DEFAULT_FLUSH_TIMEOUT",
    "StatusChannel",
    "StatusEvent",
    "StatusHandler",
    "StatusLevel",
    "current_channel",
    "error",
    "has_channel",
    "info",
    "log_status_event",
    "progress",
    "send",
    "start_handler",
    "success",
    "warning",
    "with_channel",
]
