"""Presentation-layer handler that turns status events into log records."""

from __future__ import annotations

import structlog

from gitops_bootstrap.status.bus import StatusEvent, StatusLevel

logger = structlog.get_logger("gitops_bootstrap.status")

_EVENT_NAMES = {
    StatusLevel.INFO: "status",
    StatusLevel.PROGRESS: "progress",
    StatusLevel.SUCCESS: "success",
    StatusLevel.WARNING: "warning",
    StatusLevel.ERROR: "error",
}


def log_status_event(event: StatusEvent) -> None:
    """Log ``event`` through structlog at a level matching its severity."""
    fields: dict[str, object] = {"message": event.message}
    if event.resource:
        fields["resource"] = event.resource
    if event.action:
        fields["action"] = event.action
    for key, value in event.metadata.items():
        fields.setdefault(key, value)

    name = _EVENT_NAMES.get(event.level, "status")
    if event.level is StatusLevel.WARNING:
        logger.warning(name, **fields)
    elif event.level is StatusLevel.ERROR:
        logger.error(name, **fields)
    else:
        logger.info(name, **fields)
