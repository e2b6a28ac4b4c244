"""Logging configuration for gitops_bootstrap."""

from gitops_bootstrap.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
