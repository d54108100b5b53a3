"""Logging configuration for cluster_explorer."""

from cluster_explorer.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
