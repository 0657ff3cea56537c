"""Utility helpers shared across the codepair package."""

from .logging import configure_logging, get_log_path

__all__ = ["configure_logging", "get_log_path"]
