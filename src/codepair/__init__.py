"""Conversation orchestration core for an AI pair-programming assistant."""

__version__ = "0.1.0"

__all__ = ["__version__"]
