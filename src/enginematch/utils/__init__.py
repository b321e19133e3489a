"""Shared utilities for enginematch."""

from enginematch.utils.logging import setup_logging

__all__ = ["setup_logging"]
