"""Utility helpers."""

from consilium.utils.logging import setup_logging

__all__ = ["setup_logging"]
