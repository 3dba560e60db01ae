"""Concurrent specialist dispatch with per-call isolation."""

from consilium.dispatch.dispatcher import Dispatcher, consult_isolated

__all__ = ["Dispatcher", "consult_isolated"]
