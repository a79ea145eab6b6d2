"""Durable pending change queue."""

from histofy.store.pending import PendingChangeStore

__all__ = ["PendingChangeStore"]
