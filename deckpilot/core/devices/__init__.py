"""Deck control protocol client and status polling."""

from .deck_client import DeckClient
from .status_reconciler import StatusReconciler

__all__ = ["DeckClient", "StatusReconciler"]
