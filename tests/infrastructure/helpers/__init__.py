"""Async test helpers."""
