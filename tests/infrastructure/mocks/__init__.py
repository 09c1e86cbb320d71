"""Fake decks and deck clients."""
