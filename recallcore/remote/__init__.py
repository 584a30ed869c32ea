"""Client for the remote per-session flashcard API."""

from .api_client import FlashcardApiClient

__all__ = ["FlashcardApiClient"]
