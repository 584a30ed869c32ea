"""Recallcore - SM-2 spaced repetition for timeline flashcards."""

from .models import Card, Pack, Quality, ReviewSession, SourceType, StreakHistory
from .constants import DEFAULT_EASE_FACTOR, MASTERED_INTERVAL_THRESHOLD
from .scheduler import SM2_Scheduler, compute_next_review
from .stores import LocalFlashcardStore, RemoteFlashcardStore, create_store

__all__ = [
    "Card",
    "Pack",
    "Quality",
    "ReviewSession",
    "SourceType",
    "StreakHistory",
    "DEFAULT_EASE_FACTOR",
    "MASTERED_INTERVAL_THRESHOLD",
    "SM2_Scheduler",
    "compute_next_review",
    "LocalFlashcardStore",
    "RemoteFlashcardStore",
    "create_store",
]
