"""
SM-2 scheduling constants and fixed storage identifiers.

This module contains static values only. Runtime configuration lives in
recallcore.config.
"""
from typing import Dict, Tuple

# --- SM-2 parameters ---

DEFAULT_EASE_FACTOR: float = 2.5
MIN_EASE_FACTOR: float = 1.3
MAX_EASE_FACTOR: float = 3.0

# Lowest quality rating that counts as a successful recall.
PASSING_QUALITY: int = 3
VALID_QUALITIES: Tuple[int, ...] = (0, 1, 2, 3, 4, 5)

# Intervals (days) after the first and second consecutive successes.
FIRST_INTERVAL_DAYS: int = 1
SECOND_INTERVAL_DAYS: int = 6

# Cards with an interval strictly greater than this are "mastered".
MASTERED_INTERVAL_THRESHOLD: int = 21

# --- Packs ---

PACK_COLORS: Tuple[str, ...] = (
    "#3B82F6",  # Blue
    "#10B981",  # Green
    "#F59E0B",  # Amber
    "#EF4444",  # Red
    "#8B5CF6",  # Purple
    "#EC4899",  # Pink
    "#06B6D4",  # Cyan
    "#6B7280",  # Gray
)

ALL_CARDS_PACK_NAME = "All Cards"
RECENTLY_ADDED_PACK_NAME = "Recently Added"

# System packs created on first use; they can never be renamed or deleted.
DEFAULT_PACKS: Tuple[Dict[str, str], ...] = (
    {"name": ALL_CARDS_PACK_NAME, "color": PACK_COLORS[0]},
    {"name": RECENTLY_ADDED_PACK_NAME, "color": PACK_COLORS[1]},
)

# --- Review history & streaks ---

MAX_HISTORY_DAYS: int = 90
QUOTA_CLEANUP_HISTORY_DAYS: int = 30
STREAK_MILESTONES: Tuple[int, ...] = (7, 14, 30, 60, 100, 180, 365)
TARGET_RETENTION_RATE: float = 0.85

# --- Persistence ---

SCHEMA_VERSION: int = 1
EXPORT_VERSION: int = 1

STORAGE_KEYS: Dict[str, str] = {
    "cards": "ai-timeline-flashcards",
    "packs": "ai-timeline-flashcard-packs",
    "stats": "ai-timeline-flashcard-stats",
    "sessions": "ai-timeline-flashcard-sessions",
    "history": "ai-timeline-flashcard-history",
    "streak": "ai-timeline-flashcard-streak",
    "schema_version": "ai-timeline-flashcard-schema-version",
}

# Seconds a parsed JSON value stays in the read cache.
READ_CACHE_TTL_SECONDS: float = 5.0
