"""
Schema migrations for stored card and pack collections.

Each migration upgrades a payload by exactly one version and is registered
under the version it upgrades from. migrate_payload() applies the chain in
sequence, so a new schema version only needs one new registered step.
"""

import logging
from typing import Any, Callable, Dict, List

from ..constants import SCHEMA_VERSION
from ..exceptions import MigrationError

logger = logging.getLogger(__name__)

Migration = Callable[[Any, str], Any]

_MIGRATIONS: Dict[int, Migration] = {}


def register_migration(from_version: int) -> Callable[[Migration], Migration]:
    """Decorator registering a one-step upgrade from `from_version`."""

    def decorator(fn: Migration) -> Migration:
        if from_version in _MIGRATIONS:
            raise ValueError(
                f"A migration from version {from_version} is already registered"
            )
        _MIGRATIONS[from_version] = fn
        return fn

    return decorator


def registered_versions() -> List[int]:
    return sorted(_MIGRATIONS)


@register_migration(0)
def _wrap_bare_list(payload: Any, collection: str) -> Any:
    """Version 0 stored a bare list; version 1 wraps it with a version tag."""
    if isinstance(payload, list):
        return {collection: payload, "schemaVersion": 1}
    return payload


def migrate_payload(
    payload: Any,
    collection: str,
    from_version: int,
    to_version: int = SCHEMA_VERSION,
) -> Any:
    """
    Bring a stored payload from `from_version` up to `to_version`.

    Payloads newer than `to_version` are returned unchanged; readers of the
    current shape ignore fields they do not know.

    Raises:
        MigrationError: If a step in the chain is missing or fails.
    """
    if from_version > to_version:
        logger.warning(
            f"Stored {collection} schema version {from_version} is newer than "
            f"supported version {to_version}; reading as version {to_version}."
        )
        return payload

    version = from_version
    while version < to_version:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise MigrationError(
                f"No migration registered from version {version} for {collection}"
            )
        try:
            payload = step(payload, collection)
        except (TypeError, ValueError, KeyError) as e:
            raise MigrationError(
                f"Migration of {collection} from version {version} failed: {e}",
                original_exception=e,
            ) from e
        logger.info(f"Migrated {collection} from version {version} to {version + 1}")
        version += 1
    return payload


def extract_items(payload: Any, collection: str) -> List[Any]:
    """
    Return the raw item list of a migrated payload.

    A bare list is accepted as-is even when the version tag claims a newer
    shape.

    Raises:
        MigrationError: If the payload holds no recognisable item list.
    """
    if isinstance(payload, dict) and isinstance(payload.get(collection), list):
        return payload[collection]
    if isinstance(payload, list):
        logger.warning(f"Stored {collection} is an untagged list; reading it as-is.")
        return payload
    raise MigrationError(
        f"Stored {collection} has an unrecognised shape: {type(payload).__name__}"
    )
