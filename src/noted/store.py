"""
In-memory collection keyed by TinyId, snapshotted through the persistence layer.
"""

import functools
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Generic, TypeVar

from noted.errors import DecodeError, InvalidIdFormatError
from noted.persist import Format, PersistenceService
from noted.tinyid import IdentifierService, TinyId, compare

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Collection(Generic[T]):
    """Entities keyed by TinyId. Listing order is byte order of the ids."""

    def __init__(
        self,
        items: dict[TinyId, T] | None = None,
        ids: IdentifierService | None = None,
    ):
        self._items: dict[TinyId, T] = dict(items or {})
        self.ids = ids or IdentifierService()

    def add(self, item: T) -> TinyId:
        """Store an item under a fresh id. Returns the id."""
        item_id = self.ids.generate_unique(self._items)
        self._items[item_id] = item
        return item_id

    def get(self, item_id: TinyId) -> T | None:
        return self._items.get(item_id)

    def remove(self, item_id: TinyId) -> bool:
        """Remove an item. Returns True if it existed."""
        if item_id not in self._items:
            return False
        del self._items[item_id]
        return True

    def ids_sorted(self) -> list[TinyId]:
        return sorted(self._items, key=functools.cmp_to_key(compare))

    def items(self) -> list[tuple[TinyId, T]]:
        return [(item_id, self._items[item_id]) for item_id in self.ids_sorted()]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[TinyId]:
        return iter(self.ids_sorted())

    def to_snapshot(self) -> dict[str, T]:
        """Plain mapping of encoded id -> item, as written to disk."""
        return {str(item_id): item for item_id, item in self.items()}

    def save(
        self,
        path: str | Path,
        item_type: Any,
        persistence: PersistenceService | None = None,
        fmt: Format | str | None = None,
    ) -> None:
        """
        Snapshot the collection to `path`.

        With fmt=None the format comes from the file extension, or from the
        service default (config.toml) when the extension is not a known one.
        """
        persistence = persistence or PersistenceService.from_config()
        fmt = persistence.format_or_default(path) if fmt is None else fmt
        persistence.save(self.to_snapshot(), path, fmt, type_=dict[str, item_type])
        logger.debug(f"Snapshotted {len(self)} items to {path}")

    @classmethod
    def load(
        cls,
        path: str | Path,
        item_type: Any,
        persistence: PersistenceService | None = None,
        fmt: Format | str | None = None,
        ids: IdentifierService | None = None,
    ) -> "Collection":
        """Restore a collection written by save()."""
        persistence = persistence or PersistenceService.from_config()
        fmt = persistence.format_or_default(path) if fmt is None else fmt
        snapshot = persistence.load(path, dict[str, item_type], fmt)

        items: dict[TinyId, Any] = {}
        for key, item in snapshot.items():
            try:
                items[TinyId.parse(key)] = item
            except InvalidIdFormatError as e:
                raise DecodeError(f"Snapshot {path} has an invalid id key: {e}") from e

        return cls(items, ids=ids)

