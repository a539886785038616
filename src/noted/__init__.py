"""
Noted: the storage core of a local note-taking tool.

Provides:
- TinyId: short, unambiguous, user-typeable note ids
- Persistence: atomic snapshots in msgpack, CBOR or JSON
- Collection: an id-keyed map that snapshots itself
- Health: a status report for config and snapshot
"""

from noted.errors import (
    DecodeError,
    EncodeError,
    ExhaustedIdSpaceError,
    InvalidIdFormatError,
    NotedError,
    PersistError,
    PersistIOError,
    UnknownFormatExtensionError,
)
from noted.health import get_health_report
from noted.persist import DEFAULT_FORMAT, Document, Format, PersistenceService
from noted.store import Collection
from noted.tinyid import IdentifierService, TinyId

__version__ = "0.1.0"

__all__ = [
    "Collection",
    "DEFAULT_FORMAT",
    "DecodeError",
    "Document",
    "EncodeError",
    "ExhaustedIdSpaceError",
    "Format",
    "IdentifierService",
    "InvalidIdFormatError",
    "NotedError",
    "PersistError",
    "PersistIOError",
    "PersistenceService",
    "TinyId",
    "UnknownFormatExtensionError",
    "get_health_report",
]
