"""
Exceptions for Noted.

Everything raised by the id and persistence layers derives from NotedError,
so callers can catch the whole family at a boundary.
"""


class NotedError(Exception):
    """Base exception for noted."""


class InvalidIdFormatError(NotedError, ValueError):
    """Raised when a string is not a well-formed TinyId."""


class ExhaustedIdSpaceError(NotedError, RuntimeError):
    """Raised when no free id was found within the retry bound."""


class PersistError(NotedError):
    """Base exception for snapshot save/load failures."""


class EncodeError(PersistError):
    """Raised when a value cannot be represented in the chosen format."""


class DecodeError(PersistError):
    """Raised when bytes are not a valid document for the chosen format and type."""


class PersistIOError(PersistError):
    """Raised when the filesystem read, write or rename fails."""


class UnknownFormatExtensionError(PersistError, ValueError):
    """Raised when a file extension does not map to a known format."""
