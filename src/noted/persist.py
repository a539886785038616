"""
Persistence module for Noted.

Snapshots any pydantic-serializable value to a single file and restores it.
The wire format is picked explicitly (or from the file extension, on request)
from a closed set:

- msgpack: compact binary, the default
- cbor: compact binary, opened by CBOR's self-describe tag
- json: human-readable text, always ending in a newline

Saves encode fully in memory first, then write a temporary file next to the
target and rename it into place. A reader sees the old snapshot or the new
one, never a partial file.
"""

import io
import json
import logging
import math
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

import cbor2
import msgpack
from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticUserError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from noted.errors import (
    DecodeError,
    EncodeError,
    PersistIOError,
    UnknownFormatExtensionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Format(str, Enum):
    """Wire formats a snapshot can be written in."""

    MSGPACK = "msgpack"
    CBOR = "cbor"
    JSON = "json"


DEFAULT_FORMAT = Format.MSGPACK

# Lower-cased file suffix -> format, used by the *_auto helpers
EXTENSION_FORMATS = {
    ".json": Format.JSON,
    ".cbor": Format.CBOR,
    ".msgpack": Format.MSGPACK,
    ".mpk": Format.MSGPACK,
    ".fdb": Format.MSGPACK,
}

# Tag 55799 (RFC 8949 self-described CBOR). No msgpack or UTF-8 document
# can start with these bytes.
CBOR_MAGIC = b"\xd9\xd9\xf7"


@dataclass(frozen=True)
class Document:
    """Encoded bytes tagged with the format that produced them."""

    format: Format
    payload: bytes


def format_for_path(path: str | Path) -> Format:
    """Map a file extension to its format."""
    suffix = Path(path).suffix.lower()
    try:
        return EXTENSION_FORMATS[suffix]
    except KeyError:
        known = ", ".join(sorted(EXTENSION_FORMATS))
        raise UnknownFormatExtensionError(
            f"Unknown snapshot extension {suffix!r} for {path} (known: {known})"
        ) from None


@lru_cache(maxsize=128)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def _has_non_finite(obj: Any) -> bool:
    if isinstance(obj, float):
        return not math.isfinite(obj)
    if isinstance(obj, dict):
        return any(_has_non_finite(k) or _has_non_finite(v) for k, v in obj.items())
    if isinstance(obj, (list, tuple, set, frozenset)):
        return any(_has_non_finite(item) for item in obj)
    return False


def _encode_json(adapter: TypeAdapter, value: Any) -> bytes:
    if _has_non_finite(adapter.dump_python(value, warnings="error")):
        raise ValueError("NaN and infinity cannot be written as JSON")
    data = adapter.dump_python(value, mode="json", warnings="error")
    text = json.dumps(data, ensure_ascii=False, allow_nan=False)
    # Trailing newline keeps every JSON document at least two bytes long, so
    # it can never be mistaken for a one-byte msgpack integer.
    return (text + "\n").encode("utf-8")


def _encode_msgpack(adapter: TypeAdapter, value: Any) -> bytes:
    data = adapter.dump_python(value, warnings="error")
    return msgpack.packb(data, default=to_jsonable_python, use_bin_type=True)


def _cbor_default(encoder: cbor2.CBOREncoder, value: Any) -> None:
    encoder.encode(to_jsonable_python(value))


def _encode_cbor(adapter: TypeAdapter, value: Any) -> bytes:
    data = adapter.dump_python(value, warnings="error")
    # Naive datetimes are written as UTC
    return CBOR_MAGIC + cbor2.dumps(data, default=_cbor_default, timezone=timezone.utc)


def _decode_cbor(payload: bytes) -> Any:
    if not payload.startswith(CBOR_MAGIC):
        raise ValueError("CBOR snapshot must start with the self-describe tag")
    with io.BytesIO(payload[len(CBOR_MAGIC):]) as fp:
        data = cbor2.CBORDecoder(fp).decode()
        if fp.read(1):
            raise ValueError("Extra data after CBOR document")
    return data


def _decode_payload(document: Document) -> Any:
    if document.format is Format.JSON:
        # Every JSON snapshot ends with a newline. Without this check a
        # msgpack integer in 48..57 would read as a single digit.
        if not document.payload.endswith(b"\n"):
            raise ValueError("JSON snapshot must end with a newline")
        return json.loads(document.payload)
    if document.format is Format.CBOR:
        return _decode_cbor(document.payload)
    return msgpack.unpackb(document.payload, raw=False, strict_map_key=False)


class PersistenceService:
    """Saves and loads typed values through a selectable wire format."""

    def __init__(self, default_format: Format = DEFAULT_FORMAT):
        self.default_format = Format(default_format)

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "PersistenceService":
        """Service whose default format is `[persist] format` from config.toml."""
        from noted.config import get_default_format

        return cls(get_default_format(config))

    def _format(self, fmt: Format | str | None) -> Format:
        return self.default_format if fmt is None else Format(fmt)

    def format_or_default(self, path: str | Path) -> Format:
        """Format implied by the extension of `path`, else this service's default."""
        return EXTENSION_FORMATS.get(Path(path).suffix.lower(), self.default_format)

    def encode(self, value: Any, fmt: Format | str | None = None, type_: Any = None) -> Document:
        """
        Encode a value in memory.

        Args:
            value: The value to encode
            fmt: Wire format (service default if None)
            type_: Static type used for serialization, defaults to type(value)

        Raises:
            EncodeError: The value cannot be represented in the format
        """
        fmt = self._format(fmt)
        try:
            adapter = _adapter(type_ if type_ is not None else type(value))
            if fmt is Format.JSON:
                payload = _encode_json(adapter, value)
            elif fmt is Format.CBOR:
                payload = _encode_cbor(adapter, value)
            else:
                payload = _encode_msgpack(adapter, value)
        except (
            PydanticUserError,
            PydanticSerializationError,
            cbor2.CBOREncodeError,
            ValueError,
            TypeError,
            OverflowError,
        ) as e:
            raise EncodeError(
                f"Cannot encode {type(value).__name__} as {fmt.value}: {e}"
            ) from e
        return Document(fmt, payload)

    def decode(self, document: Document, type_: type[T] | Any) -> T:
        """
        Decode a document into `type_`.

        All-or-nothing: bytes that are truncated, written in another format,
        or do not validate against `type_` raise DecodeError.
        """
        try:
            adapter = _adapter(type_)
        except PydanticUserError as e:
            raise DecodeError(f"Cannot decode into {type_!r}: {e}") from e

        try:
            data = _decode_payload(document)
        except (
            cbor2.CBORDecodeError,
            msgpack.UnpackException,
            ValueError,
            TypeError,
            RecursionError,
        ) as e:
            raise DecodeError(f"Invalid {document.format.value} document: {e}") from e

        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise DecodeError(
                f"{document.format.value} document does not match {type_!r}: {e}"
            ) from e

    def save(
        self,
        value: Any,
        path: str | Path,
        fmt: Format | str | None = None,
        type_: Any = None,
    ) -> None:
        """Atomically write `value` to `path`, replacing any previous snapshot."""
        path = Path(path)
        document = self.encode(value, fmt, type_)
        _write_atomic(path, document.payload, overwrite=True)
        logger.debug(f"Saved {len(document.payload)} bytes to {path} ({document.format.value})")

    def save_new(
        self,
        value: Any,
        path: str | Path,
        fmt: Format | str | None = None,
        type_: Any = None,
    ) -> None:
        """Like save, but fail with PersistIOError if `path` already exists."""
        path = Path(path)
        document = self.encode(value, fmt, type_)
        _write_atomic(path, document.payload, overwrite=False)
        logger.debug(f"Created {path} ({document.format.value})")

    def load(self, path: str | Path, type_: type[T] | Any, fmt: Format | str | None = None) -> T:
        """Read the whole file at `path` and decode it into `type_`."""
        path = Path(path)
        fmt = self._format(fmt)
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise PersistIOError(f"Cannot read {path}: {e}") from e

        value = self.decode(Document(fmt, payload), type_)
        logger.debug(f"Loaded {len(payload)} bytes from {path} ({fmt.value})")
        return value

    def save_auto(self, value: Any, path: str | Path, type_: Any = None) -> None:
        """Save with the format implied by the file extension."""
        self.save(value, path, format_for_path(path), type_)

    def load_auto(self, path: str | Path, type_: type[T] | Any) -> T:
        """Load with the format implied by the file extension."""
        return self.load(path, type_, format_for_path(path))

    def convert(
        self,
        path: str | Path,
        type_: Any,
        src: Format | str,
        dst: Format | str,
    ) -> Path:
        """
        Rewrite a snapshot from one format to another in place.

        A copy of the original is kept at `<path>.bak` first, since there is
        no way to tell whether the file really was written in `src`.

        Returns:
            Path of the backup copy
        """
        path = Path(path)
        backup = path.with_name(path.name + ".bak")
        try:
            shutil.copy2(path, backup)
        except OSError as e:
            raise PersistIOError(f"Cannot back up {path}: {e}") from e

        value = self.load(path, type_, src)
        self.save(value, path, dst, type_)
        logger.info(f"Converted {path} from {Format(src).value} to {Format(dst).value}")
        return backup


def _write_atomic(path: Path, payload: bytes, overwrite: bool) -> None:
    """
    Write payload to a temp file in path's directory, then move it into place.

    With overwrite=False the temp file is hard-linked instead of renamed, so
    an existing file is never replaced.
    """
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as e:
        raise PersistIOError(f"Cannot create temporary file for {path}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())  # Ensure durability before the rename
        if overwrite:
            if path.exists():
                shutil.copymode(path, tmp_path)
            os.replace(tmp_path, path)
        else:
            os.link(tmp_path, path)
    except OSError as e:
        logger.warning(f"Failed to write {path}: {e}")
        raise PersistIOError(f"Cannot write {path}: {e}") from e
    finally:
        # Gone already after a successful replace
        tmp_path.unlink(missing_ok=True)


def _configured_service() -> PersistenceService:
    # Read per call so edits to config.toml apply without a restart
    return PersistenceService.from_config()


def save(value: Any, path: str | Path, fmt: Format | str | None = None, type_: Any = None) -> None:
    """Save with the configured default format unless `fmt` is given."""
    _configured_service().save(value, path, fmt, type_)


def load(path: str | Path, type_: type[T] | Any, fmt: Format | str | None = None) -> T:
    """Load with the configured default format unless `fmt` is given."""
    return _configured_service().load(path, type_, fmt)


def save_auto(value: Any, path: str | Path, type_: Any = None) -> None:
    _configured_service().save_auto(value, path, type_)


def load_auto(path: str | Path, type_: type[T] | Any) -> T:
    return _configured_service().load_auto(path, type_)
