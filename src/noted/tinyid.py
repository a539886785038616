"""
TinyId: short, user-typeable identifiers for Noted.

A TinyId is 6 random bytes written as 10 characters over a 32-letter
alphabet with the look-alike characters (0/O, 1/I/l) removed, so ids can be
read aloud, typed from a screen, and embedded in filenames or commands.
Lowercase is deliberately left out of the alphabet, so every id has exactly
one spelling and text like "abcdefghjk" is rejected rather than case-folded.

    >>> ids = IdentifierService(random.Random(7))
    >>> note_id = ids.generate()
    >>> ids.decode(ids.encode(note_id)) == note_id
    True
"""

import functools
import logging
import random
from collections.abc import Container
from typing import Any, Protocol

from pydantic_core import core_schema

from noted.errors import ExhaustedIdSpaceError, InvalidIdFormatError

logger = logging.getLogger(__name__)

ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
BITS_PER_CHAR = 5
ID_SIZE = 6
ID_BITS = ID_SIZE * 8
ID_LENGTH = -(-ID_BITS // BITS_PER_CHAR)

_CHAR_MASK = (1 << BITS_PER_CHAR) - 1
_CHAR_VALUES = {ch: i for i, ch in enumerate(ALPHABET)}


@functools.total_ordering
class TinyId:
    """Immutable fixed-size id. Equality and ordering use the raw bytes."""

    __slots__ = ("_data",)

    SIZE = ID_SIZE
    LENGTH = ID_LENGTH

    def __init__(self, data: bytes | bytearray | memoryview):
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidIdFormatError(
                f"TinyId payload must be bytes, got {type(data).__name__}"
            )
        data = bytes(data)
        if len(data) != ID_SIZE:
            raise InvalidIdFormatError(
                f"TinyId payload must be {ID_SIZE} bytes, got {len(data)}"
            )
        object.__setattr__(self, "_data", data)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("TinyId is immutable")

    @classmethod
    def null(cls) -> "TinyId":
        """The all-zero id."""
        return cls(bytes(ID_SIZE))

    @classmethod
    def from_bytes(cls, data: bytes) -> "TinyId":
        return cls(data)

    @classmethod
    def from_int(cls, value: int) -> "TinyId":
        """Build from a big-endian integer in [0, 2**48)."""
        if not 0 <= value < (1 << ID_BITS):
            raise InvalidIdFormatError(f"TinyId integer out of range: {value}")
        return cls(value.to_bytes(ID_SIZE, "big"))

    @classmethod
    def parse(cls, text: str) -> "TinyId":
        return decode(text)

    def to_bytes(self) -> bytes:
        return self._data

    def to_int(self) -> int:
        return int.from_bytes(self._data, "big")

    @property
    def is_null(self) -> bool:
        return self._data == bytes(ID_SIZE)

    def __bytes__(self) -> bytes:
        return self._data

    def __str__(self) -> str:
        return encode(self)

    def __repr__(self) -> str:
        return f"TinyId('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TinyId):
            return NotImplemented
        return self._data == other._data

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TinyId):
            return NotImplemented
        return self._data < other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __reduce__(self):
        return (TinyId, (self._data,))

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        # Fields typed TinyId accept an instance or its text form and always dump as text.
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, schema: Any, handler: Any) -> dict[str, Any]:
        return {"type": "string", "pattern": f"^[{ALPHABET}]{{{ID_LENGTH}}}$"}

    @classmethod
    def _coerce(cls, value: Any) -> "TinyId":
        if isinstance(value, TinyId):
            return value
        return decode(value)


def encode(tiny_id: TinyId) -> str:
    """Encode an id as its fixed-length text form (most significant digit first)."""
    value = tiny_id.to_int()
    chars = []
    for _ in range(ID_LENGTH):
        chars.append(ALPHABET[value & _CHAR_MASK])
        value >>= BITS_PER_CHAR
    return "".join(reversed(chars))


def decode(text: str) -> TinyId:
    """
    Parse user-supplied text into a TinyId.

    Raises InvalidIdFormatError for anything that is not exactly the
    canonical form: wrong type, wrong length, a character outside the
    alphabet, or a value wider than 48 bits.
    """
    if not isinstance(text, str):
        raise InvalidIdFormatError(f"TinyId must be a string, got {type(text).__name__}")
    if len(text) != ID_LENGTH:
        raise InvalidIdFormatError(
            f"TinyId must be {ID_LENGTH} characters, got {len(text)}"
        )

    value = 0
    for position, ch in enumerate(text):
        digit = _CHAR_VALUES.get(ch)
        if digit is None:
            raise InvalidIdFormatError(
                f"Invalid character {ch!r} at position {position} in TinyId"
            )
        value = (value << BITS_PER_CHAR) | digit

    # 10 characters carry 50 bits; the top two must be zero
    if value >> ID_BITS:
        raise InvalidIdFormatError(f"TinyId out of range: {text!r}")

    return TinyId(value.to_bytes(ID_SIZE, "big"))


def compare(a: TinyId, b: TinyId) -> int:
    """Three-way comparison over raw bytes: -1, 0 or 1."""
    left, right = a.to_bytes(), b.to_bytes()
    return (left > right) - (left < right)


class RandomSource(Protocol):
    """Anything that can hand out random bits (random.Random, SystemRandom)."""

    def getrandbits(self, k: int, /) -> int: ...


class IdentifierService:
    """Generates TinyIds from an injected random source."""

    # Retry bound for generate_unique
    MAX_ATTEMPTS = 100

    def __init__(self, rng: RandomSource | None = None):
        self.rng = rng if rng is not None else random.SystemRandom()

    def generate(self) -> TinyId:
        """Draw a fresh random id. Uniqueness is probabilistic."""
        return TinyId.from_int(self.rng.getrandbits(ID_BITS))

    def generate_unique(self, existing: Container[TinyId]) -> TinyId:
        """
        Draw ids until one is not in `existing`.

        Gives up after MAX_ATTEMPTS draws with ExhaustedIdSpaceError; this
        only happens when the collection is pathologically full or the
        random source is broken.
        """
        for _ in range(self.MAX_ATTEMPTS):
            candidate = self.generate()
            if candidate not in existing:
                return candidate

        logger.warning(f"No free TinyId after {self.MAX_ATTEMPTS} attempts")
        raise ExhaustedIdSpaceError(
            f"Could not find an unused id in {self.MAX_ATTEMPTS} attempts"
        )

    @staticmethod
    def encode(tiny_id: TinyId) -> str:
        return encode(tiny_id)

    @staticmethod
    def decode(text: str) -> TinyId:
        return decode(text)

    @staticmethod
    def compare(a: TinyId, b: TinyId) -> int:
        return compare(a, b)

    @staticmethod
    def is_valid(text: str) -> bool:
        """Check whether text decodes to a TinyId."""
        try:
            decode(text)
        except InvalidIdFormatError:
            return False
        return True


_default_service = IdentifierService()


def generate() -> TinyId:
    """Generate an id from the process-wide service."""
    return _default_service.generate()


def generate_unique(existing: Container[TinyId]) -> TinyId:
    """Generate an id not in `existing` from the process-wide service."""
    return _default_service.generate_unique(existing)
