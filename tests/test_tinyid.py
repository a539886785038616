"""
Tests for TinyId encoding, parsing and generation.
"""
import functools
import random
import string

import pytest
from pydantic import BaseModel, ValidationError

from noted import tinyid
from noted.errors import ExhaustedIdSpaceError, InvalidIdFormatError
from noted.tinyid import ALPHABET, ID_LENGTH, IdentifierService, TinyId


class StuckRandom:
    """Random source that always returns the same bits."""

    def __init__(self, value: int):
        self.value = value

    def getrandbits(self, k: int) -> int:
        return self.value


class TinySpaceRandom:
    """Random source limited to a handful of distinct ids."""

    def __init__(self, size: int, seed: int = 0):
        self.size = size
        self.rng = random.Random(seed)

    def getrandbits(self, k: int) -> int:
        return self.rng.randrange(self.size)


def test_alphabet_has_no_ambiguous_characters():
    assert len(ALPHABET) == 32
    assert len(set(ALPHABET)) == 32
    for ch in "0O1Il":
        assert ch not in ALPHABET


def test_null_id_encodes_to_first_character():
    null = TinyId.null()
    assert null.is_null
    assert tinyid.encode(null) == ALPHABET[0] * ID_LENGTH == "2222222222"
    assert tinyid.decode("2222222222") == null
    assert tinyid.decode("2222222222").to_bytes() == bytes(6)


def test_max_id_encoding():
    top = TinyId(b"\xff" * 6)
    assert str(top) == "9ZZZZZZZZZ"
    assert tinyid.decode("9ZZZZZZZZZ") == top


def test_round_trip(ids):
    for _ in range(1000):
        value = ids.generate()
        text = ids.encode(value)
        assert len(text) == ID_LENGTH
        assert set(text) <= set(ALPHABET)
        assert ids.decode(text) == value


def test_round_trip_int_and_bytes(ids):
    value = ids.generate()
    assert TinyId.from_int(value.to_int()) == value
    assert TinyId.from_bytes(bytes(value)) == value


def test_seeded_source_is_reproducible():
    first = IdentifierService(random.Random(42))
    second = IdentifierService(random.Random(42))
    assert [first.generate() for _ in range(5)] == [second.generate() for _ in range(5)]


@pytest.mark.parametrize("text", [
    "",
    "222222222",
    "22222222222",
    "222222222O",
    "222222222I",
    "22222222 2",
    "abcdefghjk",
    "2222-22222",
    "２２２２２２２２２２",
    "AZZZZZZZZZ",  # wider than 48 bits
    "ZZZZZZZZZZ",
    "2" * 10_000,
])
def test_decode_rejects_malformed_text(text):
    with pytest.raises(InvalidIdFormatError):
        tinyid.decode(text)
    assert not IdentifierService.is_valid(text)


@pytest.mark.parametrize("value", [None, 12345, b"2222222222", ["2222222222"]])
def test_decode_rejects_non_strings(value):
    with pytest.raises(InvalidIdFormatError):
        tinyid.decode(value)


def test_decode_never_raises_anything_else():
    rng = random.Random(99)
    pool = string.printable + ALPHABET * 4 + "éß\u0000￿"
    for _ in range(5000):
        text = "".join(rng.choice(pool) for _ in range(rng.choice([9, 10, 10, 11])))
        try:
            parsed = tinyid.decode(text)
        except InvalidIdFormatError:
            continue
        assert str(parsed) == text


def test_invalid_id_format_is_value_error():
    with pytest.raises(ValueError):
        tinyid.decode("nope")


def test_payload_must_be_six_bytes():
    with pytest.raises(InvalidIdFormatError):
        TinyId(b"\x00" * 5)
    with pytest.raises(InvalidIdFormatError):
        TinyId("2222222222")
    with pytest.raises(InvalidIdFormatError):
        TinyId.from_int(1 << 48)
    with pytest.raises(InvalidIdFormatError):
        TinyId.from_int(-1)


def test_equality_and_ordering_use_bytes():
    a = TinyId(b"\x00\x00\x00\x00\x00\x01")
    b = TinyId(b"\x00\x00\x00\x00\x01\x00")
    assert a == TinyId(bytearray(b"\x00\x00\x00\x00\x00\x01"))
    assert a != b
    assert a < b
    assert tinyid.compare(a, b) == -1
    assert tinyid.compare(b, a) == 1
    assert tinyid.compare(a, a) == 0
    assert len({a, b, TinyId(bytes(a))}) == 2


def test_sorting_matches_compare(ids):
    values = [ids.generate() for _ in range(200)]
    by_compare = sorted(values, key=functools.cmp_to_key(tinyid.compare))
    by_bytes = sorted(values, key=bytes)
    assert by_compare == by_bytes == sorted(values)


def test_tiny_id_is_immutable():
    value = TinyId.null()
    with pytest.raises(AttributeError):
        value._data = b"\x01" * 6


def test_no_duplicates_in_100k(ids):
    generated = {ids.generate() for _ in range(100_000)}
    assert len(generated) == 100_000


def test_generate_unique_avoids_existing(ids):
    existing = {ids.generate() for _ in range(1000)}
    for _ in range(1000):
        assert ids.generate_unique(existing) not in existing


def test_generate_unique_finds_last_free_slot():
    service = IdentifierService(TinySpaceRandom(4))
    existing = {TinyId.from_int(n) for n in range(3)}
    assert service.generate_unique(existing) == TinyId.from_int(3)


def test_generate_unique_exhausts_tiny_space():
    service = IdentifierService(TinySpaceRandom(4))
    existing = {TinyId.from_int(n) for n in range(4)}
    with pytest.raises(ExhaustedIdSpaceError):
        service.generate_unique(existing)


def test_generate_unique_stuck_source():
    service = IdentifierService(StuckRandom(0))
    with pytest.raises(ExhaustedIdSpaceError):
        service.generate_unique({TinyId.null()})


def test_default_service_generates_valid_ids():
    value = tinyid.generate()
    assert IdentifierService.is_valid(str(value))
    assert tinyid.generate_unique({value}) != value


class Record(BaseModel):
    id: TinyId
    title: str


def test_pydantic_field_accepts_text_and_instances():
    null = TinyId.null()
    assert Record(id="2222222222", title="x").id == null
    assert Record(id=null, title="x").id == null


def test_pydantic_field_rejects_bad_text():
    with pytest.raises(ValidationError):
        Record(id="2222O22222", title="x")


def test_pydantic_field_dumps_as_text():
    record = Record(id=TinyId.null(), title="x")
    assert record.model_dump() == {"id": "2222222222", "title": "x"}
    assert Record.model_validate_json(record.model_dump_json()) == record


def test_repr():
    assert repr(TinyId.null()) == "TinyId('2222222222')"


def test_json_schema_describes_text_form():
    schema = Record.model_json_schema()["properties"]["id"]
    assert schema["type"] == "string"
    assert schema["pattern"] == "^[23456789ABCDEFGHJKLMNPQRSTUVWXYZ]{10}$"
