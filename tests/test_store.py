"""
Tests for EncryptedStore: typed round-trips, tamper detection and absence.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel

from private_prefs import (
    AuthenticationError,
    CryptoError,
    EncodingError,
    EncryptedStore,
    InMemoryBackend,
    KeyCustodian,
    SerializationError,
    StoreLayout,
)
from private_prefs.store import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN


class Profile(BaseModel):
    name: str
    age: int
    tags: List[str] = []
    nickname: Optional[str] = None


@dataclass
class Window:
    width: int
    height: int
    maximized: bool


# =============================================================================
# Round-trips
# =============================================================================


@pytest.mark.parametrize("value", ["", "hello", "ünïcødé ✓ 日本語", "line\nbreak", "x" * 10_000])
def test_text_roundtrip(any_store: EncryptedStore, value: str) -> None:
    any_store.put_text("k", value)
    assert any_store.get_text("k") == value


@pytest.mark.parametrize("value", [0, 1, -1, INT32_MIN, INT32_MAX])
def test_integer_roundtrip(any_store: EncryptedStore, value: int) -> None:
    any_store.put_integer("k", value)
    assert any_store.get_integer("k", 99) == value


@pytest.mark.parametrize("value", [0, -1, INT32_MAX + 1, INT64_MIN, INT64_MAX])
def test_long_roundtrip(any_store: EncryptedStore, value: int) -> None:
    any_store.put_long("k", value)
    assert any_store.get_long("k", 99) == value


@pytest.mark.parametrize(
    "value", [0.0, -1.5, 0.1, 1 / 3, 1e-300, -2.5e300, 5e-324, 1.7976931348623157e308, 42]
)
def test_float_roundtrip(any_store: EncryptedStore, value: float) -> None:
    any_store.put_float("k", value)
    result = any_store.get_float("k", 99.0)

    assert result == value
    assert isinstance(result, float)


def test_negative_zero_keeps_sign(store: EncryptedStore) -> None:
    store.put_float("k", -0.0)
    assert math.copysign(1.0, store.get_float("k", 1.0)) == -1.0


def test_non_finite_floats_roundtrip(store: EncryptedStore) -> None:
    store.put_float("nan", float("nan"))
    store.put_float("inf", float("inf"))
    store.put_float("-inf", float("-inf"))

    assert math.isnan(store.get_float("nan", 0.0))
    assert store.get_float("inf", 0.0) == float("inf")
    assert store.get_float("-inf", 0.0) == float("-inf")
    assert store.get_text("nan") == "nan"
    assert store.get_text("-inf") == "-inf"


@pytest.mark.parametrize("value", [True, False])
def test_boolean_roundtrip(any_store: EncryptedStore, value: bool) -> None:
    any_store.put_boolean("k", value)

    assert any_store.get_boolean("k", not value) is value
    assert any_store.get_text("k") == ("true" if value else "false")


def test_model_roundtrip(any_store: EncryptedStore) -> None:
    profile = Profile(name="Ada", age=36, tags=["admin"], nickname=None)

    any_store.put_object("profile", profile, Profile)

    assert any_store.get_object("profile", Profile) == profile


def test_dataclass_and_container_roundtrip(store: EncryptedStore) -> None:
    store.put_object("window", Window(800, 600, False), Window)
    store.put_object("ids", [3, 1, 2], List[int])
    store.put_object("weights", {"a": 0.5, "b": -1.0}, Dict[str, float])

    assert store.get_object("window", Window) == Window(800, 600, False)
    assert store.get_object("ids", List[int]) == [3, 1, 2]
    assert store.get_object("weights", Dict[str, float]) == {"a": 0.5, "b": -1.0}


def test_object_plaintext_is_json(store: EncryptedStore) -> None:
    store.put_object("profile", Profile(name="Ada", age=36), Profile)

    assert json.loads(store.get_text("profile")) == {
        "name": "Ada",
        "age": 36,
        "tags": [],
        "nickname": None,
    }


def test_object_ignores_unknown_fields(store: EncryptedStore) -> None:
    store.put_text("profile", '{"name": "Ada", "age": 36, "added_later": true}')

    assert store.get_object("profile", Profile) == Profile(name="Ada", age=36)


def test_overwrite_replaces_value_and_nonce(store: EncryptedStore, backend: InMemoryBackend) -> None:
    store.put_text("k", "same")
    first = backend.get("k_sealed")
    store.put_text("k", "same")
    second = backend.get("k_sealed")
    store.put_text("k", "changed")

    assert first != second
    assert store.get_text("k") == "changed"


# =============================================================================
# Persisted layout
# =============================================================================


def test_combined_layout_writes_one_entry(store: EncryptedStore, backend: InMemoryBackend) -> None:
    store.put_text("token", "secret-value")

    assert backend.keys() == ["token_sealed"]
    assert "secret-value" not in backend.get("token_sealed")


def test_split_layout_writes_data_and_iv(
    split_store: EncryptedStore, backend: InMemoryBackend
) -> None:
    split_store.put_text("token", "secret-value")

    assert sorted(backend.keys()) == ["token_data", "token_iv"]


def test_combined_reads_split_pair_and_replaces_it(
    store: EncryptedStore, split_store: EncryptedStore, backend: InMemoryBackend
) -> None:
    split_store.put_text("token", "legacy")

    assert store.get_text("token") == "legacy"

    store.put_text("token", "migrated")

    assert backend.keys() == ["token_sealed"]
    assert store.get_text("token") == "migrated"


def test_split_store_ignores_combined_entries(
    store: EncryptedStore, split_store: EncryptedStore
) -> None:
    store.put_text("token", "combined")

    assert split_store.get_text("token") is None
    assert not split_store.contains("token")


# =============================================================================
# Absence
# =============================================================================


def test_never_written_is_absent(any_store: EncryptedStore) -> None:
    assert any_store.get_text("missing") is None
    assert any_store.get_text("missing", "fallback") == "fallback"
    assert any_store.get_object("missing", Profile) is None
    assert any_store.get_integer("missing", 7) == 7
    assert any_store.get_long("missing", 8) == 8
    assert any_store.get_float("missing", 1.5) == 1.5
    assert any_store.get_boolean("missing", True) is True
    assert any_store.get_integer("missing") == 0
    assert any_store.get_boolean("missing") is False


def test_remove_then_absent(any_store: EncryptedStore, backend: InMemoryBackend) -> None:
    any_store.put_integer("k", 5)
    any_store.remove("k")
    any_store.remove("never-written")

    assert any_store.get_text("k") is None
    assert any_store.get_integer("k", 7) == 7
    assert backend.keys() == []


@pytest.mark.parametrize("surviving", ["k_data", "k_iv"])
def test_partial_pair_is_absent(
    any_store: EncryptedStore,
    split_store: EncryptedStore,
    backend: InMemoryBackend,
    surviving: str,
) -> None:
    split_store.put_text("k", "value")
    backend.remove("k_data" if surviving == "k_iv" else "k_iv")

    assert any_store.get_text("k") is None
    assert any_store.get_integer("k", 3) == 3
    assert not any_store.contains("k")


# =============================================================================
# Tampering
# =============================================================================


def test_every_bit_of_sealed_entry_is_authenticated(
    store: EncryptedStore, backend: InMemoryBackend, flip
) -> None:
    store.put_integer("k", 42)
    original = backend.get("k_sealed")

    for bit in range(30 * 8):  # nonce(12) + "42"(2) + tag(16)
        backend.put("k_sealed", flip(original, bit))
        with pytest.raises(AuthenticationError):
            store.get_text("k")
        with pytest.raises(AuthenticationError):
            store.get_integer("k", 0)

    backend.put("k_sealed", original)
    assert store.get_integer("k", 0) == 42


def _flip_text_bit(text: str, index: int, bit: int) -> str:
    return text[:index] + chr(ord(text[index]) ^ (1 << bit)) + text[index + 1 :]


def test_every_bit_of_stored_text_is_checked(
    any_store: EncryptedStore, backend: InMemoryBackend
) -> None:
    # 29-byte blob and 17-byte ciphertext both end in a padded group
    any_store.put_text("k", "1")

    for entry, original in backend.snapshot().items():
        for index in range(len(original)):
            for bit in range(8):
                backend.put(entry, _flip_text_bit(original, index, bit))
                with pytest.raises(CryptoError):
                    any_store.get_text("k")
        backend.put(entry, original)

    assert any_store.get_text("k") == "1"


@pytest.mark.parametrize("entry,bits", [("k_data", 18 * 8), ("k_iv", 12 * 8)])
def test_every_bit_of_split_entries_is_authenticated(
    split_store: EncryptedStore, backend: InMemoryBackend, flip, entry: str, bits: int
) -> None:
    split_store.put_text("k", "ok")  # ciphertext(2) + tag(16)
    original = backend.get(entry)

    for bit in range(bits):
        backend.put(entry, flip(original, bit))
        with pytest.raises(AuthenticationError):
            split_store.get_text("k")
        with pytest.raises(AuthenticationError):
            split_store.get_boolean("k", True)


def test_tampered_object_fails_authentication(
    store: EncryptedStore, backend: InMemoryBackend, flip
) -> None:
    store.put_object("profile", Profile(name="Ada", age=36), Profile)
    backend.put("profile_sealed", flip(backend.get("profile_sealed"), 200))

    with pytest.raises(AuthenticationError):
        store.get_object("profile", Profile)


def test_value_moved_to_another_key_fails(store: EncryptedStore, backend: InMemoryBackend) -> None:
    store.put_boolean("is_admin", False)
    store.put_boolean("is_guest", True)
    backend.put("is_admin_sealed", backend.get("is_guest_sealed"))

    with pytest.raises(AuthenticationError):
        store.get_boolean("is_admin", False)


def test_value_from_another_namespace_fails(
    custodian: KeyCustodian, backend: InMemoryBackend, store: EncryptedStore
) -> None:
    other_backend = InMemoryBackend()
    other = EncryptedStore("other", other_backend, custodian, "SecurePrefsKey_other")
    other.put_text("k", "from other namespace")
    backend.put("k_sealed", other_backend.get("k_sealed"))

    with pytest.raises(AuthenticationError):
        store.get_text("k")


@pytest.mark.parametrize("garbage", ["%%%not-base64%%%", "", "QUJD"])
def test_malformed_entry_is_encoding_error(
    store: EncryptedStore, backend: InMemoryBackend, garbage: str
) -> None:
    backend.put("k_sealed", garbage)

    with pytest.raises(EncodingError):
        store.get_text("k")
    with pytest.raises(EncodingError):
        store.get_long("k", 0)


# =============================================================================
# Typed getter parse policy
# =============================================================================


@pytest.mark.parametrize("text", ["abc", "1.5", " 1", "1_000", "", "0x10"])
def test_unparseable_integer_returns_default(store: EncryptedStore, text: str) -> None:
    store.put_text("k", text)

    assert store.get_integer("k", -7) == -7
    assert store.get_long("k", -8) == -8


def test_out_of_range_integer_returns_default(store: EncryptedStore) -> None:
    store.put_long("k", INT32_MAX + 1)

    assert store.get_integer("k", 5) == 5
    assert store.get_long("k", 5) == INT32_MAX + 1


@pytest.mark.parametrize("text", ["True", "1", "yes", "", " true"])
def test_boolean_parse_is_strict(store: EncryptedStore, text: str) -> None:
    store.put_text("k", text)
    assert store.get_boolean("k", True) is True


@pytest.mark.parametrize("text", ["abc", "infinity", "1_0", " 2.0", ""])
def test_unparseable_float_returns_default(store: EncryptedStore, text: str) -> None:
    store.put_text("k", text)
    assert store.get_float("k", 2.5) == 2.5


def test_integer_text_is_readable_as_float(store: EncryptedStore) -> None:
    store.put_integer("k", 3)
    assert store.get_float("k", 0.0) == 3.0


def test_parse_fallback_is_logged(store: EncryptedStore, caplog: pytest.LogCaptureFixture) -> None:
    store.put_text("k", "not a number")

    with caplog.at_level(logging.WARNING, logger="private_prefs.store"):
        store.get_integer("k", 1)

    assert "not of the requested type" in caplog.text
    assert "not a number" not in caplog.text


def test_schema_mismatch_is_serialization_error(store: EncryptedStore) -> None:
    store.put_text("profile", '{"unrelated": 1}')
    store.put_text("broken", "not json")

    with pytest.raises(SerializationError):
        store.get_object("profile", Profile)
    with pytest.raises(SerializationError):
        store.get_object("broken", Profile)


def test_put_object_rejects_value_not_matching_schema(store: EncryptedStore) -> None:
    with pytest.raises(SerializationError):
        store.put_object("profile", "not a profile", Profile)
    assert not store.contains("profile")


# =============================================================================
# Input validation
# =============================================================================


@pytest.mark.parametrize(
    "method,value,error",
    [
        ("put_text", 5, TypeError),
        ("put_integer", True, TypeError),
        ("put_integer", 1.0, TypeError),
        ("put_integer", INT32_MAX + 1, ValueError),
        ("put_integer", INT32_MIN - 1, ValueError),
        ("put_long", INT64_MAX + 1, ValueError),
        ("put_long", "1", TypeError),
        ("put_float", "1.0", TypeError),
        ("put_float", False, TypeError),
        ("put_float", 10**400, ValueError),
        ("put_boolean", 1, TypeError),
    ],
)
def test_put_rejects_invalid_values(
    store: EncryptedStore, backend: InMemoryBackend, method: str, value, error
) -> None:
    with pytest.raises(error):
        getattr(store, method)("k", value)
    assert backend.keys() == []


# =============================================================================
# Housekeeping
# =============================================================================


def test_contains_and_keys(any_store: EncryptedStore) -> None:
    any_store.put_text("b", "2")
    any_store.put_text("a", "1")

    assert any_store.keys() == ["a", "b"]
    assert "a" in any_store
    assert not any_store.contains("c")


def test_keys_skip_partial_pairs(store: EncryptedStore, backend: InMemoryBackend) -> None:
    store.put_text("whole", "1")
    backend.put("half_data", "AAAA")

    assert store.keys() == ["whole"]


def test_clear_wipes_unrelated_entries(store: EncryptedStore, backend: InMemoryBackend) -> None:
    store.put_text("k", "v")
    backend.put("unrelated", "plain")

    store.clear()

    assert backend.keys() == []
    assert store.get_text("k") is None


def test_properties(store: EncryptedStore, backend: InMemoryBackend) -> None:
    assert store.namespace == "test"
    assert store.key_alias == "SecurePrefsKey_test"
    assert store.layout is StoreLayout.COMBINED
    assert store.backend is backend
    assert "test" in repr(store)
