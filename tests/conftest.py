"""
Pytest configuration and fixtures for encrypted preference tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from private_prefs import (
    EncryptedStore,
    InMemoryBackend,
    InMemoryKeyCustody,
    KeyCustodian,
    PreferencesConfig,
    StoreLayout,
    StoreRegistry,
)
from private_prefs.crypto import decode_text, encode_text


def flip_bit(encoded: str, bit: int) -> str:
    """Flip one bit of the bytes behind a base64 string."""
    data = bytearray(decode_text(encoded))
    data[bit // 8] ^= 1 << (bit % 8)
    return encode_text(bytes(data))


@pytest.fixture
def custody() -> InMemoryKeyCustody:
    """Create an in-memory key custody facility for testing."""
    return InMemoryKeyCustody()


@pytest.fixture
def custodian(custody: InMemoryKeyCustody) -> KeyCustodian:
    """Create a KeyCustodian over in-memory custody."""
    return KeyCustodian(custody)


@pytest.fixture
def backend() -> InMemoryBackend:
    """Create an in-memory backend for testing."""
    return InMemoryBackend()


@pytest.fixture
def store(backend: InMemoryBackend, custodian: KeyCustodian) -> EncryptedStore:
    """Create a combined-layout store for testing."""
    return EncryptedStore("test", backend, custodian, "SecurePrefsKey_test")


@pytest.fixture
def split_store(backend: InMemoryBackend, custodian: KeyCustodian) -> EncryptedStore:
    """Create a split-layout store sharing the backend and key of `store`."""
    return EncryptedStore(
        "test", backend, custodian, "SecurePrefsKey_test", layout=StoreLayout.SPLIT
    )


@pytest.fixture(params=[StoreLayout.COMBINED, StoreLayout.SPLIT], ids=str)
def any_store(
    request: pytest.FixtureRequest,
    backend: InMemoryBackend,
    custodian: KeyCustodian,
) -> EncryptedStore:
    """Store in each persisted layout."""
    return EncryptedStore(
        "test", backend, custodian, "SecurePrefsKey_test", layout=request.param
    )


@pytest.fixture
def registry() -> StoreRegistry:
    """Create an isolated in-memory registry."""
    return StoreRegistry.in_memory()


@pytest.fixture
def file_config(tmp_path: Path) -> PreferencesConfig:
    """Configuration pointing at a temporary directory."""
    return PreferencesConfig(prefs_dir=tmp_path / "prefs", keys_dir=tmp_path / "keys")


@pytest.fixture
def flip():
    """Bit-flipping helper for tamper tests."""
    return flip_bit
