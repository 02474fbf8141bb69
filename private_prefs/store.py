"""
Encrypted preference store.

This module provides:
- EncryptedStore: Typed put/get over an AEAD codec and a backing store
- StoreLayout: How a sealed value is laid out in the backing store

Each logical key K is persisted as either:
- COMBINED: ``K_sealed`` = base64(nonce || ciphertext || tag)
- SPLIT: ``K_data`` = base64(ciphertext || tag) and ``K_iv`` = base64(nonce)

The logical key is bound into every ciphertext as associated data, so a
sealed value moved under another key no longer authenticates.
"""

from __future__ import annotations

import logging
import math
import re
from enum import Enum
from functools import lru_cache
from typing import Any, List, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from .backends import PreferenceBackend
from .crypto import AeadCodec, SealedValue
from .custody import KeyCustodian
from .errors import ConfigError, EncodingError, SerializationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEALED_SUFFIX = "_sealed"
DATA_SUFFIX = "_data"
IV_SUFFIX = "_iv"

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")
_FLOAT_SPECIALS = {"nan", "inf", "-inf", "+inf"}


class StoreLayout(Enum):
    """Persisted layout of sealed values."""

    COMBINED = "combined"  # One entry per key, written atomically
    SPLIT = "split"  # Separate ciphertext and nonce entries

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_str(cls, s: str) -> StoreLayout:
        """Parse from string."""
        try:
            return cls(s.strip().lower())
        except ValueError:
            raise ConfigError(f"Invalid store layout: {s}")


class EncryptedStore:
    """
    Encrypted key-value preferences for one namespace.

    Values are encoded as UTF-8 text, sealed with AES-256-GCM under the
    namespace key and written to the backing store. A missing key reads as
    absent at every layer; a value that fails authentication always raises.
    """

    def __init__(
        self,
        namespace: str,
        backend: PreferenceBackend,
        custodian: KeyCustodian,
        key_alias: str,
        layout: StoreLayout = StoreLayout.COMBINED,
    ) -> None:
        """
        Initialize EncryptedStore.

        Args:
            namespace: Namespace this store belongs to
            backend: Backing store scoped to the namespace
            custodian: KeyCustodian resolving key_alias
            key_alias: Alias of the namespace key
            layout: Persisted layout for new writes
        """
        self._namespace = namespace
        self._backend = backend
        self._custodian = custodian
        self._key_alias = key_alias
        self._layout = layout

    @property
    def namespace(self) -> str:
        """Get the namespace."""
        return self._namespace

    @property
    def key_alias(self) -> str:
        """Get the key alias."""
        return self._key_alias

    @property
    def layout(self) -> StoreLayout:
        """Get the persisted layout."""
        return self._layout

    @property
    def backend(self) -> PreferenceBackend:
        """Get the backing store."""
        return self._backend

    def __repr__(self) -> str:
        return f"EncryptedStore(namespace={self._namespace!r}, layout={self._layout})"

    # =========================================================================
    # Text
    # =========================================================================

    def put_text(self, key: str, value: str) -> None:
        """
        Encrypt and store a string value, replacing any existing one.

        Args:
            key: Logical key
            value: Text to store
        """
        if not isinstance(value, str):
            raise TypeError(f"Expected str, got {type(value).__name__}")

        handle = self._custodian.get_or_create_key(self._key_alias)
        sealed = AeadCodec.encrypt(handle, value.encode("utf-8"), _aad(key))

        if self._layout is StoreLayout.COMBINED:
            self._backend.commit(
                {key + SEALED_SUFFIX: sealed.to_text()},
                (key + DATA_SUFFIX, key + IV_SUFFIX),
            )
        else:
            encoded_ciphertext, encoded_nonce = sealed.to_pair()
            self._backend.commit(
                {key + DATA_SUFFIX: encoded_ciphertext, key + IV_SUFFIX: encoded_nonce},
                (key + SEALED_SUFFIX,),
            )

    def get_text(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Retrieve and decrypt a string value.

        Args:
            key: Logical key
            default: Returned when nothing (or only half a pair) is stored

        Returns:
            Decrypted text, or default

        Raises:
            AuthenticationError: If the stored value was tampered with
            EncodingError: If the stored text is malformed
        """
        sealed = self._read_sealed(key)
        if sealed is None:
            return default

        handle = self._custodian.get_or_create_key(self._key_alias)
        plaintext = AeadCodec.decrypt(handle, sealed, _aad(key))
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Stored value for {key!r} is not UTF-8: {e}") from None

    # =========================================================================
    # Primitives
    # =========================================================================

    def put_integer(self, key: str, value: int) -> None:
        """Store a 32-bit signed integer."""
        _check_integer(value, INT32_MIN, INT32_MAX, "integer")
        self.put_text(key, str(value))

    def put_long(self, key: str, value: int) -> None:
        """Store a 64-bit signed integer."""
        _check_integer(value, INT64_MIN, INT64_MAX, "long")
        self.put_text(key, str(value))

    def put_float(self, key: str, value: float) -> None:
        """
        Store a floating point value.

        ``repr`` gives the shortest text that round-trips exactly. NaN and the
        infinities are stored as ``nan``, ``inf`` and ``-inf``.
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Expected float, got {type(value).__name__}")
        try:
            value = float(value)
        except OverflowError:
            raise ValueError(f"Value {key!r} is too large for a float") from None
        self.put_text(key, repr(value))

    def put_boolean(self, key: str, value: bool) -> None:
        """Store a boolean as ``true`` or ``false``."""
        if not isinstance(value, bool):
            raise TypeError(f"Expected bool, got {type(value).__name__}")
        self.put_text(key, "true" if value else "false")

    def get_integer(self, key: str, default: int = 0) -> int:
        """Retrieve a 32-bit signed integer, or default if absent or unparseable."""
        return self._get_parsed(
            key, default, lambda text: _parse_integer(text, INT32_MIN, INT32_MAX)
        )

    def get_long(self, key: str, default: int = 0) -> int:
        """Retrieve a 64-bit signed integer, or default if absent or unparseable."""
        return self._get_parsed(
            key, default, lambda text: _parse_integer(text, INT64_MIN, INT64_MAX)
        )

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Retrieve a floating point value, or default if absent or unparseable."""
        return self._get_parsed(key, default, _parse_float)

    def get_boolean(self, key: str, default: bool = False) -> bool:
        """Retrieve a boolean, or default if absent or unparseable."""
        return self._get_parsed(key, default, _parse_boolean)

    # =========================================================================
    # Objects
    # =========================================================================

    def put_object(self, key: str, value: Any, schema: Type[T]) -> None:
        """
        Store a structured value as schema-encoded JSON.

        Args:
            key: Logical key
            value: Value conforming to schema
            schema: Any type pydantic can validate (model, dataclass, List[int], ...)

        Raises:
            SerializationError: If value cannot be encoded with schema
        """
        adapter = _adapter_for(schema)
        try:
            text = adapter.dump_json(adapter.validate_python(value)).decode("utf-8")
        except (ValidationError, ValueError, TypeError) as e:
            raise SerializationError(f"Failed to encode {key!r}: {e}") from e
        self.put_text(key, text)

    def get_object(
        self, key: str, schema: Type[T], default: Optional[T] = None
    ) -> Optional[T]:
        """
        Retrieve a structured value.

        Args:
            key: Logical key
            schema: Type used when the value was stored
            default: Returned when nothing is stored

        Returns:
            Decoded value, or default

        Raises:
            AuthenticationError: If the stored value was tampered with
            SerializationError: If the authentic JSON does not fit schema
        """
        text = self.get_text(key)
        if text is None:
            return default

        try:
            return _adapter_for(schema).validate_json(text)
        except ValidationError as e:
            raise SerializationError(f"Failed to decode {key!r}: {e}") from e

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def contains(self, key: str) -> bool:
        """Check whether a complete sealed value is stored under key."""
        if self._layout is StoreLayout.COMBINED and self._backend.contains(
            key + SEALED_SUFFIX
        ):
            return True
        return self._backend.contains(key + DATA_SUFFIX) and self._backend.contains(
            key + IV_SUFFIX
        )

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def keys(self) -> List[str]:
        """List logical keys with a complete sealed value."""
        candidates = set()
        for entry in self._backend.keys():
            for suffix in (SEALED_SUFFIX, DATA_SUFFIX):
                if entry.endswith(suffix):
                    candidates.add(entry[: -len(suffix)])
        return sorted(k for k in candidates if self.contains(k))

    def remove(self, key: str) -> None:
        """Delete the value stored under key; missing keys are ignored."""
        self._backend.remove(key + SEALED_SUFFIX, key + DATA_SUFFIX, key + IV_SUFFIX)

    def clear(self) -> None:
        """
        Delete every entry in the backing store.

        This is not limited to entries written by this store: anything else
        sharing the namespace backend is wiped too.
        """
        self._backend.clear()
        logger.debug("Cleared namespace %s", self._namespace)

    # =========================================================================
    # Internal
    # =========================================================================

    def _read_sealed(self, key: str) -> Optional[SealedValue]:
        if self._layout is StoreLayout.COMBINED:
            encoded = self._backend.get(key + SEALED_SUFFIX)
            if encoded is not None:
                return SealedValue.from_text(encoded)

        encoded_ciphertext = self._backend.get(key + DATA_SUFFIX)
        encoded_nonce = self._backend.get(key + IV_SUFFIX)
        if encoded_ciphertext is None or encoded_nonce is None:
            return None
        return SealedValue.from_pair(encoded_ciphertext, encoded_nonce)

    def _get_parsed(self, key: str, default, parse):
        text = self.get_text(key)
        if text is None:
            return default
        value = parse(text)
        if value is None:
            logger.warning(
                "Stored value for %s in namespace %s is not of the requested type",
                key,
                self._namespace,
            )
            return default
        return value


@lru_cache(maxsize=128)
def _adapter_for(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _aad(key: str) -> bytes:
    return key.encode("utf-8")


def _check_integer(value: int, low: int, high: int, kind: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected {kind}, got {type(value).__name__}")
    if not low <= value <= high:
        raise ValueError(f"{value} out of range for {kind} [{low}, {high}]")


def _parse_integer(text: str, low: int, high: int) -> Optional[int]:
    if not _INTEGER_TEXT.fullmatch(text):
        return None
    value = int(text)
    if not low <= value <= high:
        return None
    return value


def _parse_float(text: str) -> Optional[float]:
    if text.lower() in _FLOAT_SPECIALS:
        return float(text)
    try:
        value = float(text)
    except ValueError:
        return None
    # float() also accepts forms repr() never writes ("infinity", " 1", "1_0")
    if not math.isfinite(value) or text != text.strip() or "_" in text:
        return None
    return value


def _parse_boolean(text: str) -> Optional[bool]:
    if text == "true":
        return True
    if text == "false":
        return False
    return None
