"""
Exception classes for encrypted preference operations.

All errors raised by this package derive from PreferencesError. A missing key
is never an error at any layer.
"""

from __future__ import annotations


class PreferencesError(Exception):
    """Base exception for all encrypted preference operations."""

    pass


class KeyStoreUnavailableError(PreferencesError):
    """Key custody facility cannot be reached or initialized."""

    pass


class KeyExistsError(PreferencesError):
    """A key is already registered under the requested alias."""

    pass


class CryptoError(PreferencesError):
    """Cryptographic operation failed."""

    pass


class AuthenticationError(CryptoError):
    """Authentication tag did not verify (tampering, corruption, wrong key or nonce)."""

    pass


class EncodingError(CryptoError):
    """Stored text or blob is malformed and cannot be decoded."""

    pass


class SerializationError(PreferencesError):
    """Authentic plaintext could not be encoded or decoded with the given schema."""

    pass


class StorageError(PreferencesError):
    """Backing store error (file, in-memory, etc.)."""

    pass


class ConfigError(PreferencesError):
    """Configuration error."""

    pass
