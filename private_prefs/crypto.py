"""
Cryptographic primitives for AES-256-GCM preference sealing.

This module provides:
- KeyHandle: Opaque key handle that never exposes raw key bytes
- SealedValue: Sealed payload with nonce and ciphertext
- AeadCodec: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationError, CryptoError, EncodingError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)

ALGORITHM: str = "AES-256-GCM"


class KeyHandle:
    """
    Opaque handle to a symmetric AEAD key.

    The handle keeps the initialized AESGCM primitive only. The key bytes it
    was built from are wiped (best-effort) once the primitive exists, so
    nothing outside a custody facility ever holds them.
    """

    __slots__ = ("_alias", "_aead")

    def __init__(self, alias: str, material: bytearray) -> None:
        """
        Build a handle from key material owned by a custody facility.

        Args:
            alias: Name the key is registered under
            material: Raw key material (32 bytes); zeroed after use
        """
        if not isinstance(material, bytearray):
            raise CryptoError("Key material must be a bytearray")
        try:
            if len(material) != AES_256_KEY_SIZE:
                raise CryptoError(
                    f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(material)}"
                )
            self._aead = AESGCM(bytes(material))
        finally:
            wipe(material)
        self._alias = alias

    @property
    def alias(self) -> str:
        """Alias the key is registered under."""
        return self._alias

    def _seal(self, nonce: bytes, plaintext: bytes, aad: Optional[bytes]) -> bytes:
        return self._aead.encrypt(nonce, plaintext, aad)

    def _open(self, nonce: bytes, ciphertext: bytes, aad: Optional[bytes]) -> bytes:
        return self._aead.decrypt(nonce, ciphertext, aad)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return f"KeyHandle(alias={self._alias!r}, key=[REDACTED])"


@dataclass(frozen=True)
class SealedValue:
    """
    Sealed data container with nonce and ciphertext.

    The ciphertext includes the 16-byte authentication tag appended by AESGCM.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag

    def to_blob(self) -> bytes:
        """Combined AEAD blob: nonce || ciphertext || tag."""
        return self.nonce + self.ciphertext

    @classmethod
    def from_blob(cls, blob: bytes) -> SealedValue:
        """
        Parse from combined AEAD blob format: nonce || ciphertext || tag.

        Raises:
            EncodingError: If blob is too small
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise EncodingError(
                f"Sealed blob too small: expected at least {min_size} bytes, got {len(blob)}"
            )
        return cls(nonce=blob[:NONCE_SIZE], ciphertext=blob[NONCE_SIZE:])

    def to_text(self) -> str:
        """Encode the combined blob as a base64 string."""
        return encode_text(self.to_blob())

    @classmethod
    def from_text(cls, encoded: str) -> SealedValue:
        """
        Decode from a base64 combined blob.

        Raises:
            EncodingError: If decoding fails or the blob is too small
        """
        return cls.from_blob(decode_text(encoded))

    def to_pair(self) -> Tuple[str, str]:
        """Encode as the split (ciphertext, nonce) base64 pair."""
        return encode_text(self.ciphertext), encode_text(self.nonce)

    @classmethod
    def from_pair(cls, encoded_ciphertext: str, encoded_nonce: str) -> SealedValue:
        """
        Decode from the split (ciphertext, nonce) base64 pair.

        Raises:
            EncodingError: If either half is malformed
        """
        ciphertext = decode_text(encoded_ciphertext)
        nonce = decode_text(encoded_nonce)
        if len(nonce) != NONCE_SIZE:
            raise EncodingError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(nonce)}"
            )
        if len(ciphertext) < TAG_SIZE:
            raise EncodingError("Invalid ciphertext length")
        return cls(nonce=nonce, ciphertext=ciphertext)


class AeadCodec:
    """
    AES-256-GCM authenticated encryption.

    Every encryption draws a fresh random 96-bit nonce, so no counter has to be
    persisted between runs.
    """

    @staticmethod
    def encrypt(
        key: KeyHandle,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> SealedValue:
        """
        Encrypt plaintext with AES-256-GCM.

        Args:
            key: Key handle from a KeyCustodian
            plaintext: Data to encrypt
            aad: Optional Additional Authenticated Data for binding

        Returns:
            SealedValue with nonce and ciphertext (includes auth tag)

        Raises:
            CryptoError: If encryption fails
        """
        nonce = secrets.token_bytes(NONCE_SIZE)

        try:
            ciphertext = key._seal(nonce, plaintext, aad)
        except (OverflowError, TypeError, ValueError) as e:
            raise CryptoError(f"Encryption error: {e}")

        return SealedValue(nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def decrypt(
        key: KeyHandle,
        sealed: SealedValue,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt and verify a sealed value.

        Args:
            key: Key handle from a KeyCustodian
            sealed: SealedValue with nonce and ciphertext
            aad: Optional Additional Authenticated Data (must match encryption)

        Returns:
            Decrypted plaintext bytes

        Raises:
            EncodingError: If nonce or ciphertext sizes are malformed
            AuthenticationError: If the tag does not verify
        """
        if len(sealed.nonce) != NONCE_SIZE:
            raise EncodingError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(sealed.nonce)}"
            )
        if len(sealed.ciphertext) < TAG_SIZE:
            raise EncodingError("Invalid ciphertext length")

        try:
            return key._open(sealed.nonce, sealed.ciphertext, aad)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise AuthenticationError("Decryption failed") from None


def encode_text(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.standard_b64encode(data).decode("ascii")


def decode_text(encoded: str) -> bytes:
    """
    Decode standard base64 text.

    Only the canonical encoding of the decoded bytes is accepted, so any
    change to the text changes the bytes or fails here.

    Raises:
        EncodingError: If the text is not valid, canonical base64
    """
    try:
        data = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise EncodingError(f"Base64 decode error: {e}") from None
    if encode_text(data) != encoded:
        raise EncodingError("Non-canonical base64")
    return data


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Args:
        length: Number of bytes to generate

    Returns:
        Random bytes of specified length
    """
    return secrets.token_bytes(length)


def wipe(buffer: bytearray) -> None:
    """Zero a mutable buffer in place (best-effort)."""
    for i in range(len(buffer)):
        buffer[i] = 0
