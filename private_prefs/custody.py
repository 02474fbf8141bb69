"""
Key custody for preference encryption keys.

This module provides:
- KeyCustody: Abstract interface for a key custody facility
- InMemoryKeyCustody: Thread-safe in-memory facility for testing
- FileKeyCustody: Facility keeping one owner-only key file per alias
- KeyCustodian: Get-or-create front end used by encrypted stores

Raw key bytes stay inside the custody facility; callers only ever receive
KeyHandle objects.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .crypto import AES_256_KEY_SIZE, ALGORITHM, KeyHandle, decode_text, encode_text
from .errors import EncodingError, KeyExistsError, KeyStoreUnavailableError

logger = logging.getLogger(__name__)


class KeyCustody(ABC):
    """
    Abstract key custody facility.

    Implementations generate AES-256 keys restricted to AEAD use and hand out
    opaque KeyHandle objects for them.
    """

    @abstractmethod
    def load(self, alias: str) -> Optional[KeyHandle]:
        """Return a handle for an existing key, or None."""
        ...

    @abstractmethod
    def generate(self, alias: str) -> KeyHandle:
        """
        Generate and register a new key under alias.

        Raises:
            KeyExistsError: If alias is already registered
        """
        ...

    @abstractmethod
    def contains(self, alias: str) -> bool:
        """Check whether a key is registered under alias."""
        ...

    @abstractmethod
    def aliases(self) -> List[str]:
        """List all registered aliases."""
        ...


class InMemoryKeyCustody(KeyCustody):
    """
    Thread-safe in-memory custody facility for testing.

    Keys live for the lifetime of the object.
    """

    def __init__(self) -> None:
        self._keys: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def load(self, alias: str) -> Optional[KeyHandle]:
        with self._lock:
            material = self._keys.get(alias)
        if material is None:
            return None
        return KeyHandle(alias, bytearray(material))

    def generate(self, alias: str) -> KeyHandle:
        with self._lock:
            if alias in self._keys:
                raise KeyExistsError(alias)
            material = AESGCM.generate_key(bit_length=AES_256_KEY_SIZE * 8)
            self._keys[alias] = material
        return KeyHandle(alias, bytearray(material))

    def contains(self, alias: str) -> bool:
        with self._lock:
            return alias in self._keys

    def aliases(self) -> List[str]:
        with self._lock:
            return list(self._keys.keys())


class FileKeyCustody(KeyCustody):
    """
    Custody facility storing each key in its own file.

    The directory is created with mode 0700 and key files with mode 0600.
    Files are named by the SHA-256 of the alias. New keys are written to a
    temporary file and hard-linked into place, so a key file is either
    complete or absent and concurrent first use resolves to one key.
    """

    SUFFIX = ".key"

    def __init__(self, directory: Union[str, Path]) -> None:
        """
        Initialize file custody.

        Args:
            directory: Directory holding key files (created on first use)
        """
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        """Get the key directory."""
        return self._directory

    def load(self, alias: str) -> Optional[KeyHandle]:
        path = self._path_for(alias)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise KeyStoreUnavailableError(f"Failed to read key {alias!r}: {e}")

        try:
            payload = json.loads(raw)
            if payload.get("alias") != alias or payload.get("algorithm") != ALGORITHM:
                raise KeyStoreUnavailableError(f"Key file for {alias!r} does not match")
            material = bytearray(decode_text(payload["key"]))
        except (ValueError, KeyError, AttributeError, EncodingError) as e:
            raise KeyStoreUnavailableError(f"Malformed key file for {alias!r}: {e}")

        return KeyHandle(alias, material)

    def generate(self, alias: str) -> KeyHandle:
        self._ensure_directory()
        path = self._path_for(alias)
        if path.exists():
            raise KeyExistsError(alias)

        material = AESGCM.generate_key(bit_length=AES_256_KEY_SIZE * 8)
        payload = json.dumps(
            {"alias": alias, "algorithm": ALGORITHM, "key": encode_text(material)}
        )

        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
        except OSError as e:
            raise KeyStoreUnavailableError(f"Failed to create key {alias!r}: {e}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o600)
            os.link(tmp_name, path)
        except FileExistsError:
            raise KeyExistsError(alias)
        except OSError as e:
            raise KeyStoreUnavailableError(f"Failed to create key {alias!r}: {e}")
        finally:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass

        return KeyHandle(alias, bytearray(material))

    def contains(self, alias: str) -> bool:
        return self._path_for(alias).exists()

    def aliases(self) -> List[str]:
        if not self._directory.is_dir():
            return []
        found = []
        for path in sorted(self._directory.glob(f"*{self.SUFFIX}")):
            try:
                found.append(json.loads(path.read_text(encoding="utf-8"))["alias"])
            except (OSError, ValueError, KeyError, TypeError) as e:
                raise KeyStoreUnavailableError(f"Malformed key file {path.name}: {e}")
        return found

    def _path_for(self, alias: str) -> Path:
        digest = hashlib.sha256(alias.encode("utf-8")).hexdigest()
        return self._directory / f"{digest}{self.SUFFIX}"

    def _ensure_directory(self) -> None:
        try:
            self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise KeyStoreUnavailableError(
                f"Key directory {self._directory} unavailable: {e}"
            )


class KeyCustodian:
    """
    Get-or-create access to named keys.

    Handles are cached per alias once fetched. A racing generate that finds
    the alias already taken resolves to a fetch of the winner's key.
    """

    def __init__(self, custody: KeyCustody) -> None:
        """
        Initialize KeyCustodian.

        Args:
            custody: Key custody facility
        """
        self._custody = custody
        self._handles: Dict[str, KeyHandle] = {}
        self._lock = threading.Lock()

    @property
    def custody(self) -> KeyCustody:
        """Get the custody facility."""
        return self._custody

    def get_or_create_key(self, alias: str) -> KeyHandle:
        """
        Get the key registered under alias, generating it on first use.

        Args:
            alias: Key alias

        Returns:
            KeyHandle for alias

        Raises:
            KeyStoreUnavailableError: If the custody facility fails
        """
        with self._lock:
            cached = self._handles.get(alias)
        if cached is not None:
            return cached

        try:
            handle = self._custody.load(alias)
            if handle is None:
                try:
                    handle = self._custody.generate(alias)
                    logger.info("Generated new key for alias %s", alias)
                except KeyExistsError:
                    handle = self._custody.load(alias)
                    if handle is None:
                        raise KeyStoreUnavailableError(
                            f"Key {alias!r} reported as existing but cannot be loaded"
                        )
        except OSError as e:
            raise KeyStoreUnavailableError(f"Key custody unavailable: {e}") from e

        with self._lock:
            return self._handles.setdefault(alias, handle)
