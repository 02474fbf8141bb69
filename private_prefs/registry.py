"""
Registry of encrypted stores keyed by namespace.

A StoreRegistry is an ordinary object: build one at startup and pass it to
whatever needs preferences. Tests build a fresh one each.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Callable, Dict, List

from .backends import InMemoryBackend, JsonFileBackend, PreferenceBackend
from .config import DEFAULT_KEY_ALIAS_PREFIX, DEFAULT_PREFS_PREFIX, PreferencesConfig
from .custody import FileKeyCustody, InMemoryKeyCustody, KeyCustodian
from .store import EncryptedStore, StoreLayout

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str], PreferenceBackend]

_NAMESPACE = re.compile(r"[A-Za-z0-9._-]{1,128}")


class StoreRegistry:
    """
    Thread-safe cache of EncryptedStore instances by namespace.

    Each namespace gets its own backing store (named ``<prefs_prefix>_<ns>``)
    and its own key (aliased ``<key_alias_prefix>_<ns>``). Evicting a store
    only drops it from memory; a later lookup rebuilds a store over the same
    persisted data.
    """

    def __init__(
        self,
        custodian: KeyCustodian,
        backend_factory: BackendFactory,
        *,
        layout: StoreLayout = StoreLayout.COMBINED,
        prefs_prefix: str = DEFAULT_PREFS_PREFIX,
        key_alias_prefix: str = DEFAULT_KEY_ALIAS_PREFIX,
    ) -> None:
        """
        Initialize StoreRegistry.

        Args:
            custodian: KeyCustodian shared by all namespaces
            backend_factory: Called with the backing store name of a namespace
            layout: Persisted layout for new stores
            prefs_prefix: Prefix of backing store names
            key_alias_prefix: Prefix of key aliases
        """
        self._custodian = custodian
        self._backend_factory = backend_factory
        self._layout = layout
        self._prefs_prefix = prefs_prefix
        self._key_alias_prefix = key_alias_prefix
        self._stores: Dict[str, EncryptedStore] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: PreferencesConfig) -> StoreRegistry:
        """
        Create a file-backed registry from configuration.

        Args:
            config: PreferencesConfig with directories and naming

        Returns:
            StoreRegistry using FileKeyCustody and JsonFileBackend
        """
        prefs_dir = Path(config.prefs_dir)

        def backend_factory(name: str) -> PreferenceBackend:
            return JsonFileBackend(prefs_dir / f"{name}.json")

        return cls(
            custodian=KeyCustodian(FileKeyCustody(config.keys_dir)),
            backend_factory=backend_factory,
            layout=config.layout,
            prefs_prefix=config.prefs_prefix,
            key_alias_prefix=config.key_alias_prefix,
        )

    @classmethod
    def in_memory(cls, layout: StoreLayout = StoreLayout.COMBINED) -> StoreRegistry:
        """
        Create a registry whose keys and data live only in this object.

        Backends are kept per name, so evicted stores still find their data.
        """
        backends: Dict[str, InMemoryBackend] = {}
        lock = threading.Lock()

        def backend_factory(name: str) -> PreferenceBackend:
            with lock:
                return backends.setdefault(name, InMemoryBackend())

        return cls(
            custodian=KeyCustodian(InMemoryKeyCustody()),
            backend_factory=backend_factory,
            layout=layout,
        )

    @property
    def custodian(self) -> KeyCustodian:
        """Get the shared KeyCustodian."""
        return self._custodian

    def prefs_name_for(self, namespace: str) -> str:
        """Backing store name for a namespace."""
        return f"{self._prefs_prefix}_{_validate_namespace(namespace)}"

    def key_alias_for(self, namespace: str) -> str:
        """Key alias for a namespace."""
        return f"{self._key_alias_prefix}_{_validate_namespace(namespace)}"

    def get_or_create(self, namespace: str) -> EncryptedStore:
        """
        Get the store for namespace, creating it on first use.

        Args:
            namespace: Namespace identifier ([A-Za-z0-9._-], 1-128 chars)

        Returns:
            The cached EncryptedStore for namespace

        Raises:
            ValueError: If namespace is invalid
        """
        with self._lock:
            store = self._stores.get(namespace)
            if store is not None:
                return store

            store = EncryptedStore(
                namespace=namespace,
                backend=self._backend_factory(self.prefs_name_for(namespace)),
                custodian=self._custodian,
                key_alias=self.key_alias_for(namespace),
                layout=self._layout,
            )
            self._stores[namespace] = store
            logger.debug("Created store for namespace %s", namespace)
            return store

    def evict(self, namespace: str) -> bool:
        """
        Drop the cached store for namespace. Persisted data is untouched.

        Returns:
            True if a store was cached
        """
        with self._lock:
            evicted = self._stores.pop(namespace, None) is not None
        if evicted:
            logger.debug("Evicted store for namespace %s", namespace)
        return evicted

    def evict_all(self) -> None:
        """Drop every cached store. Persisted data is untouched."""
        with self._lock:
            self._stores.clear()

    def namespaces(self) -> List[str]:
        """Namespaces with a cached store."""
        with self._lock:
            return sorted(self._stores)

    def __contains__(self, namespace: str) -> bool:
        with self._lock:
            return namespace in self._stores

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)


def _validate_namespace(namespace: str) -> str:
    if not isinstance(namespace, str) or not _NAMESPACE.fullmatch(namespace):
        raise ValueError(
            f"Invalid namespace {namespace!r}: use 1-128 characters from [A-Za-z0-9._-]"
        )
    return namespace
