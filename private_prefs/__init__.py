"""
Private Preferences

An encrypted key-value preference store. Every value is sealed with
AES-256-GCM under a per-namespace key before it reaches the backing store,
and authenticated on the way back out.

Quick Start
-----------
```python
from pydantic import BaseModel
from private_prefs import PreferencesConfig, StoreRegistry

class Session(BaseModel):
    user: str
    token: str

registry = StoreRegistry.from_config(PreferencesConfig.from_env())
prefs = registry.get_or_create("client-42")

prefs.put_text("display_name", "Ada")
prefs.put_integer("launch_count", 3)
prefs.put_object("session", Session(user="ada", token="t0k"), Session)

prefs.get_text("display_name")          # "Ada"
prefs.get_integer("launch_count", 0)    # 3
prefs.get_object("session", Session)    # Session(user='ada', token='t0k')
```

Key Features
------------
- **AES-256-GCM**: Authenticated encryption with a fresh 96-bit nonce per write
- **Per-Namespace Keys**: Each namespace has its own key and its own backing file
- **Key Custody**: Keys are generated lazily and never leave the custody facility
- **Typed Values**: Text, integer, long, float, boolean and pydantic schemas
- **Fail Closed**: Tampered values raise instead of reading as absent
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AeadCodec,
    KeyHandle,
    SealedValue,
    generate_random_bytes,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    AuthenticationError,
    ConfigError,
    CryptoError,
    EncodingError,
    KeyExistsError,
    KeyStoreUnavailableError,
    PreferencesError,
    SerializationError,
    StorageError,
)

# =============================================================================
# Custody and Storage Exports
# =============================================================================

from .custody import (
    FileKeyCustody,
    InMemoryKeyCustody,
    KeyCustodian,
    KeyCustody,
)
from .backends import (
    InMemoryBackend,
    JsonFileBackend,
    PreferenceBackend,
)

# =============================================================================
# Store Exports (Primary API)
# =============================================================================

from .store import EncryptedStore, StoreLayout
from .config import PreferencesConfig
from .registry import StoreRegistry

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AeadCodec",
    "KeyHandle",
    "SealedValue",
    "generate_random_bytes",
    # Errors
    "PreferencesError",
    "KeyStoreUnavailableError",
    "KeyExistsError",
    "CryptoError",
    "AuthenticationError",
    "EncodingError",
    "SerializationError",
    "StorageError",
    "ConfigError",
    # Custody and storage
    "KeyCustody",
    "InMemoryKeyCustody",
    "FileKeyCustody",
    "KeyCustodian",
    "PreferenceBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    # Stores (Primary API)
    "EncryptedStore",
    "StoreLayout",
    "PreferencesConfig",
    "StoreRegistry",
]
