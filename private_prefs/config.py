"""
Configuration for file-backed preference registries.

Values come from the environment, optionally seeded from a ``.env`` file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError
from .store import StoreLayout

ENV_PREFS_DIR = "PRIVATE_PREFS_DIR"
ENV_KEYS_DIR = "PRIVATE_PREFS_KEYS_DIR"
ENV_PREFS_PREFIX = "PRIVATE_PREFS_PREFIX"
ENV_KEY_ALIAS_PREFIX = "PRIVATE_PREFS_KEY_ALIAS_PREFIX"
ENV_LAYOUT = "PRIVATE_PREFS_LAYOUT"

DEFAULT_ROOT = Path("~/.private_prefs")
DEFAULT_PREFS_PREFIX = "secure_prefs"
DEFAULT_KEY_ALIAS_PREFIX = "SecurePrefsKey"


@dataclass
class PreferencesConfig:
    """Directories and naming used by StoreRegistry.from_config."""

    prefs_dir: Path = field(default_factory=lambda: (DEFAULT_ROOT / "prefs").expanduser())
    keys_dir: Path = field(default_factory=lambda: (DEFAULT_ROOT / "keys").expanduser())
    prefs_prefix: str = DEFAULT_PREFS_PREFIX
    key_alias_prefix: str = DEFAULT_KEY_ALIAS_PREFIX
    layout: StoreLayout = StoreLayout.COMBINED

    def __post_init__(self) -> None:
        self.prefs_dir = Path(self.prefs_dir).expanduser()
        self.keys_dir = Path(self.keys_dir).expanduser()
        if isinstance(self.layout, str):
            self.layout = StoreLayout.from_str(self.layout)
        for name in ("prefs_prefix", "key_alias_prefix"):
            value = getattr(self, name)
            if not value or not value.replace("_", "").replace("-", "").isalnum():
                raise ConfigError(f"Invalid {name}: {value!r}")
        if self.prefs_dir == self.keys_dir:
            raise ConfigError("prefs_dir and keys_dir must differ")

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Union[str, Path]] = None,
    ) -> PreferencesConfig:
        """
        Load configuration from environment variables.

        Args:
            env: Mapping to read instead of os.environ (no .env loading)
            dotenv_path: .env file to load first (default: search upwards)

        Returns:
            PreferencesConfig

        Raises:
            ConfigError: If a value is invalid
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        defaults = cls()
        return cls(
            prefs_dir=Path(env.get(ENV_PREFS_DIR, defaults.prefs_dir)),
            keys_dir=Path(env.get(ENV_KEYS_DIR, defaults.keys_dir)),
            prefs_prefix=env.get(ENV_PREFS_PREFIX, defaults.prefs_prefix),
            key_alias_prefix=env.get(ENV_KEY_ALIAS_PREFIX, defaults.key_alias_prefix),
            layout=StoreLayout.from_str(env.get(ENV_LAYOUT, str(defaults.layout))),
        )
