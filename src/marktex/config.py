"""Configuration loading from environment variables and marktex.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".marktex"
_DEFAULT_DATA_DIR = _DEFAULT_HOME / "store"
_CONFIG_FILENAME = "marktex.toml"

DEFAULT_STORAGE_KEY = "marktex-workspace"
DEFAULT_DEBOUNCE_MS = 1000


@dataclass
class PersistenceConfig:
    """Autosave and durable store configuration."""

    storage_key: str = DEFAULT_STORAGE_KEY
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    data_dir: Path = _DEFAULT_DATA_DIR

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


@dataclass
class MarkTeXConfig:
    """Top-level MarkTeX configuration."""

    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> MarkTeXConfig:
    """Load configuration from environment variables and optional marktex.toml.

    Priority: environment variables > marktex.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.marktex/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_HOME / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    persistence_data = file_data.get("persistence", {})

    config = MarkTeXConfig(
        persistence=PersistenceConfig(
            storage_key=os.getenv(
                "MARKTEX_STORAGE_KEY", persistence_data.get("storage_key", DEFAULT_STORAGE_KEY)
            ),
            debounce_ms=int(
                os.getenv(
                    "MARKTEX_DEBOUNCE_MS", persistence_data.get("debounce_ms", DEFAULT_DEBOUNCE_MS)
                )
            ),
            data_dir=Path(
                os.getenv("MARKTEX_DATA_DIR", persistence_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
            ).expanduser(),
        ),
        log_level=os.getenv("MARKTEX_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
