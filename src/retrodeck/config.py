"""Configuration loading from environment variables and retrodeck.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

APP_VERSION = "1.1.0"

_DEFAULT_STATE_DIR = Path.home() / ".retrodeck"
_CONFIG_FILENAME = "retrodeck.toml"


@dataclass
class EngineConfig:
    """Configuration for the content-generation engine."""

    name: str = "anthropic_api"
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    timeout: int = 120
    max_tool_rounds: int = 4


@dataclass
class RetrodeckConfig:
    """Top-level RetroDeck configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    state_dir: Path = _DEFAULT_STATE_DIR
    export_dir: Path = _DEFAULT_STATE_DIR / "sessions"
    key_file: Path = _DEFAULT_STATE_DIR / "api_key"
    log_level: str = "WARNING"


def load_config(config_path: Path | None = None) -> RetrodeckConfig:
    """Load configuration from environment variables and optional retrodeck.toml.

    Priority: environment variables > retrodeck.toml > defaults.
    """
    state_dir = Path(os.getenv("RETRODECK_HOME", str(_DEFAULT_STATE_DIR)))

    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and the state dir
        for candidate in [Path.cwd() / _CONFIG_FILENAME, state_dir / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    defaults = EngineConfig()

    if "state_dir" in file_data and "RETRODECK_HOME" not in os.environ:
        state_dir = Path(file_data["state_dir"]).expanduser()

    export_dir = os.getenv("RETRODECK_EXPORT_DIR", file_data.get("export_dir"))
    key_file = file_data.get("key_file")

    config = RetrodeckConfig(
        engine=EngineConfig(
            name=os.getenv("RETRODECK_ENGINE", engine_data.get("name", defaults.name)),
            model=os.getenv("RETRODECK_MODEL", engine_data.get("model", defaults.model)),
            max_tokens=int(engine_data.get("max_tokens", defaults.max_tokens)),
            timeout=int(os.getenv("RETRODECK_TIMEOUT", engine_data.get("timeout", defaults.timeout))),
            max_tool_rounds=int(engine_data.get("max_tool_rounds", defaults.max_tool_rounds)),
        ),
        state_dir=state_dir,
        export_dir=Path(export_dir).expanduser() if export_dir else state_dir / "sessions",
        key_file=Path(key_file).expanduser() if key_file else state_dir / "api_key",
        log_level=os.getenv("RETRODECK_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
    return config
