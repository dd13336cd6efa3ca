"""API key lookup: environment first, then the local key file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

ENV_VAR = "ANTHROPIC_API_KEY"

KeySource = Literal["ENV", "LOCAL", "MISSING"]


@dataclass
class KeyStore:
    path: Path
    env_var: str = ENV_VAR

    def get(self) -> str | None:
        env_key = os.getenv(self.env_var)
        if env_key:
            return env_key
        if self.path.exists():
            return self.path.read_text(encoding="utf-8").strip() or None
        return None

    def source(self) -> KeySource:
        if os.getenv(self.env_var):
            return "ENV"
        if self.path.exists() and self.path.read_text(encoding="utf-8").strip():
            return "LOCAL"
        return "MISSING"

    def set(self, key: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(key.strip() + "\n", encoding="utf-8")
        try:
            self.path.chmod(0o600)
        except OSError as e:
            logger.warning("Could not restrict permissions on %s: %s", self.path, e)
        logger.info("API key stored in %s", self.path)
