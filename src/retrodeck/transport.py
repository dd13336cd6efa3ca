"""Persistence transport: where exported snapshot bytes go and come from."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

SNAPSHOT_GLOB = "retrodeck_v*.json"


@runtime_checkable
class Transport(Protocol):
    def export(self, data: bytes, filename: str) -> Path:
        """Persist ``data`` under ``filename`` and return where it went."""
        ...

    def read(self, name: str) -> bytes:
        """Return the raw bytes of a previously exported snapshot."""
        ...

    def latest(self) -> Path | None:
        """Most recent snapshot, if any."""
        ...


class FileTransport:
    """Snapshots as JSON files in a local directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def export(self, data: bytes, filename: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / Path(filename).name
        path.write_bytes(data)
        logger.info("Snapshot written: %s (%d bytes)", path, len(data))
        return path

    def read(self, name: str) -> bytes:
        """Read by absolute/relative path, falling back to the export dir."""
        path = Path(name).expanduser()
        if not path.exists():
            path = self.root / name
        return path.read_bytes()

    def latest(self) -> Path | None:
        if not self.root.is_dir():
            return None
        candidates = sorted(
            self.root.glob(SNAPSHOT_GLOB), key=lambda p: (p.stat().st_mtime_ns, p.name)
        )
        return candidates[-1] if candidates else None
