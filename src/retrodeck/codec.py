"""Session snapshots: serialize, validate, restore.

Wire format (JSON):
    {
      "version": "1.1.3",
      "timestamp": 1760000000000,
      "files": [{"name", "type": "file"|"directory", "path", "content"?, "children"?}],
      "terminalLines": [{"id", "type", "text", "timestamp"}]
    }

Restore is atomic: the payload is fully decoded and validated before the
live session is touched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from retrodeck.session import LINE_KINDS, Session, ShellState, TerminalLine, now_ms
from retrodeck.vfs.baseline import SOURCE_DIR, fresh_source, has_source
from retrodeck.vfs.node import ROOT, Directory, File, Node, Tree, is_valid_name

logger = logging.getLogger(__name__)


class SnapshotError(ValueError):
    """Raised when a snapshot payload cannot be decoded."""


@dataclass
class Snapshot:
    version: str
    timestamp: int
    tree: Tree
    lines: list[TerminalLine] = field(default_factory=list)


# ── Version ───────────────────────────────────────────────────


def bump_version(version: str) -> str:
    """Increment the patch component; short versions get ``.1`` appended."""
    parts = version.split(".")
    if len(parts) < 3:
        return version + ".1"
    try:
        parts[2] = str(int(parts[2]) + 1)
    except ValueError:
        raise SnapshotError(f"Cannot bump non-numeric version: {version!r}")
    return ".".join(parts)


def snapshot_filename(version: str, timestamp: int) -> str:
    stamp = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return f"retrodeck_v{version}_{stamp.strftime('%Y-%m-%dT%H-%M-%S')}.json"


# ── Serialize / restore ───────────────────────────────────────


def serialize(session: Session, version: str | None = None) -> Snapshot:
    """Structural copy of the session; nothing is filtered."""
    return Snapshot(
        version=version or session.version,
        timestamp=now_ms(),
        tree=session.tree.clone(),
        lines=[
            TerminalLine(text=line.text, kind=line.kind, id=line.id, timestamp=line.timestamp)
            for line in session.lines
        ],
    )


def reconcile(tree: Tree) -> bool:
    """Inject a fresh ``/src`` when the snapshot has none. Returns True if injected.

    All-or-nothing: an existing ``src`` entry is kept as-is.
    """
    if has_source(tree):
        return False
    tree.add(fresh_source())
    logger.info("Snapshot lacked /%s; baseline source injected", SOURCE_DIR)
    return True


def restore(session: Session, snapshot: Snapshot) -> bool:
    """Replace the session state with ``snapshot``. Returns True if /src was injected."""
    tree = snapshot.tree.clone()
    injected = reconcile(tree)

    session.tree = tree
    session.lines = list(snapshot.lines)
    session.version = snapshot.version
    session.cwd = ROOT
    session.state = ShellState.IDLE
    session.active_file = None
    return injected


# ── Dict / JSON ───────────────────────────────────────────────


def node_to_dict(node: Node) -> dict:
    if isinstance(node, File):
        data: dict = {"name": node.name, "type": "file", "path": node.path}
        if node.content is not None:
            data["content"] = node.content
        return data
    return {
        "name": node.name,
        "type": "directory",
        "path": node.path,
        "children": [node_to_dict(child) for child in node.children],
    }


def to_dict(snapshot: Snapshot) -> dict:
    return {
        "version": snapshot.version,
        "timestamp": snapshot.timestamp,
        "files": [node_to_dict(node) for node in snapshot.tree.children],
        "terminalLines": [
            {"id": line.id, "type": line.kind, "text": line.text, "timestamp": line.timestamp}
            for line in snapshot.lines
        ],
    }


def _require(data: dict, key: str, types: type | tuple[type, ...], where: str):
    if key not in data:
        raise SnapshotError(f"{where}: missing field '{key}'")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, types):
        raise SnapshotError(f"{where}: field '{key}' has wrong type")
    return value


def node_from_dict(data: object, where: str = "files") -> Node:
    if not isinstance(data, dict):
        raise SnapshotError(f"{where}: node must be an object")
    name = _require(data, "name", str, where)
    if not is_valid_name(name):
        raise SnapshotError(f"{where}: invalid node name {name!r}")
    kind = _require(data, "type", str, where)
    where = f"{where}/{name}"

    if kind == "file":
        content = data.get("content")
        if content is not None and not isinstance(content, str):
            raise SnapshotError(f"{where}: field 'content' has wrong type")
        return File(name=name, content=content)
    if kind == "directory":
        directory = Directory(name=name)
        children = _require(data, "children", list, where) if "children" in data else []
        for child in children:
            directory.upsert(node_from_dict(child, where))
        return directory
    raise SnapshotError(f"{where}: unknown node type {kind!r}")


def line_from_dict(data: object, index: int) -> TerminalLine:
    where = f"terminalLines[{index}]"
    if not isinstance(data, dict):
        raise SnapshotError(f"{where}: line must be an object")
    kind = _require(data, "type", str, where)
    if kind not in LINE_KINDS:
        raise SnapshotError(f"{where}: unknown line type {kind!r}")
    return TerminalLine(
        id=str(_require(data, "id", (str, int), where)),
        kind=kind,  # type: ignore[arg-type]
        text=_require(data, "text", str, where),
        timestamp=_require(data, "timestamp", (int, float), where),
    )


def from_dict(data: object) -> Snapshot:
    """Decode and validate a snapshot. Paths are recomputed from position."""
    if not isinstance(data, dict):
        raise SnapshotError("snapshot must be a JSON object")
    version = _require(data, "version", str, "snapshot")
    # Loaded versions must stay bumpable by export
    bump_version(version)
    timestamp = _require(data, "timestamp", (int, float), "snapshot")
    files = _require(data, "files", list, "snapshot")
    raw_lines = _require(data, "terminalLines", list, "snapshot")

    tree = Tree()
    for item in files:
        tree.upsert(node_from_dict(item))
    lines = [line_from_dict(item, i) for i, item in enumerate(raw_lines)]
    return Snapshot(version=version, timestamp=timestamp, tree=tree, lines=lines)


def dumps(snapshot: Snapshot) -> bytes:
    return json.dumps(to_dict(snapshot), indent=2, ensure_ascii=False).encode("utf-8")


def loads(raw: bytes | str) -> Snapshot:
    try:
        return from_dict(json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotError(f"unparsable snapshot: {e}") from e
    except RecursionError:
        raise SnapshotError("snapshot nested too deeply")
