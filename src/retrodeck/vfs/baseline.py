"""Built-in content every session starts from.

The reserved ``/src`` subtree mirrors the shell's own Python source, so a
newer install carries a newer baseline than an old snapshot.
"""

from __future__ import annotations

import logging
from pathlib import Path

from retrodeck.config import APP_VERSION
from retrodeck.vfs.node import Container, Directory, File, Tree

logger = logging.getLogger(__name__)

SOURCE_DIR = "src"

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent

README = f"""NETSEC RETRODECK v{APP_VERSION}
=======================
AUTHORIZED PERSONNEL ONLY

Current Mission: Analyze 'AgentHopper' AI Worm variant.
Objective: Generate documentation and countermeasures.

Commands:
- help: Show available commands
- ls: List files
- cat [filename]: View file content
- analyze: Start AgentHopper heuristics analysis
- research: Deep dive internet research for new vectors
- export: Save current session to local disk
- load: Load a previous session
- clear: Clear terminal
"""


def initial_tree() -> Tree:
    """Fresh baseline tree, without the source subtree."""
    return Tree(
        children=[
            File(name="readme.txt", content=README),
            Directory(name="docs"),
        ]
    )


def source_files(root: Path = _PACKAGE_ROOT) -> list[tuple[list[str], str]]:
    """Collect (relative segments, content) for every module under ``root``."""
    files: list[tuple[list[str], str]] = []
    for py_file in sorted(root.rglob("*.py")):
        rel = py_file.relative_to(root)
        if "__pycache__" in rel.parts:
            continue
        files.append((list(rel.parts), py_file.read_text(encoding="utf-8")))
    return files


def fresh_source(root: Path = _PACKAGE_ROOT) -> Directory:
    """Build a new ``/src`` directory from the baseline."""
    src = Directory(name=SOURCE_DIR)
    _merge_into(src, source_files(root))
    return src


def has_source(tree: Tree) -> bool:
    return SOURCE_DIR in tree


def merge_source(tree: Tree, root: Path = _PACKAGE_ROOT) -> int:
    """Merge the baseline source into ``/src``. Idempotent.

    Missing entries are added; existing ones, customized or not, are kept.
    A non-directory ``src`` entry is user content and is left alone.
    Returns the number of files added.
    """
    src = tree.get(SOURCE_DIR)
    if src is None:
        src = tree.add(Directory(name=SOURCE_DIR))
    if not isinstance(src, Directory):
        logger.warning("/%s is not a directory; baseline source not merged", SOURCE_DIR)
        return 0
    added = _merge_into(src, source_files(root))
    if added:
        logger.info("Merged %d baseline source files into /%s", added, SOURCE_DIR)
    return added


def _merge_into(target: Container, files: list[tuple[list[str], str]]) -> int:
    added = 0
    for parts, content in files:
        current: Container = target
        for part in parts[:-1]:
            node = current.get(part)
            if node is None:
                node = current.add(Directory(name=part))
            if not isinstance(node, Directory):
                break
            current = node
        else:
            if parts[-1] not in current:
                current.add(File(name=parts[-1], content=content))
                added += 1
    return added
