"""Tree mutators used by the shell and the agent tools."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator

from retrodeck.vfs.node import Container, Directory, File, Tree, is_valid_name
from retrodeck.vfs.paths import lookup_directory, segments, split_path

logger = logging.getLogger(__name__)


class WriteOutcome(enum.Enum):
    WRITTEN = "written"
    NO_PARENT = "no_parent"
    IS_DIRECTORY = "is_directory"
    INVALID_NAME = "invalid_name"


def make_directory(parent: Container, name: str) -> Directory:
    """Add an empty directory. Raises KeyError if ``name`` already exists."""
    return parent.add(Directory(name=name))  # type: ignore[return-value]


def write_file(tree: Tree, path: str, content: str) -> WriteOutcome:
    """Insert or replace the File at ``path``.

    Intermediate directories are not created: a missing parent is a
    no-op reported as NO_PARENT.
    """
    parent_path, name = split_path(path)
    if not is_valid_name(name):
        return WriteOutcome.INVALID_NAME
    parent = lookup_directory(tree, parent_path)
    if parent is None:
        logger.debug("write to %s skipped: parent %s missing", path, parent_path)
        return WriteOutcome.NO_PARENT
    if isinstance(parent.get(name), Directory):
        return WriteOutcome.IS_DIRECTORY
    parent.upsert(File(name=name, content=content))
    return WriteOutcome.WRITTEN


def ensure_directory(tree: Tree, path: str) -> Container | None:
    """Return the directory at ``path``, creating missing segments.

    Returns None when a File occupies one of the segments.
    """
    current: Container = tree
    for part in segments(path):
        node = current.get(part)
        if node is None:
            node = current.add(Directory(name=part))
        elif not isinstance(node, Directory):
            return None
        current = node
    return current


def gather_context(tree: Tree, path: str) -> str:
    """Concatenate the files directly under ``path`` with start/end markers."""
    directory = lookup_directory(tree, path)
    if directory is None:
        return ""
    return "\n\n".join(
        f"--- START OF {node.name} ---\n{node.text}\n--- END OF {node.name} ---"
        for node in directory.children
        if isinstance(node, File)
    )


def walk_files(container: Container) -> Iterator[File]:
    """Yield every File below ``container`` in pre-order."""
    for node in container.children:
        if isinstance(node, File):
            yield node
        else:
            yield from walk_files(node)
