"""Path resolution and read-only lookups over the virtual tree.

Lookups return None for a missing path instead of raising: an unknown
path is ordinary user input, not a programming error.
"""

from __future__ import annotations

from collections.abc import Iterator

from retrodeck.vfs.node import ROOT, SEPARATOR, Container, Directory, File, Node, Tree, join_path

EMPTY_LISTING = "(empty)"


def segments(path: str) -> list[str]:
    return [part for part in path.split(SEPARATOR) if part]


def resolve(cwd: str, target: str) -> str:
    """Resolve ``target`` against ``cwd`` into an absolute path. Never fails."""
    if not target:
        return cwd
    if target.startswith(SEPARATOR):
        if target.endswith(SEPARATOR) and len(target) > 1:
            return target[:-1]
        return target

    parts = segments(cwd)
    for part in segments(target):
        if part == ".":
            continue
        if part == "..":
            if parts:
                parts.pop()
        else:
            parts.append(part)
    return SEPARATOR + SEPARATOR.join(parts)


def split_path(path: str) -> tuple[str, str]:
    """Split an absolute path into (parent directory, leaf name)."""
    idx = path.rfind(SEPARATOR)
    parent = path[:idx] or ROOT
    return parent, path[idx + 1:]


def lookup_directory(tree: Tree, path: str) -> Container | None:
    """Walk exact-name directories from the root. ``/`` yields the tree itself."""
    current: Container = tree
    for part in segments(path):
        node = current.get(part)
        if not isinstance(node, Directory):
            return None
        current = node
    return current


def lookup_file(tree: Tree, path: str) -> File | None:
    parent, name = split_path(path)
    directory = lookup_directory(tree, parent)
    if directory is None:
        return None
    node = directory.get(name)
    return node if isinstance(node, File) else None


def lookup(tree: Tree, path: str) -> Node | None:
    """Return whichever node lives at ``path``."""
    parent, name = split_path(path)
    directory = lookup_directory(tree, parent)
    if directory is None or not name:
        return None
    return directory.get(name)


def iter_by_name_substring(
    children: list[Node], needle: str, parent_path: str = ROOT
) -> Iterator[str]:
    """Pre-order walk yielding paths of nodes whose name contains ``needle``."""
    for node in children:
        full_path = join_path(parent_path, node.name)
        if needle in node.name:
            yield full_path
        if isinstance(node, Directory):
            yield from iter_by_name_substring(node.children, needle, full_path)


def find_by_name_substring(tree: Tree, needle: str) -> list[str]:
    return list(iter_by_name_substring(tree.children, needle))


def format_entry(node: Node) -> str:
    tag = "[DIR]" if isinstance(node, Directory) else "[FILE]"
    return f"{tag:<8} {node.name}"


def list_children(container: Container) -> list[str]:
    if not container.children:
        return [EMPTY_LISTING]
    return [format_entry(node) for node in container.children]
