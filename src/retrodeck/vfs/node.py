"""Tree nodes: File, Directory and the implicit root container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

SEPARATOR = "/"
ROOT = "/"


def join_path(parent: str, name: str) -> str:
    """Join a parent path and a single segment."""
    if parent == ROOT:
        return ROOT + name
    return parent + SEPARATOR + name


def is_valid_name(name: str) -> bool:
    """A name is one non-empty segment that is not a relative marker."""
    return bool(name) and SEPARATOR not in name and name not in (".", "..")


def _check_name(name: str) -> None:
    if not is_valid_name(name):
        raise ValueError(f"Invalid node name: {name!r}")


@dataclass
class File:
    """A leaf node. ``content`` of None reads as empty."""

    name: str
    path: str = ""
    content: str | None = None

    def __post_init__(self) -> None:
        _check_name(self.name)
        if not self.path:
            self.path = join_path(ROOT, self.name)

    @property
    def text(self) -> str:
        return self.content or ""

    def clone(self) -> File:
        return File(name=self.name, path=self.path, content=self.content)


class _Container:
    """Ordered children with unique names.

    Inserting a node re-roots its ``path`` (and its subtree's) under this
    container. A node must only ever live in one container.
    """

    path: str
    children: list[Node]

    def get(self, name: str) -> Node | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def __contains__(self, name: object) -> bool:
        return any(child.name == name for child in self.children)

    def add(self, node: Node) -> Node:
        """Append a child. Raises KeyError if the name is taken."""
        if node.name in self:
            raise KeyError(node.name)
        _rebase(node, self.path)
        self.children.append(node)
        return node

    def upsert(self, node: Node) -> Node:
        """Insert or replace the same-named child, keeping its position."""
        _rebase(node, self.path)
        for i, child in enumerate(self.children):
            if child.name == node.name:
                self.children[i] = node
                return node
        self.children.append(node)
        return node

    def remove(self, name: str) -> Node | None:
        for i, child in enumerate(self.children):
            if child.name == name:
                return self.children.pop(i)
        return None


@dataclass
class Directory(_Container):
    """An interior node holding an ordered list of children."""

    name: str
    path: str = ""
    children: list[Node] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_name(self.name)
        if not self.path:
            self.path = join_path(ROOT, self.name)
        for child in self.children:
            _rebase(child, self.path)

    def clone(self) -> Directory:
        return Directory(
            name=self.name,
            path=self.path,
            children=[child.clone() for child in self.children],
        )


@dataclass
class Tree(_Container):
    """The implicit root directory at ``/``. Never itself a node."""

    children: list[Node] = field(default_factory=list)
    path: str = field(default=ROOT, init=False)

    def __post_init__(self) -> None:
        for child in self.children:
            _rebase(child, ROOT)

    def clone(self) -> Tree:
        return Tree(children=[child.clone() for child in self.children])


Node = Union[File, Directory]
Container = Union[Tree, Directory]


def _rebase(node: Node, parent_path: str) -> None:
    node.path = join_path(parent_path, node.name)
    if isinstance(node, Directory):
        for child in node.children:
            _rebase(child, node.path)
