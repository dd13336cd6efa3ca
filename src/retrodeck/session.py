"""Session context: everything the interpreter mutates and the codec persists."""

from __future__ import annotations

import enum
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from retrodeck.config import APP_VERSION
from retrodeck.vfs.baseline import initial_tree, merge_source
from retrodeck.vfs.node import ROOT, File, Tree

LineKind = Literal["input", "output", "system", "error", "success"]
LINE_KINDS: tuple[str, ...] = ("input", "output", "system", "error", "success")

LineListener = Callable[["TerminalLine"], None]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TerminalLine:
    """One entry of the output history."""

    text: str
    kind: LineKind = "output"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: int = field(default_factory=now_ms)


class ShellState(enum.Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    GENERATING_DOCS = "GENERATING_DOCS"
    GENERATING_SPECS = "GENERATING_SPECS"
    RESEARCHING = "RESEARCHING"
    BROWSING = "BROWSING"
    SCANNING = "SCANNING"
    CHATTING = "CHATTING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"

    @property
    def busy(self) -> bool:
        return self not in (ShellState.IDLE, ShellState.COMPLETE, ShellState.ERROR)


@dataclass
class Session:
    """Mutable state of one shell session.

    Constructed at start, replaced wholesale by a restore, dropped at exit.
    """

    tree: Tree
    lines: list[TerminalLine] = field(default_factory=list)
    cwd: str = ROOT
    version: str = APP_VERSION
    state: ShellState = ShellState.IDLE
    last_outcome: ShellState | None = None
    loaded_filename: str = ""
    active_file: File | None = None
    _listeners: list[LineListener] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def new(cls, version: str = APP_VERSION) -> Session:
        """Baseline tree with the source subtree merged in, plus boot lines."""
        tree = initial_tree()
        merge_source(tree)
        session = cls(tree=tree, version=version)
        session.add_line(
            f"BOOT SEQUENCE INITIATED...\nVERSION: {version}\nMOUNTING VIRTUAL FS...",
            "system",
        )
        return session

    @property
    def busy(self) -> bool:
        return self.state.busy

    def subscribe(self, listener: LineListener) -> None:
        self._listeners.append(listener)

    def add_line(self, text: str, kind: LineKind = "output") -> TerminalLine:
        line = TerminalLine(text=text, kind=kind)
        self.lines.append(line)
        for listener in self._listeners:
            listener(line)
        return line

    def clear(self) -> None:
        self.lines = []
