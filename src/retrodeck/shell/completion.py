"""Incremental completion: verbs for the first token, tree entries after."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from retrodeck.vfs.node import ROOT, SEPARATOR, Directory, Tree
from retrodeck.vfs.paths import lookup_directory, resolve


def suggest_verb(text: str, verbs: Sequence[str]) -> str:
    """Suffix of the shortest verb extending ``text`` (table order breaks ties)."""
    if not text:
        return ""
    typed = text.lower()
    candidates = [v for v in verbs if v.startswith(typed) and len(v) > len(typed)]
    if not candidates:
        return ""
    best = min(candidates, key=len)
    return best[len(typed):]


def suggest_path(token: str, cwd: str, tree: Tree) -> str:
    """Suffix completing ``token`` to the first matching sibling name."""
    idx = token.rfind(SEPARATOR)
    if idx == -1:
        dir_part, prefix = "", token
    else:
        dir_part, prefix = token[: idx + 1], token[idx + 1:]

    directory = lookup_directory(tree, resolve(cwd, dir_part) if dir_part else cwd)
    if directory is None:
        return ""
    for node in directory.children:
        if node.name.startswith(prefix):
            suffix = node.name[len(prefix):]
            return suffix + SEPARATOR if isinstance(node, Directory) else suffix
    return ""


def suggest(text: str, verbs: Sequence[str], cwd: str = ROOT, tree: Tree | None = None) -> str:
    """Advisory completion for the current input. Never raises."""
    if not any(ch.isspace() for ch in text):
        return suggest_verb(text, verbs)
    if tree is None:
        return ""
    token = text.split()[-1] if not text[-1].isspace() else ""
    return suggest_path(token, cwd, tree)


@dataclass
class InputBuffer:
    """Typed text plus the current suggestion.

    ``accept`` appends the suggestion verbatim; submitting is up to the caller.
    """

    verbs: Sequence[str]
    tree: Tree | None = None
    cwd: str = ROOT
    text: str = ""
    suggestion: str = field(default="", init=False)

    def type(self, chars: str) -> str:
        self.text += chars
        return self.refresh()

    def backspace(self) -> str:
        self.text = self.text[:-1]
        return self.refresh()

    def refresh(self) -> str:
        self.suggestion = suggest(self.text, self.verbs, self.cwd, self.tree)
        return self.suggestion

    def accept(self) -> str:
        self.text += self.suggestion
        self.suggestion = ""
        return self.text

    def submit(self) -> str:
        line, self.text, self.suggestion = self.text, "", ""
        return line
