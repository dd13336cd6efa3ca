"""Shared fixtures: a scripted engine and an isolated session."""

from __future__ import annotations

from pathlib import Path

import pytest

from retrodeck.engines.base import (
    BrowseResult,
    ChatResponse,
    CollaboratorError,
    ResearchResult,
)
from retrodeck.keystore import KeyStore
from retrodeck.session import Session
from retrodeck.shell.interpreter import Interpreter
from retrodeck.transport import FileTransport
from retrodeck.vfs.node import Directory, File, Tree


class MockEngine:
    """Scripted stand-in for the content-generation collaborator."""

    def __init__(self) -> None:
        self.document = "# Generated document"
        self.code = "print('countermeasure')"
        self.research_result = ResearchResult(
            report="# Intel report",
            artifacts=[{"name": "hopper.yar", "content": "rule hopper {}"}],
        )
        self.browse_result = BrowseResult(
            content="# Example\nBody text\n- [Docs](https://example.com/docs)",
            links=["https://example.com/docs"],
        )
        self.scan_report = "System SECURE. No matching signatures."
        self.chat_responses: list[ChatResponse] = []
        self.error: CollaboratorError | None = None
        self.calls: list[tuple] = []

    @property
    def name(self) -> str:
        return "mock"

    def _record(self, *call) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def generate_document(self, filename, topic, existing="", context=""):
        self._record("generate_document", filename, existing, context)
        return self.document

    async def generate_code(self, existing="", context=""):
        self._record("generate_code", existing, context)
        return self.code

    async def research(self, existing="", context="", on_log=None):
        self._record("research", existing, context)
        if on_log:
            on_log("INITIALIZING TARGETED THREAT RECONNAISSANCE...")
        return self.research_result

    async def browse(self, url, on_log=None):
        self._record("browse", url)
        return self.browse_result

    async def scan(self, definitions, on_log=None):
        self._record("scan", list(definitions))
        if not definitions:
            return "SCAN ABORTED: No exploit definitions found."
        return self.scan_report

    async def chat(self, history, message, context=""):
        self._record("chat", message, context)
        if self.chat_responses:
            return self.chat_responses.pop(0)
        return ChatResponse(text="Acknowledged.")

    async def health_check(self) -> bool:
        return self.error is None


@pytest.fixture
def engine() -> MockEngine:
    return MockEngine()


@pytest.fixture
def keystore(tmp_path: Path, monkeypatch) -> KeyStore:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return KeyStore(tmp_path / "api_key")


@pytest.fixture
def transport(tmp_path: Path) -> FileTransport:
    return FileTransport(tmp_path / "sessions")


@pytest.fixture
def session() -> Session:
    return Session.new()


@pytest.fixture
def small_session() -> Session:
    """A session over a tiny hand-built tree, without the source subtree."""
    tree = Tree(
        children=[
            File(name="readme.txt", content="welcome"),
            Directory(name="docs", children=[File(name="report.md", content="# Report")]),
            Directory(name="repo", children=[File(name="readme.md", content="repo readme")]),
        ]
    )
    return Session(tree=tree)


@pytest.fixture
def interpreter(session, engine, transport, keystore) -> Interpreter:
    return Interpreter(session, engine, transport, keystore)
