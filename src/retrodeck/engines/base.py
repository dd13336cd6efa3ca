"""Engine protocol and shared types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

# Progress callback for long-running generation
LogCallback = Callable[[str], None]

# Returned by generate_* when the prior content needs no changes
NO_CHANGES = "NO_CHANGES"


class CollaboratorError(RuntimeError):
    """The engine failed: remote error, timeout or malformed response."""


class MalformedResponseError(CollaboratorError):
    """The engine answered, but not in the expected shape."""


class MissingCredentialError(CollaboratorError):
    """No API key is configured."""

    def __init__(self, message: str = "MISSING_API_KEY") -> None:
        super().__init__(message)


@dataclass
class ResearchResult:
    report: str
    artifacts: list[dict[str, str]] = field(default_factory=list)
    is_update: bool = False


@dataclass
class BrowseResult:
    content: str
    links: list[str] = field(default_factory=list)


@dataclass
class ToolCall:
    """A tool invocation requested by the conversational model."""

    name: Literal["list", "read", "write"] | str
    input: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class ChatMessage:
    role: Literal["user", "model"]
    text: str


@dataclass
class ChatResponse:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str | None = None


@runtime_checkable
class Engine(Protocol):
    """Protocol that all content-generation backends must implement."""

    @property
    def name(self) -> str: ...

    async def generate_document(
        self, filename: str, topic: str, existing: str = "", context: str = ""
    ) -> str:
        """Write or update a markdown document. May return NO_CHANGES."""
        ...

    async def generate_code(self, existing: str = "", context: str = "") -> str:
        """Write or update the countermeasure script. May return NO_CHANGES."""
        ...

    async def research(
        self, existing: str = "", context: str = "", on_log: LogCallback | None = None
    ) -> ResearchResult: ...

    async def browse(self, url: str, on_log: LogCallback | None = None) -> BrowseResult: ...

    async def scan(self, definitions: list[str], on_log: LogCallback | None = None) -> str: ...

    async def chat(
        self, history: list[ChatMessage], message: str, context: str = ""
    ) -> ChatResponse:
        """One conversational round. Tool calls are executed by the caller."""
        ...

    async def health_check(self) -> bool:
        """Check if the engine is available. Returns True if healthy."""
        ...
