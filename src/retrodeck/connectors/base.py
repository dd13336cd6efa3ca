"""Connector protocol and shared types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Coroutine, Protocol, runtime_checkable

if TYPE_CHECKING:
    from retrodeck.session import TerminalLine


# Callback type: core.Retrodeck.handle_line
LineHandler = Callable[[str], Coroutine[None, None, "list[TerminalLine]"]]

# Callback type: core.Retrodeck.complete
Completer = Callable[[str], str]


@runtime_checkable
class Connector(Protocol):
    """Protocol that all input connectors must implement."""

    @property
    def name(self) -> str: ...

    async def start(self, handler: LineHandler, completer: Completer | None = None) -> None:
        """Start reading command lines. Call handler for each one."""
        ...

    async def stop(self) -> None:
        """Gracefully stop the connector."""
        ...

    def render(self, line: TerminalLine) -> None:
        """Show one history line as soon as it is appended."""
        ...
