"""Local terminal REPL connector."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, TextIO

try:
    import readline
except ImportError:  # Windows without pyreadline: no line editing or Tab completion
    readline = None

if TYPE_CHECKING:
    from retrodeck.connectors.base import Completer, LineHandler
    from retrodeck.session import TerminalLine

logger = logging.getLogger(__name__)

PROMPT = "retrodeck:{cwd}$ "

_COLORS = {
    "system": "\033[36m",
    "error": "\033[31m",
    "success": "\033[32m",
}
_RESET = "\033[0m"
_CLEAR_SCREEN = "\033[2J\033[H"


class CLIConnector:
    """Interactive REPL connector: reads from stdin, writes to stdout."""

    def __init__(
        self,
        stream: TextIO | None = None,
        color: bool | None = None,
        cwd_provider=None,
    ) -> None:
        self._stream = stream or sys.stdout
        self._color = self._stream.isatty() if color is None else color
        self._cwd_provider = cwd_provider or (lambda: "/")
        self._running = False

    @property
    def name(self) -> str:
        return "cli"

    async def start(self, handler: LineHandler, completer: Completer | None = None) -> None:
        self._running = True
        loop = asyncio.get_running_loop()
        if completer is not None:
            self._install_completer(completer)

        self._write("NetSec RetroDeck (type 'help' for commands, 'exit' or Ctrl+D to quit)")
        self._write("-" * 60)

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except KeyboardInterrupt:
                self._write("\nBye!")
                break

            if line is None or line.strip().lower() in ("exit", "quit"):
                self._write("Bye!")
                break

            text = line.strip()
            if not text:
                continue

            await handler(text)
            if text.split()[0].lower() == "clear" and self._color:
                self._stream.write(_CLEAR_SCREEN)
                self._stream.flush()

    def _read_input(self) -> str | None:
        prompt = PROMPT.format(cwd=self._cwd_provider())
        try:
            if sys.stdin.isatty():
                return input(prompt)
            self._stream.write(prompt)
            self._stream.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    def _install_completer(self, completer: Completer) -> None:
        if readline is None:
            logger.info("readline unavailable, Tab completion disabled")
            return

        def complete(text: str, state: int) -> str | None:
            if state > 0:
                return None
            suffix = completer(readline.get_line_buffer())
            return text + suffix if suffix else None

        readline.set_completer_delims(" \t\n")
        readline.set_completer(complete)
        readline.parse_and_bind("tab: complete")

    async def stop(self) -> None:
        self._running = False

    def render(self, line: TerminalLine) -> None:
        # Typed input is already on screen
        if line.kind == "input":
            return
        color = _COLORS.get(line.kind) if self._color else None
        self._write(f"{color}{line.text}{_RESET}" if color else line.text)

    def _write(self, text: str) -> None:
        self._stream.write(text + "\n")
        self._stream.flush()
