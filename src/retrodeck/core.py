"""RetroDeck hub: wires session, engine, transport and connectors.

Responsibilities:
1. Own the single session (tree, history, cwd, state)
2. Engine routing: pick the configured engine by name
3. Hand each command line to the interpreter
4. Stream appended history lines to every connector
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from retrodeck.config import RetrodeckConfig
from retrodeck.keystore import KeyStore
from retrodeck.session import Session, TerminalLine
from retrodeck.shell.interpreter import Interpreter
from retrodeck.transport import FileTransport

if TYPE_CHECKING:
    from retrodeck.connectors.base import Connector
    from retrodeck.engines.base import Engine
    from retrodeck.transport import Transport

logger = logging.getLogger(__name__)


class Retrodeck:
    """Core orchestrator: routes command lines from connectors to the interpreter."""

    def __init__(
        self,
        config: RetrodeckConfig,
        session: Session | None = None,
        transport: Transport | None = None,
        keystore: KeyStore | None = None,
    ) -> None:
        self.config = config
        self.session = session or Session.new()
        self.transport = transport or FileTransport(config.export_dir)
        self.keystore = keystore or KeyStore(config.key_file)
        self._engines: dict[str, Engine] = {}
        self._connectors: list[Connector] = []
        self._interpreter: Interpreter | None = None

    # ── Engine management ─────────────────────────────────────

    def add_engine(self, engine: Engine) -> None:
        self._engines[engine.name] = engine
        self._interpreter = None
        logger.info("Registered engine: %s", engine.name)

    def _get_engine(self, name: str | None = None) -> Engine:
        name = name or self.config.engine.name
        engine = self._engines.get(name)
        if not engine:
            raise RuntimeError(
                f"Engine '{name}' not registered. Available: {list(self._engines)}"
            )
        return engine

    @property
    def interpreter(self) -> Interpreter:
        if self._interpreter is None:
            self._interpreter = Interpreter(
                self.session,
                self._get_engine(),
                self.transport,
                self.keystore,
                max_tool_rounds=self.config.engine.max_tool_rounds,
            )
        return self._interpreter

    # ── Connector management ──────────────────────────────────

    def add_connector(self, connector: Connector) -> None:
        self._connectors.append(connector)
        self.session.subscribe(connector.render)
        logger.info("Registered connector: %s", connector.name)

    # ── Command handling ──────────────────────────────────────

    async def handle_line(self, text: str) -> list[TerminalLine]:
        """Run one command line, the entry point for all connectors."""
        return await self.interpreter.execute(text)

    def complete(self, text: str) -> str:
        return self.interpreter.complete(text)

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        """Start all connectors (each reads command lines)."""
        if not self._engines:
            raise RuntimeError("No engines registered. Call add_engine() first.")

        tasks = [
            connector.start(self.handle_line, self.complete) for connector in self._connectors
        ]
        if tasks:
            await asyncio.gather(*tasks)

    async def stop(self) -> None:
        """Gracefully stop all connectors."""
        for connector in self._connectors:
            await connector.stop()
