"""Tests for the RetroDeck hub and the CLI connector."""

import asyncio
import io

import pytest
from pathlib import Path

from retrodeck.config import EngineConfig, RetrodeckConfig
from retrodeck.connectors.base import Connector
from retrodeck.connectors.cli import CLIConnector
from retrodeck.core import Retrodeck
from retrodeck.session import TerminalLine


class ScriptedConnector:
    """Feeds a fixed list of lines, records everything rendered."""

    def __init__(self, lines: list[str]):
        self._lines = lines
        self.rendered: list[TerminalLine] = []
        self.stopped = False

    @property
    def name(self) -> str:
        return "scripted"

    async def start(self, handler, completer=None) -> None:
        for line in self._lines:
            await handler(line)

    async def stop(self) -> None:
        self.stopped = True

    def render(self, line: TerminalLine) -> None:
        self.rendered.append(line)


@pytest.fixture
def config(tmp_path: Path) -> RetrodeckConfig:
    return RetrodeckConfig(
        engine=EngineConfig(name="mock"),
        state_dir=tmp_path,
        export_dir=tmp_path / "sessions",
        key_file=tmp_path / "api_key",
    )


@pytest.fixture
def deck(config, engine, small_session, keystore) -> Retrodeck:
    d = Retrodeck(config, session=small_session, keystore=keystore)
    d.add_engine(engine)
    return d


class TestRetrodeckCore:
    @pytest.mark.asyncio
    async def test_handle_line(self, deck: Retrodeck):
        lines = await deck.handle_line("mkdir lab")
        assert lines[-1].text == "Created: lab"
        assert deck.session.tree.get("lab") is not None

    @pytest.mark.asyncio
    async def test_export_goes_to_configured_dir(self, deck: Retrodeck, config):
        await deck.handle_line("export")
        assert deck.transport.latest().parent == config.export_dir

    def test_complete(self, deck: Retrodeck):
        assert deck.complete("ver") == "sion"

    @pytest.mark.asyncio
    async def test_connector_receives_lines(self, deck: Retrodeck):
        connector = ScriptedConnector(["mkdir lab", "cd lab", "ls"])
        assert isinstance(connector, Connector)
        deck.add_connector(connector)

        await deck.start()

        rendered = [line.text for line in connector.rendered]
        assert rendered == ["mkdir lab", "Created: lab", "cd lab", "ls", "(empty)"]

    @pytest.mark.asyncio
    async def test_stop(self, deck: Retrodeck):
        connector = ScriptedConnector([])
        deck.add_connector(connector)
        await deck.stop()
        assert connector.stopped

    @pytest.mark.asyncio
    async def test_start_without_engine(self, config):
        with pytest.raises(RuntimeError, match="No engines"):
            await Retrodeck(config).start()

    @pytest.mark.asyncio
    async def test_unknown_engine_name(self, config, engine):
        config.engine.name = "other"
        deck = Retrodeck(config)
        deck.add_engine(engine)
        with pytest.raises(RuntimeError, match="not registered"):
            await deck.handle_line("help")


class TestCLIConnector:
    def test_render_skips_input(self):
        out = io.StringIO()
        cli = CLIConnector(stream=out, color=False)
        cli.render(TerminalLine(text="ls", kind="input"))
        cli.render(TerminalLine(text="[DIR]    docs"))
        assert out.getvalue() == "[DIR]    docs\n"

    def test_render_colors_by_kind(self):
        out = io.StringIO()
        cli = CLIConnector(stream=out, color=True)
        cli.render(TerminalLine(text="boom", kind="error"))
        assert out.getvalue() == "\033[31mboom\033[0m\n"

    @pytest.mark.asyncio
    async def test_repl_loop(self, monkeypatch):
        out = io.StringIO()
        cli = CLIConnector(stream=out, color=False)
        inputs = iter(["help", "  ", "status", "exit"])
        monkeypatch.setattr(cli, "_read_input", lambda: next(inputs))
        handled: list[str] = []

        async def handler(text):
            handled.append(text)
            return []

        await cli.start(handler)
        assert handled == ["help", "status"]
        assert out.getvalue().endswith("Bye!\n")

    @pytest.mark.asyncio
    async def test_eof_ends_loop(self, monkeypatch):
        cli = CLIConnector(stream=io.StringIO(), color=False)
        monkeypatch.setattr(cli, "_read_input", lambda: None)

        async def handler(text):
            raise AssertionError("should not be called")

        await asyncio.wait_for(cli.start(handler), timeout=5)
