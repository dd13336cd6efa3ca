"""Entry point: python -m retrodeck [shell|health]

- No args / "shell": Interactive terminal shell
- "health":          Check that the engine answers with the stored key
"""

from __future__ import annotations

import asyncio
import logging
import sys

from retrodeck.config import RetrodeckConfig, load_config
from retrodeck.engines.base import Engine


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_engine(config: RetrodeckConfig, keystore) -> Engine:
    if config.engine.name != "anthropic_api":
        raise SystemExit(f"Unknown engine: {config.engine.name}")

    from retrodeck.engines.anthropic_api import AnthropicAPIEngine

    return AnthropicAPIEngine(
        key_provider=keystore.get,
        model=config.engine.model,
        max_tokens=config.engine.max_tokens,
        timeout=config.engine.timeout,
    )


def _run_shell() -> None:
    """Interactive terminal shell."""
    config = load_config()
    _setup_logging(config.log_level)

    from retrodeck.connectors.cli import CLIConnector
    from retrodeck.core import Retrodeck

    deck = Retrodeck(config)
    deck.add_engine(_build_engine(config, deck.keystore))

    cli = CLIConnector(cwd_provider=lambda: deck.session.cwd)
    deck.add_connector(cli)
    cli.render(deck.session.lines[-1])

    try:
        asyncio.run(deck.start())
    except KeyboardInterrupt:
        pass


def _run_health() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from retrodeck.keystore import KeyStore

    engine = _build_engine(config, KeyStore(config.key_file))
    ok = asyncio.run(engine.health_check())
    print(f"{engine.name}: {'OK' if ok else 'UNAVAILABLE'}")
    sys.exit(0 if ok else 1)


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "shell"

    if cmd in ("shell", "repl"):
        _run_shell()
    elif cmd == "health":
        _run_health()
    else:
        print("Usage: python -m retrodeck [shell|health]")
        print("  shell   Interactive terminal shell (default)")
        print("  health  Check the engine and API key")
        sys.exit(1)


if __name__ == "__main__":
    main()
