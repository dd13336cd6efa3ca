"""Command interpreter: parses input lines and runs built-in verbs.

State machine:
    IDLE --short verb--> IDLE
    IDLE --long verb--> Busy(kind) --> COMPLETE | ERROR --> IDLE

Only one long-running verb may be in flight; another one is rejected with
a BUSY line, never queued.
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import frontmatter

from retrodeck.agent import SecurityAgent
from retrodeck.codec import SnapshotError, bump_version, dumps, loads, restore, serialize, snapshot_filename
from retrodeck.config import APP_VERSION
from retrodeck.engines.base import NO_CHANGES, CollaboratorError, MissingCredentialError
from retrodeck.session import LineKind, ShellState, TerminalLine
from retrodeck.shell.completion import suggest
from retrodeck.vfs.node import ROOT, Directory, File, is_valid_name
from retrodeck.vfs.ops import WriteOutcome, ensure_directory, gather_context, make_directory, walk_files, write_file
from retrodeck.vfs.paths import (
    find_by_name_substring,
    list_children,
    lookup_directory,
    lookup_file,
    resolve,
    segments,
    split_path,
)

if TYPE_CHECKING:
    from retrodeck.engines.base import Engine
    from retrodeck.keystore import KeyStore
    from retrodeck.session import Session
    from retrodeck.transport import Transport

logger = logging.getLogger(__name__)

# Table order matters: completion picks the first of equally short verbs.
COMMANDS: tuple[str, ...] = (
    "help",
    "about",
    "version",
    "clear",
    "ls",
    "cd",
    "mkdir",
    "cat",
    "write",
    "find",
    "status",
    "setkey",
    "run",
    "analyze",
    "research",
    "scan",
    "browse",
    "ask",
    "export",
    "load",
)

HELP_TEXT = """AVAILABLE COMMANDS:
  ls, cd, mkdir, cat, find - File System Ops
  write    - Write a file: write [path] [content]
  analyze  - Heuristic Threat Analysis (Incremental)
  research - Deep Web Recon & Exploit Gen
  scan     - Vulnerability Scanner
  browse   - Text-Based Web Browser
  ask      - Talk to the NetSec AI agent
  run      - Execute Scripts
  status   - Engine state, version, key
  setkey   - Store the API key
  export   - Save Session & Source
  load     - Restore Session
  about    - App Info
  version  - Check Version"""

ABOUT_TEXT = (
    "NetSec RetroDeck [CLASSIFIED]\n"
    "A unified threat analysis and rapid prototyping environment for AgentHopper class vectors.\n"
    "Includes: AI-driven Research, Heuristics Engine, Virtual FS, and Text-Web Proxy."
)

KEY_GUIDANCE = "ERROR: API KEY REQUIRED.\nRun 'setkey <YOUR_ANTHROPIC_API_KEY>' to configure the agent."

ANALYSIS_DOC = "/docs/agent_hopper_analysis.md"
ARCH_DOC = "/docs/specs/defense_architecture.md"
AV_SCRIPT = "/agent_killer.py"
INTEL_DOC = "/docs/deep_dive_intel.md"
EXPLOITS_DIR = "/exploits"
BROWSE_DIR = "/browse"
DOCS_DIR = "/docs"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


class ShellError(Exception):
    """A command cannot complete; reported as one error line."""


class CommandOutput:
    """Collects the lines one command appends to the session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.lines: list[TerminalLine] = []

    def emit(self, text: str, kind: LineKind = "output") -> None:
        self.lines.append(self.session.add_line(text, kind))

    def system(self, text: str) -> None:
        self.emit(text, "system")

    def success(self, text: str) -> None:
        self.emit(text, "success")

    def error(self, text: str) -> None:
        self.emit(text, "error")


def safe_filename(url: str) -> str:
    return _UNSAFE_CHARS.sub("_", url)[:50] + ".md"


def _rest(raw: str, skip: int) -> str:
    """Raw remainder of the line after ``skip`` tokens, one pair of quotes stripped."""
    parts = raw.strip().split(None, skip)
    rest = parts[skip] if len(parts) > skip else ""
    if len(rest) >= 2 and rest[0] == rest[-1] and rest[0] in "\"'":
        rest = rest[1:-1]
    return rest


Handler = Callable[[CommandOutput, list[str], str], "Awaitable[None] | None"]


class Interpreter:
    """Runs built-in commands against a session."""

    def __init__(
        self,
        session: Session,
        engine: Engine,
        transport: Transport,
        keystore: KeyStore,
        max_tool_rounds: int = 4,
    ) -> None:
        self.session = session
        self.engine = engine
        self.transport = transport
        self.keystore = keystore
        self.agent = SecurityAgent(engine, session, max_rounds=max_tool_rounds)
        self._handlers: dict[str, Handler] = {
            verb: getattr(self, f"_cmd_{verb}") for verb in COMMANDS
        }

    # ── Entry points ──────────────────────────────────────────

    def complete(self, text: str) -> str:
        return suggest(text, COMMANDS, self.session.cwd, self.session.tree)

    async def execute(self, raw: str) -> list[TerminalLine]:
        """Run one input line. Returns the lines it produced."""
        out = CommandOutput(self.session)
        out.emit(raw, "input")
        args = raw.split()
        if not args:
            return out.lines

        verb = args[0].lower()
        handler = self._handlers.get(verb)
        if handler is None:
            out.error(f"Unknown command: {verb}")
            return out.lines

        try:
            result = handler(out, args[1:], raw)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception("Command %r failed", verb)
            out.error(f"CRITICAL ERROR: {e}")
        return out.lines

    # ── Long-running machinery ────────────────────────────────

    async def _long_running(
        self,
        out: CommandOutput,
        state: ShellState,
        label: str,
        operation: Callable[[CommandOutput], Awaitable[None]],
    ) -> None:
        # The busy check and transition happen before the first await.
        if self.session.busy:
            out.error("BUSY.")
            return
        self.session.state = state
        logger.info("State -> %s", state.value)

        outcome = ShellState.ERROR
        try:
            await operation(out)
            outcome = ShellState.COMPLETE
        except MissingCredentialError:
            out.error(KEY_GUIDANCE)
        except (CollaboratorError, ShellError) as e:
            logger.warning("%s failed: %s", label, e)
            out.error(f"{label} FAILED: {e}")
        finally:
            self.session.last_outcome = outcome
            self.session.state = ShellState.IDLE
            logger.info("State -> IDLE (%s)", outcome.value)

    def _file_text(self, path: str) -> str:
        node = lookup_file(self.session.tree, path)
        return node.text if node else ""

    def _store_all(self, entries: list[tuple[str, str]]) -> None:
        """Write generated files, creating parent directories.

        All targets are checked first so a blocked path writes nothing.
        """
        tree = self.session.tree
        for path, _ in entries:
            current = tree
            for part in segments(path)[:-1]:
                node = current.get(part)
                if node is None:
                    break
                if not isinstance(node, Directory):
                    raise ShellError(f"cannot store {path}: /{part} is not a directory")
                current = node
            else:
                if isinstance(current.get(split_path(path)[1]), Directory):
                    raise ShellError(f"cannot store {path}: it is a directory")

        for path, content in entries:
            parent_path, name = split_path(path)
            parent = ensure_directory(tree, parent_path)
            if parent is None:
                raise ShellError(f"cannot store {path}")
            parent.upsert(File(name=name, content=content))

    # ── Informational ─────────────────────────────────────────

    def _cmd_help(self, out: CommandOutput, args: list[str], raw: str) -> None:
        out.emit(HELP_TEXT)

    def _cmd_about(self, out: CommandOutput, args: list[str], raw: str) -> None:
        out.system(ABOUT_TEXT)

    def _cmd_version(self, out: CommandOutput, args: list[str], raw: str) -> None:
        out.system(f"CURRENT VERSION: {self.session.version}")
        if self.session.loaded_filename:
            out.system(f"LOADED IMAGE: {self.session.loaded_filename}")

    def _cmd_clear(self, out: CommandOutput, args: list[str], raw: str) -> None:
        self.session.clear()

    def _cmd_status(self, out: CommandOutput, args: list[str], raw: str) -> None:
        session = self.session
        state = session.state.value
        if not session.busy and session.last_outcome is not None:
            state += f" (LAST: {session.last_outcome.value})"
        out.emit(f"STATE: {state}")
        out.emit(f"VER: {session.version}")
        out.emit(f"CWD: {session.cwd}")
        out.emit(f"KEY: {self.keystore.source()}")
        out.emit(f"FILES: {sum(1 for _ in walk_files(session.tree))}")
        if session.active_file is not None:
            out.emit(f"OPEN: {session.active_file.path}")

    def _cmd_setkey(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: setkey <KEY>")
            return
        try:
            self.keystore.set(args[0])
        except OSError as e:
            out.error(f"setkey: {e}")
            return
        out.success("KEY UPDATED.")

    # ── File system ───────────────────────────────────────────

    def _cmd_ls(self, out: CommandOutput, args: list[str], raw: str) -> None:
        target = resolve(self.session.cwd, args[0]) if args else self.session.cwd
        directory = lookup_directory(self.session.tree, target)
        if directory is None:
            out.error("Access denied.")
            return
        for line in list_children(directory):
            out.emit(line)

    def _cmd_cd(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            self.session.cwd = ROOT
            return
        target = resolve(self.session.cwd, args[0])
        if lookup_directory(self.session.tree, target) is None:
            out.error(f"cd: no such directory: {args[0]}")
            return
        self.session.cwd = target

    def _cmd_mkdir(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: mkdir [name]")
            return
        name = args[0]
        if not is_valid_name(name):
            out.error(f"mkdir: invalid name: {name}")
            return
        parent = lookup_directory(self.session.tree, self.session.cwd)
        if parent is None:
            out.error(f"mkdir: no such directory: {self.session.cwd}")
            return
        if name in parent:
            out.error(f"mkdir: exists: {name}")
            return
        make_directory(parent, name)
        out.success(f"Created: {name}")

    def _cmd_cat(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: cat [file]")
            return
        node = lookup_file(self.session.tree, resolve(self.session.cwd, args[0]))
        if node is None:
            out.error(f"cat: not found: {args[0]}")
            return
        self.session.active_file = node
        out.success(f"READING {node.name}...")
        out.emit(node.text)

    def _cmd_write(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: write [path] [content]")
            return
        target = resolve(self.session.cwd, args[0])
        outcome = write_file(self.session.tree, target, _rest(raw, 2))
        if outcome is WriteOutcome.WRITTEN:
            out.success(f"Wrote: {target}")
        elif outcome is WriteOutcome.IS_DIRECTORY:
            out.error(f"write: is a directory: {args[0]}")
        elif outcome is WriteOutcome.INVALID_NAME:
            out.error(f"write: invalid path: {args[0]}")
        # NO_PARENT: intermediate directories are not created, nothing to report

    def _cmd_find(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: find [name]")
            return
        results = find_by_name_substring(self.session.tree, args[0])
        if not results:
            out.system("No matches found.")
            return
        for path in results:
            out.emit(path)

    def _cmd_run(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: run [script]")
            return
        script = lookup_file(self.session.tree, resolve(self.session.cwd, args[0]))
        if script is None or not script.name.endswith(".py"):
            out.error(f"run: invalid target: {args[0]}")
            return
        out.system(f"SPAWNING PYTHON PROCESS: {script.name}")
        out.system("[PROC] PID 1337 started.")
        out.system("[PROC] Importing modules...")
        out.success("[STDOUT] Execution complete.")

    # ── Collaborator verbs ────────────────────────────────────

    async def _cmd_analyze(self, out: CommandOutput, args: list[str], raw: str) -> None:
        await self._long_running(out, ShellState.ANALYZING, "ANALYSIS", self._analyze)

    async def _analyze(self, out: CommandOutput) -> None:
        out.system("INITIATING HEURISTIC ANALYSIS ENGINE...")
        context = gather_context(self.session.tree, BROWSE_DIR)
        if context:
            out.system("LOADING BROWSING CONTEXT FOR ANALYSIS...")

        existing_doc = self._file_text(ANALYSIS_DOC)
        existing_arch = self._file_text(ARCH_DOC)
        existing_av = self._file_text(AV_SCRIPT)
        if existing_doc:
            out.system("DETECTED EXISTING ANALYSIS DATA. RUNNING INCREMENTAL UPDATE...")

        self.session.state = ShellState.GENERATING_DOCS
        out.system("PROCESSING RESEARCH DOCUMENTATION...")
        research_doc = await self.engine.generate_document(
            "research_analysis.md",
            "Comprehensive analysis of AgentHopper exploit mechanics.",
            existing_doc,
            context,
        )

        self.session.state = ShellState.GENERATING_SPECS
        out.system("PROCESSING DEFENSE ARCHITECTURE SPECS...")
        arch_doc = await self.engine.generate_document(
            "defense_architecture.md",
            "Defense architecture specification against autonomous AI agents.",
            existing_arch,
            context,
        )

        out.system("OPTIMIZING ANTI-VIRUS COUNTERMEASURES...")
        av_code = await self.engine.generate_code(existing_av, context)

        if research_doc == NO_CHANGES:
            research_doc = existing_doc
        if arch_doc == NO_CHANGES:
            arch_doc = existing_arch
        if av_code == NO_CHANGES:
            av_code = existing_av

        self._store_all(
            [(ANALYSIS_DOC, research_doc), (ARCH_DOC, arch_doc), (AV_SCRIPT, av_code)]
        )
        out.success("ANALYSIS SEQUENCE COMPLETE.")
        if existing_doc and research_doc == existing_doc:
            out.system("NOTICE: No significant changes detected in analysis.")

    async def _cmd_research(self, out: CommandOutput, args: list[str], raw: str) -> None:
        await self._long_running(out, ShellState.RESEARCHING, "RESEARCH", self._research)

    async def _research(self, out: CommandOutput) -> None:
        context = gather_context(self.session.tree, BROWSE_DIR)
        if context:
            out.system("INTEGRATING LOCAL BROWSE DATA INTO INTELLIGENCE MATRIX...")

        existing = self._file_text(INTEL_DOC)
        result = await self.engine.research(existing, context, on_log=out.system)

        entries = [(INTEL_DOC, result.report)]
        for artifact in result.artifacts:
            name = artifact.get("name", "")
            if not is_valid_name(name):
                out.system(f"WARN: Skipped artifact with invalid name: {name!r}")
                continue
            entries.append((f"{EXPLOITS_DIR}/{name}", artifact.get("content", "")))

        self._store_all(entries)
        for path, _ in entries[1:]:
            out.system(f"GENERATED EXPLOIT/TOOL: {path}")
        out.success(f"RESEARCH {'UPDATE' if result.is_update else 'COMPLETE'}. INTEL SAVED.")

    async def _cmd_scan(self, out: CommandOutput, args: list[str], raw: str) -> None:
        await self._long_running(out, ShellState.SCANNING, "SCAN", self._scan)

    async def _scan(self, out: CommandOutput) -> None:
        exploits = lookup_directory(self.session.tree, EXPLOITS_DIR)
        definitions = [node.name for node in exploits.children] if exploits else []
        report = await self.engine.scan(definitions, on_log=out.system)
        out.emit("--- SCAN REPORT ---")
        out.emit(report, "error" if "VULNERABLE" in report else "success")

    async def _cmd_browse(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: browse [url]")
            return
        url = args[0]

        async def _browse(out: CommandOutput) -> None:
            result = await self.engine.browse(url, on_log=out.system)
            out.success(f"LOADED: {url}")
            out.emit(result.content)

            name = safe_filename(url)
            post = frontmatter.Post(
                result.content,
                source=url,
                fetched=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                links=result.links,
            )
            self._store_all([(f"{BROWSE_DIR}/{name}", frontmatter.dumps(post))])
            out.system(f"CACHED: {BROWSE_DIR}/{name}")

        await self._long_running(out, ShellState.BROWSING, "BROWSE", _browse)

    async def _cmd_ask(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if not args:
            out.error("Usage: ask [message]")
            return
        message = _rest(raw, 1)

        async def _ask(out: CommandOutput) -> None:
            context = "\n\n".join(
                part
                for part in (
                    gather_context(self.session.tree, DOCS_DIR),
                    gather_context(self.session.tree, BROWSE_DIR),
                )
                if part
            )
            reply = await self.agent.converse(message, context)
            out.emit(reply or "(no response)")

        await self._long_running(out, ShellState.CHATTING, "AGENT", _ask)

    # ── Persistence ───────────────────────────────────────────

    def _cmd_export(self, out: CommandOutput, args: list[str], raw: str) -> None:
        try:
            new_version = bump_version(self.session.version)
            snapshot = serialize(self.session, version=new_version)
            filename = snapshot_filename(new_version, snapshot.timestamp)
            self.transport.export(dumps(snapshot), filename)
        except (OSError, SnapshotError) as e:
            logger.error("Export failed: %s", e)
            out.error(f"EXPORT FAILED: {e}")
            return
        self.session.version = new_version
        out.success(f"SESSION EXPORTED: {filename}")

    def _cmd_load(self, out: CommandOutput, args: list[str], raw: str) -> None:
        if self.session.busy:
            out.error("BUSY.")
            return
        if args:
            name = args[0]
        else:
            latest = self.transport.latest()
            if latest is None:
                out.error("LOAD FAILED: no saved sessions found")
                return
            name = str(latest)

        try:
            snapshot = loads(self.transport.read(name))
        except (OSError, SnapshotError) as e:
            logger.warning("Rejected snapshot %s: %s", name, e)
            out.error(f"LOAD FAILED: {e}")
            return

        injected = restore(self.session, snapshot)
        self.agent.history.clear()
        self.session.loaded_filename = Path(name).name
        integrity = (
            "SOURCE INTEGRITY: RESTORED DEFAULTS (MISSING)"
            if injected
            else "SOURCE INTEGRITY: VERIFIED (USER EDITS PRESERVED)"
        )
        for text in (
            "INITIATING SYSTEM RESTORE...",
            f"READING IMAGE: {self.session.loaded_filename}",
            f"SNAPSHOT VERSION: {snapshot.version}",
            f"CURRENT KERNEL: {APP_VERSION}",
            integrity,
            "SYSTEM REBOOT COMPLETE.",
        ):
            out.system(text)
