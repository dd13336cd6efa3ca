"""Conversational security agent with file-system tools.

The model may request `list`, `read` and `write`; they run locally against
the session tree and their results are fed back as plain text. Rounds are
capped per message.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from retrodeck.engines.base import ChatMessage, ToolCall
from retrodeck.vfs.node import ROOT
from retrodeck.vfs.ops import WriteOutcome, write_file
from retrodeck.vfs.paths import list_children, lookup_directory, lookup_file, resolve

if TYPE_CHECKING:
    from retrodeck.engines.base import Engine
    from retrodeck.session import Session

logger = logging.getLogger(__name__)

_PREVIEW = 200


def get_vfs_tools(session: Session) -> dict[str, Callable[..., str]]:
    """Return tool_name -> callable over the live session tree."""

    def list_files(path: str = ROOT) -> str:
        """List files in a directory."""
        target = resolve(ROOT, path)
        directory = lookup_directory(session.tree, target)
        if directory is None:
            return f"Error: Directory {target} not found."
        return f"Files in {target}:\n" + "\n".join(list_children(directory))

    def read_file(path: str) -> str:
        """Read a file's content."""
        target = resolve(ROOT, path)
        node = lookup_file(session.tree, target)
        if node is None:
            return f"Error: File {target} not found."
        return node.text

    def write(path: str, content: str) -> str:
        """Write a file into an existing directory."""
        target = resolve(ROOT, path)
        outcome = write_file(session.tree, target, content)
        if outcome is WriteOutcome.WRITTEN:
            return f"Successfully wrote to {target}"
        if outcome is WriteOutcome.NO_PARENT:
            return f"Error: Parent directory of {target} not found."
        if outcome is WriteOutcome.IS_DIRECTORY:
            return f"Error: {target} is a directory."
        return f"Error: Invalid file name in {target}."

    return {"list": list_files, "read": read_file, "write": write}


class SecurityAgent:
    """Keeps the conversation history and runs the bounded tool loop."""

    def __init__(self, engine: Engine, session: Session, max_rounds: int = 4) -> None:
        self.engine = engine
        self.session = session
        self.max_rounds = max(1, max_rounds)
        self.history: list[ChatMessage] = []

    def execute_tool(self, call: ToolCall) -> str:
        tools = get_vfs_tools(self.session)
        handler = tools.get(call.name)
        if handler is None:
            return f"Error: Unknown tool {call.name}"
        bad = [key for key, value in call.input.items() if not isinstance(value, str)]
        if bad:
            return f"Error: Bad arguments for {call.name}: {', '.join(bad)} must be strings"
        try:
            return handler(**call.input)
        except TypeError as e:
            return f"Error: Bad arguments for {call.name}: {e}"

    async def converse(self, message: str, context: str = "") -> str:
        """Send ``message`` and return the reply with tool results appended."""
        parts: list[str] = []
        prompt = message
        executed = 0

        for _ in range(self.max_rounds):
            response = await self.engine.chat(self.history, prompt, context)
            self.history.append(ChatMessage(role="user", text=prompt))
            self.history.append(ChatMessage(role="model", text=response.text))
            if response.text:
                parts.append(response.text)
            if not response.tool_calls:
                break

            results: list[str] = []
            for call in response.tool_calls:
                result = self.execute_tool(call)
                executed += 1
                logger.info("Agent tool %s(%s)", call.name, json.dumps(call.input)[:80])
                parts.append(f"[TOOL EXEC: {call.name}]\nResult: {result[:_PREVIEW]}")
                results.append(f"[{call.name}] {json.dumps(call.input)}\n{result}")
            prompt = "TOOL RESULTS:\n" + "\n\n".join(results)
        else:
            parts.append(f"(Tool round limit reached: {self.max_rounds})")

        if executed:
            parts.append("(Tasks completed)")
        return "\n\n".join(parts)
