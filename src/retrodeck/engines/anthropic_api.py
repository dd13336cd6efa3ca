"""Anthropic API engine: document generation, web research and tool-using chat."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from retrodeck.engines.base import (
    NO_CHANGES,
    BrowseResult,
    ChatMessage,
    ChatResponse,
    CollaboratorError,
    LogCallback,
    MalformedResponseError,
    MissingCredentialError,
    ResearchResult,
    ToolCall,
)

logger = logging.getLogger(__name__)

AGENT_HOPPER_CONTEXT = """
Context: AgentHopper is a Proof-of-Concept (PoC) AI worm/virus.
Key characteristics:
- It uses a Large Language Model (LLM) to make decisions.
- It can execute tools (like SSH, file system operations) to move laterally.
- It parses its environment to craft specific payloads or commands.
- It is autonomous and can "reason" about how to infect the next host.
- It highlights the risks of giving LLM agents unconstrained execution environments (RCE).
"""

AGENT_SYSTEM_PROMPT = """\
You are the "NetSec AI Core", an advanced cybersecurity agent embedded in the NetSec RetroDeck OS.
Your capabilities include analyzing threats and DIRECTLY MODIFYING the virtual file system via tools.

RULES:
1. You are concise and technical.
2. When asked to code or fix something, use 'write' to actually apply the changes to the VFS.
3. Always verify file existence with 'list' or 'read' before editing if unsure.
4. Maintain the "retro cyber-security" persona.
5. Context: The user is analyzing 'AgentHopper' (AI Worm).

SYSTEM KNOWLEDGE BASE (Research, Browsed Data, Specs):
{context}
"""

FALLBACK_QUERIES = [
    "AgentHopper exploit code",
    "Morris II AI worm PoC",
    "AI prompt injection defense",
    "LLM worm propagation",
]

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}

VFS_TOOLS = [
    {
        "name": "list",
        "description": "List files in a directory of the Virtual File System.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path, e.g. '/src' or '/'"}
            },
            "required": ["path"],
        },
    },
    {
        "name": "read",
        "description": "Read the content of a file from the Virtual File System.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Full path of the file to read"}
            },
            "required": ["path"],
        },
    },
    {
        "name": "write",
        "description": "Write content to a file in an existing directory of the Virtual File System.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Full path of the file to write"},
                "content": {"type": "string", "description": "The full file content"},
            },
            "required": ["path", "content"],
        },
    },
]

_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^)]+)\)")


def clean_code(text: str) -> str:
    """Strip a surrounding markdown code fence."""
    if not text:
        return ""
    clean = text.strip()
    if clean.startswith("```"):
        clean = re.sub(r"^```[a-zA-Z]*\n", "", clean)
        clean = re.sub(r"\n?```$", "", clean)
    return clean.strip()


def _default_client(api_key: str, timeout: int) -> Any:
    try:
        import anthropic
    except ImportError:
        raise ImportError("anthropic package required. Install with: pip install retrodeck")
    return anthropic.Anthropic(api_key=api_key, timeout=timeout)


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API via the `anthropic` SDK.

    The key is looked up on every call so `setkey` takes effect without a
    restart.
    """

    key_provider: Callable[[], str | None]
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    timeout: int = 120
    client_factory: Callable[[str, int], Any] = _default_client

    _clients: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def name(self) -> str:
        return "anthropic_api"

    # ── Transport ─────────────────────────────────────────────

    def _client(self) -> Any:
        key = self.key_provider()
        if not key:
            raise MissingCredentialError()
        if key not in self._clients:
            self._clients = {key: self.client_factory(key, self.timeout)}
        return self._clients[key]

    async def _create(self, **kwargs: Any) -> Any:
        client = self._client()
        kwargs.setdefault("model", self.model)
        kwargs.setdefault("max_tokens", self.max_tokens)
        try:
            return await asyncio.to_thread(client.messages.create, **kwargs)
        except Exception as e:
            logger.error("Anthropic API error: %s", e)
            raise CollaboratorError(f"Anthropic API error: {e}") from e

    async def _complete(self, prompt: str, **kwargs: Any) -> str:
        response = await self._create(messages=[{"role": "user", "content": prompt}], **kwargs)
        return _text_of(response)

    async def _complete_json(self, prompt: str, **kwargs: Any) -> Any:
        text = await self._complete(prompt + "\nRespond with JSON only.", **kwargs)
        try:
            return json.loads(clean_code(text))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Malformed JSON from model: {e}") from e

    # ── Generation ────────────────────────────────────────────

    async def generate_document(
        self, filename: str, topic: str, existing: str = "", context: str = ""
    ) -> str:
        instructions = (
            "ACT AS: A Senior Cybersecurity Researcher.\n"
            f'TASK: Write a detailed technical document in Markdown format for: "{filename}".\n'
            f"TOPIC: {topic}\n"
        )
        if context:
            instructions += (
                "\nADDITIONAL CONTEXT FROM BROWSED WEBPAGES:\n"
                f"{context[:30000]}\n\n"
                "INSTRUCTION: Incorporate relevant findings from the browsed context into the documentation.\n"
            )
        if existing:
            instructions += (
                "\nCONTEXT: You are updating an existing document with new findings.\n"
                f"EXISTING CONTENT:\n{existing[:15000]}\n\n"
                "INSTRUCTION: Enhance the existing content. Add new sections if missing. "
                "Improve technical accuracy.\n"
                f'IF NO CHANGES ARE NEEDED, return exactly: "{NO_CHANGES}"\n'
            )
        prompt = (
            f"{AGENT_HOPPER_CONTEXT}\n{instructions}\n"
            "REQUIREMENTS:\n"
            "- Use professional technical language.\n"
            "- Return ONLY the markdown content.\n"
        )
        text = await self._complete(prompt)
        if NO_CHANGES in text:
            return NO_CHANGES
        return text

    async def generate_code(self, existing: str = "", context: str = "") -> str:
        prompt = (
            f"{AGENT_HOPPER_CONTEXT}\n"
            "ACT AS: A Security Engineer.\n"
            'TASK: Create/Update a Python script for "Anti-Virus" / "IDS" against AgentHopper.\n'
        )
        if context:
            prompt += (
                "\nADDITIONAL CONTEXT FROM BROWSED WEBPAGES:\n"
                f"{context[:30000]}\n\n"
                "INSTRUCTION: Use any specific signatures, IoCs, or behaviors found in the "
                "browsed data to improve the detection logic.\n"
            )
        if existing:
            prompt += (
                f"\nEXISTING CODE:\n{existing}\n\n"
                "INSTRUCTION: Optimize the existing code. Add more heuristic checks. "
                "Fix any potential bugs.\n"
                f'IF THE CODE IS ALREADY OPTIMAL, return: "{NO_CHANGES}"\n'
            )
        else:
            prompt += (
                "\nThe script should:\n"
                "1. Monitor for suspicious shell history containing LLM prompts.\n"
                "2. Check for high-frequency API calls to known LLM endpoints.\n"
                '3. Scan for "self-replicating" scripts.\n'
            )
        prompt += "\nOutput ONLY valid Python code."

        text = await self._complete(prompt)
        if NO_CHANGES in text:
            return NO_CHANGES
        return clean_code(text)

    async def research(
        self, existing: str = "", context: str = "", on_log: LogCallback | None = None
    ) -> ResearchResult:
        log = on_log or (lambda msg: None)
        log("INITIALIZING TARGETED THREAT RECONNAISSANCE...")
        if existing:
            log("> LOADING EXISTING INTEL FOR INCREMENTAL UPDATE...")

        # 1. Query planning
        phase = "We have existing research. Find NEW vectors or updates." if existing else "Initial research phase."
        plan_prompt = (
            f"{AGENT_HOPPER_CONTEXT}\nCONTEXT: {phase}\n"
            + (f"ADDITIONAL CONTEXT FROM BROWSING SESSION: {context[:10000]}\n" if context else "")
            + "\nACT AS: Cyber Intelligence Planner.\n"
            'TASK: Generate 4 specific technical search queries for "AgentHopper" or "Morris II".\n'
            "OUTPUT: JSON array of strings.\n"
        )
        try:
            queries = await self._complete_json(plan_prompt)
        except MalformedResponseError:
            queries = None
        if not isinstance(queries, list) or not all(isinstance(q, str) for q in queries):
            queries = list(FALLBACK_QUERIES)
        for q in queries:
            log(f"> QUEUED VECTOR: {q}")

        # 2. Search and synthesis
        log("EXECUTING DEEP WEB SEARCH PROTOCOLS...")
        research_prompt = (
            f"{AGENT_HOPPER_CONTEXT}\n"
            f"VECTORS: {json.dumps(queries)}\n"
            f"EXISTING INTEL SUMMARY: {existing[:1000]}...\n"
            + (f"\nLOCAL BROWSING DATA: {context[:20000]}\n" if context else "")
            + "\nACT AS: Senior Threat Researcher.\n"
            "TASK: Perform searches. Analyze results. Combine with LOCAL BROWSING DATA.\n"
            "OUTPUT: Comprehensive Markdown Technical Report.\n"
        )
        response = await self._create(
            messages=[{"role": "user", "content": research_prompt}],
            tools=[WEB_SEARCH_TOOL],
        )
        log("SYNTHESIZING INTELLIGENCE...")
        report = _text_of(response) or "No intelligence gathered."

        sources = _search_sources(response)
        if sources:
            log(f"> DATA ACQUIRED: {len(sources)} verified sources.")
            report += "\n\n## NEW VERIFIED SOURCES\n"
            for title, url in sources:
                report += f"- [{title or 'Source'}]({url})\n"

        # 3. Artifacts
        log("EXTRACTING EXPLOIT DEFINITIONS & ARTIFACTS...")
        artifacts: list[dict[str, str]] = []
        artifact_prompt = (
            "CONTEXT: Research phase complete.\n"
            f"REPORT: {report[:10000]}\n\n"
            "TASK: Generate 2-3 technical files related to this threat for our toolkit.\n"
            "1. An exploit definition file (JSON)\n"
            "2. A detection rule (YARA or SIG)\n"
            "3. A patch script (Python/Bash)\n\n"
            'OUTPUT: JSON Array: [{"name": "filename", "content": "string"}]\n'
        )
        try:
            raw = await self._complete_json(artifact_prompt)
            if not isinstance(raw, list):
                raise MalformedResponseError("Malformed JSON from model: expected an array")
            for item in raw:
                if isinstance(item, dict) and isinstance(item.get("name"), str) and isinstance(
                    item.get("content"), str
                ):
                    artifacts.append({"name": item["name"], "content": item["content"]})
                    log(f"> GENERATED ARTIFACT: {item['name']}")
        except MissingCredentialError:
            raise
        except CollaboratorError as e:
            log(f"WARN: Artifact gen failed: {e}")

        return ResearchResult(report=report, artifacts=artifacts, is_update=bool(existing))

    async def browse(self, url: str, on_log: LogCallback | None = None) -> BrowseResult:
        log = on_log or (lambda msg: None)
        log(f"CONNECTING TO: {url}...")
        prompt = (
            "ACT AS: A Text-Based Web Browser / Proxy.\n"
            f'TASK: "Visit" the URL: {url}.\n\n'
            "1. Summarize the MAIN content of the page in clean Markdown.\n"
            "2. Extract all interesting hyperlinks in a separate section at the bottom.\n"
            "3. If the page seems to be about security exploits, highlight code blocks.\n\n"
            "FORMAT:\n# Page Title\n[Content Summary/Article Body]\n\n## Detected Links\n- [Link Text](url)\n"
        )
        response = await self._create(
            messages=[{"role": "user", "content": prompt}],
            tools=[WEB_SEARCH_TOOL],
        )
        text = _text_of(response) or "Connection closed. No data received."
        links = [match.group(2) for match in _LINK_RE.finditer(text)]
        return BrowseResult(content=text, links=links)

    async def scan(self, definitions: list[str], on_log: LogCallback | None = None) -> str:
        log = on_log or (lambda msg: None)
        self._client()
        log("INITIALIZING LOCAL VULNERABILITY SCANNER...")
        if not definitions:
            return (
                "SCAN ABORTED: No exploit definitions found. "
                "Run 'research' first to populate the database."
            )
        log(f"LOADED {len(definitions)} SIGNATURES FROM DATABASE.")
        prompt = (
            "ACT AS: Vulnerability Scanner Engine.\n"
            f"DEFINITIONS: {json.dumps(definitions)}\n\n"
            "TASK: Simulate a scan of a standard Linux server.\n"
            "Based on the definitions provided, generate a Scan Report.\n"
            "Randomly determine if the system is VULNERABLE to 1 or 2 of the definitions.\n\n"
            "OUTPUT: Text report.\n"
        )
        return await self._complete(prompt) or "Scan completed. No output."

    # ── Conversation ──────────────────────────────────────────

    async def chat(
        self, history: list[ChatMessage], message: str, context: str = ""
    ) -> ChatResponse:
        system = AGENT_SYSTEM_PROMPT.format(
            context=context[:100000] if context else "No additional system context available."
        )
        response = await self._create(
            system=system,
            messages=_to_messages(history, message),
            tools=VFS_TOOLS,
        )
        tool_calls = [
            ToolCall(name=block.name, input=dict(block.input or {}), id=getattr(block, "id", ""))
            for block in response.content or []
            if getattr(block, "type", None) == "tool_use"
        ]
        return ChatResponse(
            text=_text_of(response),
            tool_calls=tool_calls,
            model=getattr(response, "model", None),
        )

    async def health_check(self) -> bool:
        try:
            await self._complete("ping", max_tokens=10)
            return True
        except CollaboratorError:
            return False


def _text_of(response: Any) -> str:
    return "".join(
        block.text for block in response.content or [] if getattr(block, "type", None) == "text"
    ).strip()


def _search_sources(response: Any) -> list[tuple[str, str]]:
    """(title, url) pairs from web_search result blocks, first occurrence wins."""
    seen: set[str] = set()
    sources: list[tuple[str, str]] = []
    for block in response.content or []:
        if getattr(block, "type", None) != "web_search_tool_result":
            continue
        results = getattr(block, "content", None)
        if not isinstance(results, list):
            continue
        for result in results:
            url = getattr(result, "url", None)
            if url and url not in seen:
                seen.add(url)
                sources.append((getattr(result, "title", "") or "", url))
    return sources


def _to_messages(history: list[ChatMessage], message: str) -> list[dict]:
    """Map chat history to API messages, merging consecutive same-role turns."""
    messages: list[dict] = []
    for msg in [*history, ChatMessage(role="user", text=message)]:
        role = "assistant" if msg.role == "model" else "user"
        if not msg.text:
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + msg.text
        else:
            messages.append({"role": role, "content": msg.text})
    # The API requires the first turn to come from the user
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages
