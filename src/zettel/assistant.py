"""Completion backend for the ``/ai`` commands.

A thin client for an Ollama-style HTTP API.  Only one route is used::

    POST /api/generate   {"model": ..., "prompt": ..., "stream": false}
                         -> {"response": "..."}

Environment variables (direct kwargs take precedence):
    OLLAMA_URL     – base URL of the server (default http://localhost:11434)
    OLLAMA_MODEL   – model name (default llama3)
"""

from __future__ import annotations

import logging
import os

import httpx

from zettel.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3"

SUMMARIZE_PROMPT = """\
Task: Summarize the following note content in less than 500 chars.
Context: Zettelkasten note.
Content:
{content}
Summary:"""

CUES_PROMPT = """\
Task: Generate 3 active recall questions based on the content.
Constraint: Each question MUST end with a question mark '?'. Max 120 chars each.
Content:
{content}
Questions:"""

DRAFT_PROMPT = """\
Task: Generate a draft note about "{topic}".
Format: Strict Markdown.
Structure:
# Title
Fecha: YYYY-MM-DD
Tipo: idea

## Notas
(Content)

## Cues
- Question?

## Resumen
(Summary)

## Enlaces
- [[related]]
"""


class CompletionClient:
    """Text completion over ``/api/generate``."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        *,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or DEFAULT_URL).rstrip("/")
        self.model = model or os.getenv("OLLAMA_MODEL") or DEFAULT_MODEL
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def complete(self, prompt: str) -> str:
        """Return the model's reply to *prompt*; any failure raises :class:`TransportError`."""
        logger.debug("completion request to %s (model %s)", self.base_url, self.model)
        try:
            r = self._client.post(
                "/api/generate",
                json={"model": self.model, "prompt": prompt, "stream": False},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"completion backend unreachable at {self.base_url}: {exc}") from exc
        if not r.is_success:
            raise TransportError(f"completion backend error: {r.status_code} {r.reason_phrase}")
        try:
            body = r.json()
        except ValueError as exc:
            raise TransportError(f"completion backend returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict) or not isinstance(body.get("response"), str):
            raise TransportError("completion backend reply has no 'response' text")
        return body["response"]

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def summarize(self, content: str) -> str:
        return self.complete(SUMMARIZE_PROMPT.format(content=content))

    def suggest_cues(self, content: str) -> str:
        return self.complete(CUES_PROMPT.format(content=content))

    def draft(self, topic: str) -> str:
        return self.complete(DRAFT_PROMPT.format(topic=topic))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CompletionClient":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
