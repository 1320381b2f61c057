"""Client for the chapter summary model.

The summarizer talks to an Ollama-compatible `/generate` endpoint. It is
only ever called from the background summary worker, so it is a plain
blocking client.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

_LOGGER = logging.getLogger("learnhub.summary")

PROMPT_TEMPLATE = (
    "Summarize the following chapter of a course in a concise manner, "
    "I want you to only return the summary:\n\n{text}\n\n"
)


class SummarizerError(RuntimeError):
    """Raised when the model endpoint fails or returns an unusable body."""


class OllamaSummarizer:
    def __init__(self, api_url: str, model: str, timeout_seconds: float = 120.0, transport: Optional[httpx.BaseTransport] = None):
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def summarize(self, text: str) -> str:
        """Return a short summary of `text`."""
        return self._generate(PROMPT_TEMPLATE.format(text=text))

    def _generate(self, prompt: str) -> str:
        body = {"model": self.model, "prompt": prompt, "stream": False}
        with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
            try:
                response = client.post(f"{self.api_url}/generate", json=body)
            except httpx.HTTPError as exc:
                raise SummarizerError(f"summary request failed: {exc}") from exc
        if response.status_code >= 300:
            raise SummarizerError(f"summary endpoint returned {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SummarizerError("summary endpoint returned invalid JSON") from exc
        summary = data.get("response") if isinstance(data, dict) else None
        if not isinstance(summary, str):
            raise SummarizerError("summary endpoint response has no text")
        _LOGGER.debug("summary generated model=%s chars=%d", self.model, len(summary))
        return summary.strip()
