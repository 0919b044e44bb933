"""LLM client — HTTP connection to a chat-completion backend.

The orchestrator injects an LLM callable matching the protocol:

    async def __call__(self, stage, messages, *, max_tokens, temperature) -> str: ...

`stage` identifies who is being generated ("primary" or "secondary"). The
implementation may use it for logging or routing; the simplest
implementation ignores it. `messages` is a chat transcript of
{"role": "system"|"user"|"assistant", "content": ...} dicts.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports OpenAI-compatible chat
                (OpenAI, OpenRouter), Ollama and KoboldCpp backends.
                Selected by provider_format.
    EchoLLM   — returns the last message back unchanged. Useful for
                smoke-testing a turn without a running model.

Production code constructs an HttpLLM from settings and passes it to
run_turn(). Tests use StubLLM (defined in conftest.py) instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)

ChatMessages = list[dict[str, str]]


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self,
        stage: str,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["openai", "ollama", "koboldcpp"]


def flatten_messages(messages: ChatMessages) -> str:
    """Render a chat transcript as a plain completion prompt."""
    labels = {"system": "", "user": "User: ", "assistant": "Assistant: "}
    lines = [f"{labels.get(m['role'], '')}{m['content']}" for m in messages]
    lines.append("Assistant:")
    return "\n\n".join(lines)


class HttpLLM:
    """Async HTTP client for chat backends.

    Supported formats:
      "openai"     — POST /v1/chat/completions {"model", "messages", ...}
                     Response: {"choices": [{"message": {"content": "..."}}]}
      "ollama"     — POST /api/chat {"model", "messages", "stream": false, ...}
                     Response: {"message": {"content": "..."}}
      "koboldcpp"  — POST /api/v1/generate {"prompt": <flattened>, ...}
                     Response: {"results": [{"text": "..."}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:11434".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "openai".
        model:           Model identifier; ignored by koboldcpp.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "openai",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, messages: ChatMessages, max_tokens: int, temperature: float
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "ollama":
            url = f"{self._base_url}/api/chat"
            body: dict = {
                "messages": messages,
                "stream": False,
                "options": {"temperature": temperature, "num_predict": max_tokens},
            }
            if self._model:
                body["model"] = self._model
            return url, body

        if self._format == "koboldcpp":
            url = f"{self._base_url}/api/v1/generate"
            return url, {
                "prompt": flatten_messages(messages),
                "max_length": max_tokens,
                "temperature": temperature,
            }

        # openai (default)
        url = f"{self._base_url}/v1/chat/completions"
        body = {"messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        if self._model:
            body["model"] = self._model
        return url, body

    def _parse_response(self, data: object) -> str:
        """Extract the completion text from the response body."""
        if self._format == "ollama":
            backend = "Ollama"
            message = data.get("message") if isinstance(data, dict) else None
            text = message.get("content") if isinstance(message, dict) else None
        elif self._format == "koboldcpp":
            backend = "KoboldCpp"
            results = data.get("results") if isinstance(data, dict) else None
            first = results[0] if isinstance(results, list) and results else None
            text = first.get("text") if isinstance(first, dict) else None
        else:
            backend = "OpenAI-compatible"
            choices = data.get("choices") if isinstance(data, dict) else None
            first = choices[0] if isinstance(choices, list) and choices else None
            message = first.get("message") if isinstance(first, dict) else None
            text = message.get("content") if isinstance(message, dict) else None

        if not isinstance(text, str):
            raise LLMError(f"Unexpected response format from {backend} backend")
        return text

    async def __call__(
        self,
        stage: str,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        url, body = self._build_request(messages, max_tokens, temperature)
        logger.debug("llm call stage=%s url=%s messages=%d", stage, url, len(messages))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise LLMError(f"LLM request to {self._base_url} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM — returns the last message unchanged; useful for smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the content of the last message as-is. No network calls."""

    async def __call__(
        self,
        stage: str,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        logger.debug("EchoLLM stage=%s messages=%d", stage, len(messages))
        return messages[-1]["content"] if messages else ""


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
