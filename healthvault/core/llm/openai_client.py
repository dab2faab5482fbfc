"""
Chat-completions client used by AI report summaries.

The summary service only needs one thing from the model: a JSON object it can
validate against its own schema. Prompts carry report content (PHI), so neither
requests nor replies are logged here, and upstream error bodies are never echoed
back to callers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx

COMPLETIONS_PATH = "/chat/completions"


class OpenAIError(Exception):
    """Base error for LLM failures (safe to map to 502)."""


class OpenAIUpstreamError(OpenAIError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OpenAIRateLimitError(OpenAIUpstreamError):
    """The provider answered 429; the caller may retry later."""


@dataclass(frozen=True)
class OpenAIConfig:
    api_key: str
    base_url: str
    model: str
    timeout_seconds: float
    max_output_tokens: int = 1500


def summary_request_body(
    *, model: str, system_prompt: str, user_prompt: str, max_output_tokens: int
) -> dict[str, Any]:
    return {
        "model": model,
        "temperature": 0,
        "max_tokens": max_output_tokens,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "response_format": {"type": "json_object"},
    }


def parse_json_reply(body: Any) -> dict[str, Any]:
    """Pull the first choice's content out of a completions reply and decode it."""

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise OpenAIUpstreamError("LLM response had no message content") from exc
    if not isinstance(content, str):
        raise OpenAIUpstreamError("LLM response had no message content")

    # A reply cut off by max_tokens fails here as truncated JSON.
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise OpenAIUpstreamError("LLM response was not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise OpenAIUpstreamError("LLM response JSON must be an object")
    return parsed


class ChatJSONClient:
    def __init__(
        self, *, config: OpenAIConfig, transport: httpx.AsyncBaseTransport | None = None
    ):
        self._config = config
        self._transport = transport

    @property
    def model(self) -> str:
        return self._config.model

    async def generate_json(self, *, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        body = summary_request_body(
            model=self._config.model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_output_tokens=self._config.max_output_tokens,
        )
        try:
            async with httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    COMPLETIONS_PATH,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                    json=body,
                )
        except httpx.TimeoutException as exc:
            raise OpenAIUpstreamError("LLM request timed out") from exc
        except httpx.HTTPError as exc:
            raise OpenAIUpstreamError("LLM request failed") from exc

        if resp.status_code == 429:
            raise OpenAIRateLimitError("LLM rate limit reached", status_code=429)
        if resp.status_code != 200:
            raise OpenAIUpstreamError(
                "LLM service returned an error", status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise OpenAIUpstreamError("LLM response was not valid JSON") from exc
        return parse_json_reply(data)
