from __future__ import annotations

from healthvault.core.llm.openai_client import ChatJSONClient, OpenAIConfig
from healthvault.core.settings import get_settings


def get_openai_client() -> ChatJSONClient | None:
    """Summary LLM client, or None when no API key is configured (the route answers 502)."""

    settings = get_settings()
    if not settings.openai_api_key:
        return None

    return ChatJSONClient(
        config=OpenAIConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout_seconds=float(settings.openai_timeout_seconds),
            max_output_tokens=settings.openai_max_output_tokens,
        )
    )
