# KimbleAI - shared Anthropic client.

from functools import lru_cache

import anthropic

from kimble.config import ANTHROPIC_API_KEY, LLM_TIMEOUT_SECONDS


@lru_cache(maxsize=1)
def get_claude() -> anthropic.Anthropic:
    """Built on first use so importing the app never needs an API key."""
    if not ANTHROPIC_API_KEY:
        print("[WARNING] ANTHROPIC_API_KEY is not set; chat and fact generation calls will fail.")
    return anthropic.Anthropic(
        api_key=ANTHROPIC_API_KEY,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=1,
    )


def response_text(response) -> str:
    """Concatenate the text blocks of a Messages API response."""
    parts = [getattr(block, "text", "") for block in response.content]
    return "".join(parts).strip()
