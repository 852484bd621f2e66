"""Claude API client for the pipeline agents — prompt caching, model routing.

Two model tiers:
  - FAST: claude-haiku-4-5 for short lookups
  - SMART: claude-sonnet-4-5 for pipeline and win/loss analysis

Usage:
    from pipelinehub.utils.claude_client import claude_text
    answer = await claude_text(
        prompt="Which deals are at risk this quarter?",
        system=system_prompt_with_pipeline_context,
        model_tier="smart",
    )
"""

from typing import Any

import httpx
from loguru import logger

from ..config import settings

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"

MODELS = {
    "fast": "claude-haiku-4-5-20251001",
    "smart": "claude-sonnet-4-5-20250929",
}


def _headers(*, cache: bool = False) -> dict:
    """Build API headers. Enable prompt caching when the system prompt is reused."""
    h = {
        "x-api-key": settings.anthropic_api_key,
        "anthropic-version": API_VERSION,
        "content-type": "application/json",
    }
    if cache:
        h["anthropic-beta"] = "prompt-caching-2024-07-31"
    return h


def _build_body(prompt: str, system: str, model_tier: str, max_tokens: int, cache_system: bool) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": MODELS.get(model_tier, MODELS["fast"]),
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system:
        block = {"type": "text", "text": system}
        if cache_system:
            block["cache_control"] = {"type": "ephemeral"}
        body["system"] = [block]
    return body


async def claude_text(
    prompt: str,
    *,
    system: str = "",
    model_tier: str = "smart",
    max_tokens: int = 1500,
    cache_system: bool = True,
    timeout: int = 60,
) -> str | None:
    """Call Claude for a free-form text answer.

    Returns:
        Text response, or None when no key is configured or the call fails
    """
    if not settings.anthropic_api_key:
        return None

    body = _build_body(prompt, system, model_tier, max_tokens, cache_system)

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                API_URL,
                headers=_headers(cache=cache_system),
                json=body,
            )
    except httpx.HTTPError as e:
        logger.warning("Claude text call failed: {}", e)
        return None

    if resp.status_code != 200:
        logger.warning("Claude API {}: {}", resp.status_code, resp.text[:200])
        return None

    data = resp.json()
    texts = [b["text"] for b in data.get("content", []) if b.get("type") == "text"]
    return "\n".join(texts) if texts else None
