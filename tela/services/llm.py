"""
LLM client for chat replies.

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Reusable client (connection pooling)
  - Token counting (tiktoken-free approximation)
  - Canned reply when FF_USE_LLM is off
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..core.config import get_settings
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

OFFLINE_MODEL = "offline"

# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


def _backoff(attempt: int) -> float:
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


def _retry_delay(retry_after: Optional[str], attempt: int) -> float:
    """Seconds to wait. Retry-After may also be an HTTP date; those fall back to backoff."""
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            pass
    return _backoff(attempt)


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter."""
    last_exc: Optional[Exception] = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            delay = _backoff(attempt)
            logger.warning(
                "LLM timeout (attempt %d/%d), retrying in %.1fs",
                attempt + 1, MAX_RETRIES + 1, delay,
            )
            last_exc = e
            await asyncio.sleep(delay)
            continue

        if resp.status_code not in RETRYABLE_STATUS:
            if resp.status_code >= 400:
                logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
            resp.raise_for_status()
            return resp

        delay = _retry_delay(resp.headers.get("retry-after"), attempt)
        logger.warning(
            "LLM %d (attempt %d/%d), retrying in %.1fs",
            resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
        )
        last_exc = httpx.HTTPStatusError(
            f"{resp.status_code}", request=resp.request, response=resp
        )
        await asyncio.sleep(delay)

    raise last_exc or RuntimeError("LLM request failed after retries")


# ── Chat completion ──────────────────────────────────────────────────

@dataclass
class Completion:
    content: str
    model: str
    completion_tokens: int


async def chat(
    messages: list[dict],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Completion:
    """Chat completion against the OpenAI-compatible endpoint."""
    settings = get_settings()
    if not get_flags().use_llm:
        return Completion(
            content="The assistant is running in offline mode. Your message has been saved.",
            model=OFFLINE_MODEL,
            completion_tokens=0,
        )

    if not settings.openai_api_key:
        raise ValueError("No API key for the LLM provider. Set OPENAI_API_KEY.")

    payload: dict[str, Any] = {
        "model": model or settings.openai_model,
        "messages": messages,
        "temperature": temperature if temperature is not None else settings.openai_temperature,
        "max_tokens": max_tokens or settings.openai_max_tokens,
    }
    url = f"{settings.openai_base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }

    start = time.monotonic()
    resp = await _retry_request(_get_client(), "POST", url, json=payload, headers=headers)
    data = resp.json()

    usage = data.get("usage", {})
    content = data["choices"][0]["message"].get("content") or ""
    logger.info(
        "LLM chat: %dms | in=%d out=%d tokens | model=%s",
        int((time.monotonic() - start) * 1000),
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
        payload["model"],
    )
    return Completion(
        content=content,
        model=data.get("model") or payload["model"],
        completion_tokens=usage.get("completion_tokens") or estimate_tokens(content),
    )


# ── Token estimation ─────────────────────────────────────────────────

def estimate_tokens(text: str) -> int:
    """
    Estimate token count without tiktoken dependency.
    Rule of thumb: ~4 chars per token for English.
    """
    return max(1, len(text) // 4)
