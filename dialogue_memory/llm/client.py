"""LiteLLM wrapper for completions and embeddings, with retry and structured logging."""

from __future__ import annotations

import logging

import litellm

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.errors import QuotaExceededError, is_quota_error

logger = logging.getLogger(__name__)

# Suppress litellm's verbose logging
litellm.suppress_debug_info = True


async def llm_complete(
    prompt: str,
    system: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_retries: int = 3,
) -> str:
    """Send a completion request via litellm and return the text response."""
    model = model or ENGINE_CONFIG["llm_model"]
    temperature = temperature if temperature is not None else ENGINE_CONFIG["llm_temperature"]

    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    for attempt in range(max_retries):
        try:
            response = await litellm.acompletion(
                model=model,
                messages=messages,
                temperature=temperature,
            )
            return response.choices[0].message.content or ""
        except Exception as exc:
            # Quota failures will not clear up on retry
            if is_quota_error(exc):
                raise QuotaExceededError(str(exc)) from exc
            if attempt == max_retries - 1:
                raise
            logger.warning("LLM call failed (attempt %d/%d), retrying...", attempt + 1, max_retries)

    return ""  # unreachable but satisfies type checker


async def llm_embed(text: str, model: str | None = None) -> list[float]:
    """Embed a single text through litellm. Quota/billing failures raise QuotaExceededError."""
    model = model or ENGINE_CONFIG["api_embedding_model"]
    try:
        response = await litellm.aembedding(model=model, input=[text])
    except Exception as exc:
        if is_quota_error(exc):
            raise QuotaExceededError(str(exc)) from exc
        raise

    item = response.data[0]
    vector = item["embedding"] if isinstance(item, dict) else item.embedding
    if not vector:
        raise ValueError("Embedding response contained no vector")
    return list(vector)
