"""Chat completion service — wraps LiteLLM acompletion."""

from __future__ import annotations

from litellm import acompletion

from mdchat.core.config import Settings
from mdchat.services.retry import call_with_retries


async def complete_chat(
    messages: list[dict],
    settings: Settings,
    max_tokens: int | None = None,
) -> str:
    """Generate an answer for the given ``[{role, content}, ...]`` messages.

    Raises:
        ProviderError: if the provider call fails after retries.
    """
    kwargs: dict = {
        "model": settings.chat_model,
        "messages": messages,
        "max_tokens": max_tokens or settings.chat_max_tokens,
        "temperature": settings.chat_temperature,
        "timeout": settings.provider_timeout_seconds,
    }
    if settings.provider_api_key:
        kwargs["api_key"] = settings.provider_api_key

    async def _call():
        return await acompletion(**kwargs)

    response = await call_with_retries(
        _call,
        operation="generate response",
        max_retries=settings.provider_max_retries,
        base_delay=settings.provider_retry_base_delay,
        max_delay=settings.provider_retry_max_delay,
    )
    return response.choices[0].message.content or ""
