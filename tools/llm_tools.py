"""Chat-completion helpers over litellm.

Every failure mode (transport error, timeout, non-2xx, empty or malformed
JSON) surfaces as LlmError so callers can degrade a single pillar instead of
crashing the run.
"""
import asyncio
import json
import logging
from typing import Any, Dict, NamedTuple, Optional

import litellm

logger = logging.getLogger(__name__)


class LlmError(Exception):
    """Recoverable LLM failure."""


class LlmReply(NamedTuple):
    text: str
    tokens_used: int


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


async def chat_completion(
    model: str,
    system_prompt: Optional[str],
    user_prompt: str,
    *,
    api_key: Optional[str] = None,
    max_tokens: int = 500,
    temperature: float = 0.3,
    timeout: float = 60.0,
    json_mode: bool = False,
) -> LlmReply:
    """Run one chat completion and return its text and token usage."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "timeout": timeout,
    }
    if api_key:
        kwargs["api_key"] = api_key
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    try:
        response = await asyncio.wait_for(litellm.acompletion(**kwargs), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise LlmError(f"{model} timed out after {timeout:.0f}s") from exc
    except Exception as exc:
        raise LlmError(f"{model} error: {str(exc)[:300]}") from exc

    try:
        text = (response.choices[0].message.content or "").strip()
    except (AttributeError, IndexError, TypeError) as exc:
        raise LlmError(f"{model} returned no usable choices") from exc

    usage = getattr(response, "usage", None)
    try:
        tokens = int(getattr(usage, "total_tokens", 0) or 0) if usage else 0
    except (TypeError, ValueError):
        tokens = 0
    return LlmReply(text=text, tokens_used=tokens)


async def chat_json(
    model: str,
    system_prompt: Optional[str],
    user_prompt: str,
    **kwargs: Any,
) -> tuple[Dict[str, Any], int]:
    """Run a strict-JSON completion. Returns (parsed object, tokens used)."""
    reply = await chat_completion(model, system_prompt, user_prompt, json_mode=True, **kwargs)
    try:
        parsed = json.loads(_strip_code_fence(reply.text))
    except json.JSONDecodeError as exc:
        logger.warning("Malformed JSON from %s: %r", model, reply.text[:200])
        raise LlmError(f"{model} returned malformed JSON") from exc
    if not isinstance(parsed, dict):
        raise LlmError(f"{model} returned JSON that is not an object")
    return parsed, reply.tokens_used
