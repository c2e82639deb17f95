"""Unified LLM provider using direct SDKs (google-genai, openai, anthropic).

Public API:
    call_llm(model, messages, temperature, **kwargs) -> LLMResponse

Routing:
  - gemini-*           -> google.genai   (API key or Vertex AI)
  - claude-*           -> anthropic SDK
  - anything else      -> openai SDK     (gpt-*, o1-*, o3-*)
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any

from ..core.config import settings


@dataclass
class LLMResponse:
    """Standardized response from call_llm."""

    text: str | None = None
    model: str | None = None


# ---------------------------------------------------------------------------
# Lazy client singletons
# ---------------------------------------------------------------------------

_clients: dict[str, Any] = {}


def _get_gemini_client() -> Any:
    if "gemini" not in _clients:
        from google import genai

        if settings.gemini_api_key:
            _clients["gemini"] = genai.Client(api_key=settings.gemini_api_key)
        else:
            _clients["gemini"] = genai.Client(
                vertexai=True,
                project=os.environ.get("GOOGLE_CLOUD_PROJECT"),
                location=os.environ.get("GOOGLE_CLOUD_LOCATION", "us-central1"),
            )
    return _clients["gemini"]


def _get_openai_client() -> Any:
    if "openai" not in _clients:
        from openai import AsyncOpenAI

        _clients["openai"] = AsyncOpenAI(api_key=settings.openai_api_key)
    return _clients["openai"]


def _get_anthropic_client() -> Any:
    if "anthropic" not in _clients:
        from anthropic import AsyncAnthropic

        _clients["anthropic"] = AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _clients["anthropic"]


def _split_system(messages: list[dict]) -> tuple[list[dict], str | None]:
    system_parts = [m["content"] for m in messages if m.get("role") == "system" and m.get("content")]
    rest = [m for m in messages if m.get("role") != "system"]
    return rest, "\n\n".join(system_parts) or None


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


async def _call_gemini(model: str, messages: list[dict], temperature: float, **kwargs: Any) -> LLMResponse:
    from google.genai.types import GenerateContentConfig

    client = _get_gemini_client()
    rest, system_instruction = _split_system(messages)
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m.get("content") or ""}]}
        for m in rest
    ]

    config_kwargs: dict[str, Any] = {"temperature": temperature}
    if system_instruction:
        config_kwargs["system_instruction"] = system_instruction
    if kwargs.get("max_tokens"):
        config_kwargs["max_output_tokens"] = kwargs["max_tokens"]
    rf = kwargs.get("response_format")
    if rf and rf.get("type") == "json_object":
        config_kwargs["response_mime_type"] = "application/json"

    config = GenerateContentConfig(**config_kwargs)

    def do_sync_call():
        return client.models.generate_content(model=model, contents=contents, config=config)

    response = await asyncio.to_thread(do_sync_call)
    try:
        text = response.text
    except (ValueError, AttributeError):
        text = None
    return LLMResponse(text=text, model=model)


async def _call_openai(model: str, messages: list[dict], temperature: float, **kwargs: Any) -> LLMResponse:
    completion_kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
    }
    if kwargs.get("max_tokens"):
        completion_kwargs["max_tokens"] = kwargs["max_tokens"]
    rf = kwargs.get("response_format")
    if rf and rf.get("type") == "json_object":
        completion_kwargs["response_format"] = {"type": "json_object"}

    completion = await _get_openai_client().chat.completions.create(**completion_kwargs)
    choice = completion.choices[0] if completion.choices else None
    return LLMResponse(text=choice.message.content if choice else None, model=model)


async def _call_anthropic(model: str, messages: list[dict], temperature: float, **kwargs: Any) -> LLMResponse:
    rest, system_prompt = _split_system(messages)
    call_kwargs: dict[str, Any] = {
        "model": model,
        "messages": rest,
        "max_tokens": kwargs.get("max_tokens") or 1024,
        "temperature": temperature,
    }
    if system_prompt:
        call_kwargs["system"] = system_prompt

    response = await _get_anthropic_client().messages.create(**call_kwargs)
    text_parts = [block.text for block in response.content if block.type == "text"]
    return LLMResponse(text="\n".join(text_parts) or None, model=model)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def call_llm(
    model: str,
    messages: list[dict],
    temperature: float = 0.2,
    **kwargs: Any,
) -> LLMResponse:
    """Call an LLM and return its text response.

    Args:
        model: Model identifier (e.g. "gemini-2.0-flash", "gpt-4o", "claude-3-5-haiku-latest").
        messages: Conversation as OpenAI-format dicts.
        temperature: Sampling temperature.
        **kwargs: max_tokens (int), response_format (dict).
    """
    if model.startswith("gemini-"):
        return await _call_gemini(model, messages, temperature, **kwargs)
    if model.startswith("claude-"):
        return await _call_anthropic(model, messages, temperature, **kwargs)
    return await _call_openai(model, messages, temperature, **kwargs)
