"""Generation provider backed by the OpenAI Python SDK.

The orchestrator only relies on the :class:`GenerationProvider` protocol, so a
deterministic fake can stand in for the real API in tests.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

import openai
from flask import current_app

from .errors import ProviderError

PROVIDER_CACHE_KEY = "_GENERATION_PROVIDER_INSTANCE"


class GenerationProvider(Protocol):
    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        expect_json: bool = True,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        ...


class OpenAIEpisodeProvider:
    """
    Wrapper that picks between the Responses and Chat Completions APIs
    depending on the model name.

    - GPT-5 / o3 / o4 / 4.1(x) → Responses API
    - GPT-4 / 4o / 3.5 (chatty models) → Chat Completions API

    Compatible with OpenAI Python SDK >= 1.0. Failures are never retried.
    """

    def __init__(self, model_name: str, api_key: str, default_max_tokens: int = 4096) -> None:
        self.model_name = (model_name or "").strip()
        self.api_key = (api_key or "").strip()
        self.default_max_tokens = int(default_max_tokens or 4096)
        if not self.model_name:
            raise ValueError("model_name must be a non-empty string.")
        self._client = openai.OpenAI(api_key=self.api_key)

    def _uses_responses_api(self) -> bool:
        name = self.model_name.lower()
        return name.startswith(("gpt-5", "o3", "o4", "gpt-4.1"))

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        expect_json: bool = True,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        if not isinstance(user_prompt, str) or not user_prompt.strip():
            raise ValueError("user_prompt must be a non-empty string.")
        max_tokens = int(max_new_tokens if max_new_tokens is not None else self.default_max_tokens)
        if max_tokens <= 0:
            raise ValueError("max_new_tokens must be positive.")

        try:
            if self._uses_responses_api():
                text = self._call_responses(system_prompt, user_prompt, max_tokens, expect_json, temperature, top_p)
            else:
                text = self._call_chat(system_prompt, user_prompt, max_tokens, expect_json, temperature, top_p)
        except openai.APIStatusError as exc:
            raise ProviderError(f"Generation API error ({exc.status_code}): {_error_message(exc)}") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"Generation API request failed: {exc}") from exc

        text = text.strip()
        if not text:
            raise ProviderError("The generation API returned an empty response.")
        return text

    def _call_responses(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        expect_json: bool,
        temperature: Optional[float],
        top_p: Optional[float],
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model_name,
            "input": user_prompt,
            "max_output_tokens": max_tokens,
            "tool_choice": "none",
            "reasoning": {"effort": "low"},
        }
        if system_prompt:
            payload["instructions"] = system_prompt
        if expect_json:
            payload["text"] = {"format": {"type": "json_object"}}
        if temperature is not None:
            payload["temperature"] = float(temperature)
        if top_p is not None:
            payload["top_p"] = float(top_p)

        resp = self._client.responses.create(**payload)
        return str(getattr(resp, "output_text", None) or "")

    def _call_chat(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        expect_json: bool,
        temperature: Optional[float],
        top_p: Optional[float],
    ) -> str:
        messages: List[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "n": 1,
        }
        if expect_json:
            kwargs["response_format"] = {"type": "json_object"}
        if temperature is not None:
            kwargs["temperature"] = float(temperature)
        if top_p is not None:
            kwargs["top_p"] = float(top_p)

        resp = self._client.chat.completions.create(**kwargs)
        return self._extract_text_from_chat(resp)

    def _extract_text_from_chat(self, resp: Any) -> str:
        choices = getattr(resp, "choices", []) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, list):
            parts = [str(p.get("text") or "") for p in content if isinstance(p, dict) and p.get("type") == "text"]
            return "\n".join(part for part in parts if part)
        return str(content or "")


def _error_message(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(getattr(exc, "message", None) or exc)


def get_generation_provider() -> GenerationProvider:
    """Return the process-wide provider configured from ``app.config``."""

    app = current_app
    cached = app.config.get(PROVIDER_CACHE_KEY)
    if cached is not None:
        return cached

    api_key = app.config.get("OPENAI_API_KEY")
    if not api_key:
        app.logger.warning("OPENAI_API_KEY not configured; episode generation is unavailable.")
        raise ProviderError("The generation provider is not configured.")

    model_name = app.config.get("OPENAI_MODEL", "gpt-4o-mini")
    app.logger.info("Initialising generation provider with model: %s", model_name)
    provider = OpenAIEpisodeProvider(
        model_name,
        api_key,
        default_max_tokens=app.config.get("GENERATION_MAX_TOKENS", 4096),
    )
    app.config[PROVIDER_CACHE_KEY] = provider
    return provider
