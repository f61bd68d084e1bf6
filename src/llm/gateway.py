"""JSON-mode chat completions against Anthropic or any OpenAI-compatible API.

The gateway only guarantees that a call returns raw JSON text or raises
:class:`LLMGatewayError`. Parsing and schema checks belong to the callers.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from src.config import Settings, settings

logger = logging.getLogger(__name__)


class LLMGatewayError(Exception):
    """The provider was unreachable, timed out, or returned no usable content."""


class LLMGateway(Protocol):
    """Anything that turns a system + user prompt into a JSON object string."""

    def complete_json(self, system_prompt: str, user_prompt: str, temperature: float) -> str: ...


# Forced tool for the Anthropic backend: its input is the JSON answer.
JSON_RESPONSE_TOOL: dict[str, Any] = {
    "name": "respond_with_json",
    "description": "Return the complete answer as a single JSON object.",
    "input_schema": {"type": "object", "additionalProperties": True},
}


class AnthropicGateway:
    """Claude Messages API with a forced tool call standing in for JSON mode."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        max_tokens: int = 4096,
    ) -> None:
        self._client = Anthropic(api_key=api_key, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens

    def complete_json(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=system_prompt,
                tools=[JSON_RESPONSE_TOOL],  # type: ignore[list-item]
                tool_choice={"type": "tool", "name": JSON_RESPONSE_TOOL["name"]},
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIError as exc:
            raise LLMGatewayError(f"Anthropic request failed: {exc}") from exc

        for block in response.content:
            if block.type != "tool_use" or block.name != JSON_RESPONSE_TOOL["name"]:
                continue
            data = block.input
            return data if isinstance(data, str) else json.dumps(data)

        raise LLMGatewayError("Anthropic response contained no JSON tool call")


class OpenAIGateway:
    """OpenAI-compatible chat completions with ``response_format=json_object``.

    Pointing ``base_url`` at https://api.deepseek.com (model ``deepseek-chat``)
    reproduces the DeepSeek setup the product originally shipped with.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model

    def complete_json(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=temperature,
            )
        except openai.APIError as exc:
            raise LLMGatewayError(f"OpenAI-compatible request failed: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMGatewayError("LLM returned empty content")
        return content


def build_gateway(cfg: Settings = settings) -> LLMGateway | None:
    """Create the gateway for the configured provider.

    Returns:
        The gateway, or None when the provider has no API key (extraction is
        then recorded as skipped rather than attempted).

    Raises:
        ValueError: ``llm_provider`` names an unknown provider.
    """
    if cfg.llm_provider not in ("anthropic", "openai"):
        raise ValueError(f"Unknown llm_provider: {cfg.llm_provider!r}")

    if not cfg.llm_configured:
        logger.warning("LLM provider %s has no API key; extraction disabled", cfg.llm_provider)
        return None

    if cfg.llm_provider == "openai":
        return OpenAIGateway(
            api_key=cfg.openai_api_key,
            model=cfg.openai_model,
            base_url=cfg.openai_base_url or None,
            timeout=cfg.llm_timeout_seconds,
        )
    return AnthropicGateway(
        api_key=cfg.anthropic_api_key,
        model=cfg.llm_model,
        timeout=cfg.llm_timeout_seconds,
    )
