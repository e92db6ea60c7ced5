"""
Content (text) generation providers.

- AnthropicProvider: Messages API over httpx
- OpenAIProvider: Chat Completions API over httpx
- BedrockContentProvider: Bedrock Converse API over boto3

All three return the same normalized shape:

    {"model": ..., "content": "generated text", "usage": {"input_tokens": n, "output_tokens": m}}
"""

import logging
from typing import Any

from .base import ContentProvider, ProviderError

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7


def _generation_settings(provider: ContentProvider, params: dict[str, Any]) -> tuple[int, float]:
    max_tokens = params.get("max_tokens") or provider.model_config.tunable("maxTokens", DEFAULT_MAX_TOKENS)
    temperature = params.get("temperature")
    if temperature is None:
        temperature = provider.model_config.tunable("temperature", DEFAULT_TEMPERATURE)
    return int(max_tokens), float(temperature)


def _require_prompt(provider: ContentProvider, params: dict[str, Any]) -> str:
    prompt = params.get("prompt")
    if not prompt:
        raise ProviderError("Content generation requires a prompt", error_code="INVALID_PARAMS", provider=provider.name)
    return prompt


class AnthropicProvider(ContentProvider):
    name = "anthropic"

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        prompt = _require_prompt(self, params)
        max_tokens, temperature = _generation_settings(self, params)
        base = (self.model_config.endpoint or self.api.anthropic_api_base).rstrip("/")

        body = {
            "model": self.model_config.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if params.get("system"):
            body["system"] = params["system"]

        response = await self._post(
            f"{base}/v1/messages",
            headers={
                "x-api-key": self.api.anthropic_api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json=body,
        )
        data = response.json()

        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage", {})
        return {
            "model": data.get("model", self.model_config.model),
            "content": text,
            "usage": {
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
            },
        }


class OpenAIProvider(ContentProvider):
    name = "openai"

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        prompt = _require_prompt(self, params)
        max_tokens, temperature = _generation_settings(self, params)
        base = (self.model_config.endpoint or self.api.openai_api_base).rstrip("/")

        messages = []
        if params.get("system"):
            messages.append({"role": "system", "content": params["system"]})
        messages.append({"role": "user", "content": prompt})

        response = await self._post(
            f"{base}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api.openai_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model_config.model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        data = response.json()

        choices = data.get("choices", [])
        text = choices[0].get("message", {}).get("content", "") if choices else ""
        usage = data.get("usage", {})
        return {
            "model": data.get("model", self.model_config.model),
            "content": text,
            "choices": choices,
            "usage": {
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
            },
        }


class BedrockContentProvider(ContentProvider):
    name = "bedrock"
    aws_service = "bedrock-runtime"

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        prompt = _require_prompt(self, params)
        max_tokens, temperature = _generation_settings(self, params)

        request = {
            "modelId": self.model_config.model,
            "messages": [{"role": "user", "content": [{"text": prompt}]}],
            "inferenceConfig": {"maxTokens": max_tokens, "temperature": temperature},
        }
        if params.get("system"):
            request["system"] = [{"text": params["system"]}]

        data = await self._aws_call("converse", **request)

        blocks = data.get("output", {}).get("message", {}).get("content", [])
        usage = data.get("usage", {})
        return {
            "model": self.model_config.model,
            "content": "".join(block.get("text", "") for block in blocks),
            "usage": {
                "input_tokens": usage.get("inputTokens", 0),
                "output_tokens": usage.get("outputTokens", 0),
            },
        }
