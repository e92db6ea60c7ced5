"""
Provider Adapter Tests

HTTP providers run against httpx.MockTransport; AWS providers get a
MagicMock boto3 client.

Run with:
    python -m pytest tests/test_providers.py -v
"""

import json
import os
import sys
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import APIConfig
from services.providers import (
    AnthropicProvider,
    BedrockVideoProvider,
    LumaProvider,
    OpenAIProvider,
    PollyProvider,
    ProviderError,
    ProviderRegistry,
    RunwayProvider,
    ServiceCategory,
    ServiceModelConfig,
    UnsupportedProviderError,
)


def api_config(**overrides) -> APIConfig:
    api = APIConfig()
    api.anthropic_api_key = "test-anthropic"
    api.openai_api_key = "test-openai"
    api.runway_api_key = "test-runway"
    api.video_bucket = "media-bucket"
    for name, value in overrides.items():
        setattr(api, name, value)
    return api


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_messages_request_and_normalized_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "claude-3-5-sonnet-20241022",
                    "content": [{"type": "text", "text": "Five hooks"}],
                    "usage": {"input_tokens": 12, "output_tokens": 40},
                },
            )

        config = ServiceModelConfig.from_value(
            {"provider": "anthropic", "model": "claude-3-5-sonnet-20241022", "maxTokens": 512}
        )
        provider = AnthropicProvider(config, api=api_config(), http_client=mock_http(handler))

        response = await provider.invoke({"prompt": "Write hooks"})

        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["headers"]["x-api-key"] == "test-anthropic"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["max_tokens"] == 512
        assert response["content"] == "Five hooks"
        assert response["usage"] == {"input_tokens": 12, "output_tokens": 40}
        assert provider.validate_response(response)

    @pytest.mark.asyncio
    async def test_http_error_maps_to_provider_error(self):
        provider = AnthropicProvider(
            ServiceModelConfig.from_value({"provider": "anthropic", "model": "claude-3-5-sonnet-20241022"}),
            api=api_config(),
            http_client=mock_http(lambda request: httpx.Response(529, json={"error": "overloaded"})),
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.invoke({"prompt": "hi"})

        assert exc_info.value.error_code == "HTTP_529"
        assert exc_info.value.provider == "anthropic"

    @pytest.mark.asyncio
    async def test_missing_prompt(self):
        provider = AnthropicProvider(
            ServiceModelConfig.from_value({"provider": "anthropic", "model": "claude-3-5-sonnet-20241022"}),
            api=api_config(),
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.invoke({})
        assert exc_info.value.error_code == "INVALID_PARAMS"


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_chat_completion(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/chat/completions"
            assert request.headers["Authorization"] == "Bearer test-openai"
            return httpx.Response(
                200,
                json={
                    "model": "gpt-4o-mini",
                    "choices": [{"message": {"role": "assistant", "content": "A script"}}],
                    "usage": {"prompt_tokens": 8, "completion_tokens": 20},
                },
            )

        provider = OpenAIProvider(
            ServiceModelConfig.from_value({"provider": "openai", "model": "gpt-4o-mini"}),
            api=api_config(),
            http_client=mock_http(handler),
        )

        response = await provider.invoke({"prompt": "Write a script", "system": "Be brief"})

        assert response["content"] == "A script"
        assert response["usage"] == {"input_tokens": 8, "output_tokens": 20}

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = OpenAIProvider(
            ServiceModelConfig.from_value({"provider": "openai", "model": "gpt-4o-mini"}),
            api=api_config(),
            http_client=mock_http(handler),
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.invoke({"prompt": "hi"})
        assert exc_info.value.error_code == "REQUEST_ERROR"


class TestPollyProvider:
    def make(self, engine="generative", voice=None, **api_overrides) -> PollyProvider:
        value = {"provider": "polly", "engine": engine}
        if voice:
            value["voiceId"] = voice
        provider = PollyProvider(ServiceModelConfig.from_value(value), api=api_config(**api_overrides))
        provider._aws_client = MagicMock()
        return provider

    @pytest.mark.asyncio
    async def test_synthesis_task(self):
        provider = self.make(engine="neural", voice="Amy")
        provider.aws_client.start_speech_synthesis_task.return_value = {
            "SynthesisTask": {
                "TaskId": "abc-123",
                "TaskStatus": "scheduled",
                "OutputUri": "https://s3.amazonaws.com/media-bucket/audio/neural/abc-123.mp3",
            }
        }

        response = await provider.invoke({"text": "Welcome back"})

        kwargs = provider.aws_client.start_speech_synthesis_task.call_args.kwargs
        assert kwargs["Engine"] == "neural"
        assert kwargs["VoiceId"] == "Amy"
        assert kwargs["TextType"] == "text"
        assert kwargs["OutputS3KeyPrefix"] == "audio/neural/"
        assert response["task_id"] == "abc-123"
        assert response["characters"] == len("Welcome back")
        assert provider.validate_response(response)

    def test_default_voice_per_engine(self):
        assert self.make(engine="generative").voice_id == "Ruth"
        assert self.make(engine="standard").voice_id == "Joanna"

    @pytest.mark.asyncio
    async def test_client_error_code(self):
        provider = self.make()
        provider.aws_client.start_speech_synthesis_task.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}},
            "StartSpeechSynthesisTask",
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.invoke({"text": "hi"})
        assert exc_info.value.error_code == "ThrottlingException"

    @pytest.mark.asyncio
    async def test_requires_bucket(self):
        provider = self.make(video_bucket="")

        with pytest.raises(ProviderError) as exc_info:
            await provider.invoke({"text": "hi"})
        assert exc_info.value.error_code == "NOT_CONFIGURED"


class TestVideoProviders:
    @pytest.mark.asyncio
    async def test_nova_reel_multi_shot(self):
        provider = BedrockVideoProvider(
            ServiceModelConfig.from_value({"provider": "bedrock", "model": "amazon.nova-reel-v1:0"}),
            api=api_config(),
        )
        provider._aws_client = MagicMock()
        provider.aws_client.start_async_invoke.return_value = {
            "invocationArn": "arn:aws:bedrock:us-east-1:123:async-invoke/job42"
        }

        response = await provider.invoke({"prompt": "City at night", "duration": 20, "seed": 7})

        model_input = provider.aws_client.start_async_invoke.call_args.kwargs["modelInput"]
        assert model_input["taskType"] == "MULTI_SHOT_AUTOMATED"
        assert model_input["videoGenerationConfig"]["durationSeconds"] == 24
        assert response["status"] == "started"
        assert response["video_url"] == "s3://media-bucket/videos/bedrock/job42/output.mp4"

    def test_nova_reel_single_shot(self):
        provider = BedrockVideoProvider(
            ServiceModelConfig.from_value({"provider": "bedrock", "model": "amazon.nova-reel-v1:0"}),
            api=api_config(),
        )
        model_input = provider._model_input("Ocean", 6, {"seed": 1})

        assert model_input["taskType"] == "TEXT_VIDEO"
        assert model_input["videoGenerationConfig"]["durationSeconds"] == 6

    def test_luma_duration_buckets(self):
        provider = LumaProvider(
            ServiceModelConfig.from_value({"provider": "luma", "model": "luma.ray-v2:0"}),
            api=api_config(),
        )
        assert provider._model_input("x", 5, {})["duration"] == "5s"
        assert provider._model_input("x", 8, {})["duration"] == "9s"

    @pytest.mark.asyncio
    async def test_runway_image_to_video(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/image_to_video")
            assert request.headers["X-Runway-Version"] == "2024-11-06"
            body = json.loads(request.content)
            assert body["duration"] == 10
            return httpx.Response(200, json={"id": "task-9"})

        provider = RunwayProvider(
            ServiceModelConfig.from_value({"provider": "runway", "model": "gen3a_turbo"}),
            api=api_config(),
            http_client=mock_http(handler),
        )

        response = await provider.invoke({"prompt": "Pan left", "duration": 8, "image_url": "https://x/y.png"})

        assert response["task_id"] == "task-9"
        assert response["status"] == "started"


class TestProviderRegistry:
    def test_instances_reused_per_config(self):
        registry = ProviderRegistry(api=api_config())
        config = ServiceModelConfig.from_value({"provider": "openai", "model": "gpt-4o-mini"})

        first = registry(ServiceCategory.CONTENT, config)
        assert registry(ServiceCategory.CONTENT, config) is first
        assert isinstance(first, OpenAIProvider)

    def test_changed_config_builds_new_instance(self):
        registry = ProviderRegistry(api=api_config())
        first = registry(ServiceCategory.AUDIO, ServiceModelConfig.from_value({"provider": "polly", "engine": "neural"}))
        second = registry(
            ServiceCategory.AUDIO,
            ServiceModelConfig.from_value({"provider": "polly", "engine": "neural", "voiceId": "Brian"}),
        )
        assert second is not first

    def test_unsupported_provider(self):
        registry = ProviderRegistry(api=api_config())

        with pytest.raises(UnsupportedProviderError):
            registry(ServiceCategory.VIDEO, ServiceModelConfig.from_value({"provider": "sora", "model": "sora-1"}))

    def test_supported(self):
        assert ProviderRegistry.supported()["audio"] == ["azure", "elevenlabs", "polly"]
