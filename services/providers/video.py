"""
Video generation providers.

Bedrock-hosted models (Nova Reel, Luma Ray) run as async invocations that
write an mp4 to S3; invoke() returns as soon as the job is accepted with
status "started" and the S3 location the video will land in. Runway runs
as a task on its own API.
"""

import logging
import math
import random
from typing import Any

from .base import ProviderError, VideoProvider

logger = logging.getLogger(__name__)

NOVA_SHOT_SECONDS = 6
NOVA_MAX_SECONDS = 120
RUNWAY_API_VERSION = "2024-11-06"


def _require_prompt(provider: VideoProvider, params: dict[str, Any]) -> str:
    prompt = params.get("prompt")
    if not prompt:
        raise ProviderError("Video generation requires a prompt", error_code="INVALID_PARAMS", provider=provider.name)
    return prompt


class BedrockVideoProvider(VideoProvider):
    """Amazon Nova Reel through Bedrock start_async_invoke."""

    name = "bedrock"
    aws_service = "bedrock-runtime"

    def _output_uri(self) -> str:
        bucket = self.api.video_bucket
        if not bucket:
            raise ProviderError(
                "VIDEO_BUCKET not configured",
                error_code="NOT_CONFIGURED",
                provider=self.name,
            )
        return f"s3://{bucket}/videos/{self.name}/"

    def _model_input(self, prompt: str, duration: float, params: dict[str, Any]) -> dict[str, Any]:
        # Nova Reel renders in 6 second shots; longer videos use multi-shot mode
        seconds = min(NOVA_MAX_SECONDS, max(1, math.ceil(duration / NOVA_SHOT_SECONDS)) * NOVA_SHOT_SECONDS)
        config = {
            "durationSeconds": seconds,
            "fps": self.model_config.tunable("fps", 24),
            "dimension": self.model_config.tunable("dimension", "1280x720"),
            "seed": params.get("seed", random.randint(0, 2_147_483_646)),
        }
        if seconds == NOVA_SHOT_SECONDS:
            return {
                "taskType": "TEXT_VIDEO",
                "textToVideoParams": {"text": prompt},
                "videoGenerationConfig": config,
            }
        return {
            "taskType": "MULTI_SHOT_AUTOMATED",
            "multiShotAutomatedParams": {"text": prompt},
            "videoGenerationConfig": config,
        }

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        prompt = _require_prompt(self, params)
        duration = float(params.get("duration", NOVA_SHOT_SECONDS))
        output_uri = self._output_uri()

        data = await self._aws_call(
            "start_async_invoke",
            modelId=self.model_config.model,
            modelInput=self._model_input(prompt, duration, params),
            outputDataConfig={"s3OutputDataConfig": {"s3Uri": output_uri}},
        )

        invocation_arn = data["invocationArn"]
        invocation_id = invocation_arn.rsplit("/", 1)[-1]
        logger.info(f"{self.name} video job started: {invocation_arn}")

        return {
            "model": self.model_config.model,
            "invocation_arn": invocation_arn,
            "video_url": f"{output_uri}{invocation_id}/output.mp4",
            "duration": duration,
            "status": "started",
        }

    async def get_job_status(self, invocation_arn: str) -> dict[str, Any]:
        data = await self._aws_call("get_async_invoke", invocationArn=invocation_arn)
        return {
            "invocation_arn": invocation_arn,
            "status": data.get("status", "Unknown").lower(),
            "failure_message": data.get("failureMessage"),
        }


class LumaProvider(BedrockVideoProvider):
    """Luma Ray through Bedrock start_async_invoke."""

    name = "luma"

    def _model_input(self, prompt: str, duration: float, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "prompt": prompt,
            "aspect_ratio": self.model_config.tunable("aspectRatio", "16:9"),
            "duration": "5s" if duration <= 5 else "9s",
            "resolution": self.model_config.tunable("resolution", "720p"),
        }


class RunwayProvider(VideoProvider):
    """Runway Gen video tasks over httpx."""

    name = "runway"

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        prompt = _require_prompt(self, params)
        duration = float(params.get("duration", 5))
        base = (self.model_config.endpoint or self.api.runway_api_base).rstrip("/")

        body = {
            "model": self.model_config.model,
            "promptText": prompt,
            "duration": 5 if duration <= 5 else 10,
            "ratio": self.model_config.tunable("ratio", "1280:720"),
        }
        path = "text_to_video"
        if params.get("image_url"):
            body["promptImage"] = params["image_url"]
            path = "image_to_video"

        response = await self._post(
            f"{base}/{path}",
            headers={
                "Authorization": f"Bearer {self.api.runway_api_key}",
                "X-Runway-Version": RUNWAY_API_VERSION,
                "Content-Type": "application/json",
            },
            json=body,
        )
        data = response.json()

        return {
            "model": self.model_config.model,
            "task_id": data.get("id"),
            "duration": duration,
            "status": "started" if data.get("id") else "unknown",
        }
