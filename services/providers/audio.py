"""
Audio (speech) generation providers.

- PollyProvider: Amazon Polly speech synthesis task written to S3; the
  engine tier (generative, neural, standard) comes from the model config
- ElevenLabsProvider: text-to-speech with-timestamps endpoint
- AzureSpeechProvider: Azure Cognitive Services TTS with SSML
"""

import base64
import logging
from typing import Any
from xml.sax.saxutils import escape

from .base import AudioProvider, ProviderError

logger = logging.getLogger(__name__)

# Polly default voice per engine
POLLY_DEFAULT_VOICES = {
    "generative": "Ruth",
    "neural": "Amy",
    "standard": "Joanna",
}

ELEVENLABS_DEFAULT_VOICE = "21m00Tcm4TlvDq8ikWAM"
ELEVENLABS_DEFAULT_MODEL = "eleven_flash_v2_5"
AZURE_DEFAULT_VOICE = "en-US-JennyNeural"
AZURE_OUTPUT_FORMAT = "audio-24khz-48kbitrate-mono-mp3"


def _require_text(provider: AudioProvider, params: dict[str, Any]) -> str:
    text = params.get("text")
    if not text:
        raise ProviderError("Audio generation requires text", error_code="INVALID_PARAMS", provider=provider.name)
    return text


class PollyProvider(AudioProvider):
    name = "polly"
    aws_service = "polly"

    @property
    def engine(self) -> str:
        return self.model_config.engine or "neural"

    @property
    def voice_id(self) -> str:
        return self.model_config.voice_id or POLLY_DEFAULT_VOICES.get(self.engine, "Joanna")

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        text = _require_text(self, params)
        bucket = self.api.video_bucket
        if not bucket:
            raise ProviderError("VIDEO_BUCKET not configured", error_code="NOT_CONFIGURED", provider=self.name)

        voice_id = params.get("voice_id") or self.voice_id
        data = await self._aws_call(
            "start_speech_synthesis_task",
            Text=text,
            TextType="ssml" if text.lstrip().startswith("<speak") else "text",
            VoiceId=voice_id,
            Engine=self.engine,
            OutputFormat="mp3",
            SampleRate="24000",
            OutputS3BucketName=bucket,
            OutputS3KeyPrefix=f"audio/{self.engine}/",
        )

        task = data.get("SynthesisTask", {})
        logger.info(f"Polly synthesis task started: {task.get('TaskId')} ({self.engine}/{voice_id})")
        return {
            "engine": self.engine,
            "voice_id": voice_id,
            "task_id": task.get("TaskId"),
            "audio_url": task.get("OutputUri"),
            "status": (task.get("TaskStatus") or "scheduled").lower(),
            "characters": len(text),
        }


class ElevenLabsProvider(AudioProvider):
    name = "elevenlabs"

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        text = _require_text(self, params)
        base = (self.model_config.endpoint or self.api.elevenlabs_api_base).rstrip("/")
        voice_id = params.get("voice_id") or self.model_config.voice_id or ELEVENLABS_DEFAULT_VOICE

        response = await self._post(
            f"{base}/text-to-speech/{voice_id}/with-timestamps",
            headers={
                "xi-api-key": self.api.elevenlabs_api_key,
                "Content-Type": "application/json",
            },
            json={
                "text": text,
                "model_id": self.model_config.model or ELEVENLABS_DEFAULT_MODEL,
                "voice_settings": {
                    "stability": self.model_config.tunable("stability", 0.7),
                    "similarity_boost": self.model_config.tunable("similarityBoost", 0.75),
                },
                "output_format": self.model_config.tunable("outputFormat", "mp3_44100_128"),
            },
        )
        data = response.json()

        alignment = data.get("normalized_alignment") or data.get("alignment") or {}
        end_times = alignment.get("character_end_times_seconds", [])
        return {
            "engine": self.model_config.identifier,
            "voice_id": voice_id,
            "audio_base64": data.get("audio_base64", ""),
            "duration": max(end_times) if end_times else 0.0,
            "status": "completed",
            "characters": len(text),
        }


class AzureSpeechProvider(AudioProvider):
    name = "azure"

    def _ssml(self, text: str, voice: str) -> str:
        return (
            "<speak version='1.0' xml:lang='en-US'>"
            f"<voice name='{voice}'>{escape(text)}</voice>"
            "</speak>"
        )

    async def invoke(self, params: dict[str, Any]) -> dict[str, Any]:
        text = _require_text(self, params)
        region = self.model_config.region or self.api.azure_speech_region
        endpoint = self.model_config.endpoint or f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
        voice = params.get("voice_id") or self.model_config.voice_id or AZURE_DEFAULT_VOICE

        response = await self._post(
            endpoint,
            headers={
                "Ocp-Apim-Subscription-Key": self.api.azure_speech_key,
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": AZURE_OUTPUT_FORMAT,
            },
            content=self._ssml(text, voice).encode("utf-8"),
        )

        return {
            "engine": self.model_config.identifier,
            "voice_id": voice,
            "audio_base64": base64.b64encode(response.content).decode("ascii"),
            "status": "completed",
            "characters": len(text),
        }
