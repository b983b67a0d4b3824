import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .errors import ASRServiceError
from .filters import HallucinationFilter, load_filter_config

logger = logging.getLogger(__name__)

FALLBACK_PROMPT = "Quran recitation, Islamic sermon, Arabic speech, clear audio, no repetition."


@dataclass
class ASRResult:
    text: str
    segments: List[Dict[str, Any]] = field(default_factory=list)


def load_quran_context(path: str, max_verses: int = 500) -> str:
    """Join the first ayahs of a Quran JSON export (``data.surahs[].ayahs[].text``)."""
    if not path:
        return ""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        verses = [ayah["text"] for surah in data["data"]["surahs"] for ayah in surah["ayahs"]]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("Failed to load Quran data from %s: %s", path, exc)
        return ""
    context = " ".join(verses[:max_verses])
    logger.info("Loaded Quran context: %s...", context[:100])
    return context


class ASRService:
    """Whisper transcription client with hallucination cleanup."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        language: str = "ar",
        context: str = "",
        min_audio_bytes: int = 1000,
        timeout_s: float = 60.0,
        hallucination_filter: Optional[HallucinationFilter] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.context = context
        self.min_audio_bytes = min_audio_bytes
        self.filter = hallucination_filter or HallucinationFilter()
        self._endpoint = "https://api.openai.com/v1/audio/transcriptions"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    @property
    def prompt(self) -> str:
        # Whisper prompts are short; only a slice of the context fits
        if self.context:
            return f"Quranic recitation in Arabic. Context: {self.context[:200]}"
        return FALLBACK_PROMPT

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> ASRResult:
        if len(audio_bytes) < self.min_audio_bytes:
            logger.info("Skipping small file (likely silence): %d bytes", len(audio_bytes))
            return ASRResult(text="")

        if not self.api_key:
            raise ASRServiceError("OpenAI API key not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        files = {
            "file": (filename, audio_bytes, content_type),
            "model": (None, self.model),
            "language": (None, self.language),
            "prompt": (None, self.prompt),
            "temperature": (None, "0"),  # Less creative, fewer hallucinations
            "response_format": (None, "verbose_json"),
        }

        try:
            response = await self._client.post(self._endpoint, headers=headers, files=files)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("ASR request failed: %s", exc.response.text)
            raise ASRServiceError("ASR provider error") from exc
        except httpx.HTTPError as exc:
            logger.exception("ASR request crashed")
            raise ASRServiceError("ASR request failed") from exc

        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ASRServiceError("ASR provider returned an unexpected response")

        segments = data.get("segments") or []
        if segments:
            no_speech = max(s.get("no_speech_prob", 0.0) for s in segments)
            logger.debug("Transcript has %d segments, max no_speech_prob=%.2f", len(segments), no_speech)

        logger.info(f"Transcription result: {text!r}")
        return ASRResult(text=self.filter.clean_transcript(text), segments=segments)

    async def close(self) -> None:
        await self._client.aclose()


def build_asr_service() -> ASRService:
    return ASRService(
        api_key=settings.openai_api_key,
        model=settings.openai_asr_model,
        language=settings.source_lang,
        context=load_quran_context(settings.quran_context_path),
        min_audio_bytes=settings.min_audio_bytes,
        timeout_s=settings.asr_timeout_s,
        hallucination_filter=HallucinationFilter(
            load_filter_config(settings.filter_config_path, settings.filter_severity)
        ),
    )
