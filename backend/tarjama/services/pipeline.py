import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from ..config import settings
from .errors import UpstreamServiceError, ValidationError
from .filters import FilterVerdict, HallucinationFilter, load_filter_config
from .history_service import HistoryRecorder, TranslationRecord, build_history_store
from .translation_cache import TranslationCache
from .translation_service import SYSTEM_INSTRUCTION, build_translation_service

logger = logging.getLogger(__name__)


class Translator(Protocol):
    async def translate(self, text: str, system_instruction: str) -> str:
        ...


@dataclass
class TranslationOutcome:
    text: str
    cached: bool
    processing_time_ms: float
    filtered: Optional[bool] = None


class TranslationPipeline:
    """Validates, filters, caches and translates one chunk of transcribed speech.

    Flow per request:
        validate -> input filters -> cache (re-filtered) -> translate
        -> output filters -> cache write -> history (background) -> return

    Any filter match ends the request with empty text and ``filtered=True``.
    Only filter-passing translations are cached or written to history.
    """

    def __init__(
        self,
        translator: Translator,
        *,
        cache: Optional[TranslationCache] = None,
        hallucination_filter: Optional[HallucinationFilter] = None,
        history: Optional[HistoryRecorder] = None,
        system_instruction: str = SYSTEM_INSTRUCTION,
        max_text_length: int = 5000,
        timeout_s: Optional[float] = None,
        source_lang: str = "ar",
        target_lang: str = "en",
    ):
        self.translator = translator
        self.cache = cache if cache is not None else TranslationCache()
        self.filter = hallucination_filter or HallucinationFilter()
        self.history = history or HistoryRecorder(store=None)
        self.system_instruction = system_instruction
        self.max_text_length = max_text_length
        self.timeout_s = timeout_s
        self.source_lang = source_lang
        self.target_lang = target_lang

        # Stats for monitoring
        self._total_requests = 0
        self._cache_hits = 0
        self._stale_cache_hits = 0
        self._filtered_inputs = 0
        self._filtered_outputs = 0
        self._upstream_errors = 0

    def validate(self, text: Any, room_id: Any = None) -> str:
        """Return the trimmed text or raise ValidationError."""
        if text is None or text == "":
            raise ValidationError("No text provided")
        if not isinstance(text, str):
            raise ValidationError("Invalid text format")
        trimmed = text.strip()
        if not trimmed:
            raise ValidationError("Text is empty")
        if len(trimmed) > self.max_text_length:
            raise ValidationError(f"Text too long. Maximum {self.max_text_length} characters.")
        if room_id is not None and not isinstance(room_id, str):
            raise ValidationError("Invalid roomId format")
        return trimmed

    async def translate(self, text: Any, *, user_id: str, room_id: Any = None) -> TranslationOutcome:
        start_time = time.perf_counter()
        trimmed = self.validate(text, room_id)
        self._total_requests += 1

        verdict = self.filter.classify(trimmed)
        if verdict is not FilterVerdict.CLEAN:
            self._filtered_inputs += 1
            logger.info("Filtered input (%s) - returning empty", verdict.value)
            return self._filtered(start_time)

        logger.info(f"User {user_id}, text length: {len(trimmed)}")

        cached = self.cache.get(trimmed)
        if cached is not None:
            if self.filter.passes(cached):
                self._cache_hits += 1
                outcome = TranslationOutcome(text=cached, cached=True, processing_time_ms=self._elapsed(start_time))
                logger.info(f"Cached response in {outcome.processing_time_ms:.0f}ms")
                return outcome
            # Filters tightened since this was cached, fall through to a fresh translation
            self._stale_cache_hits += 1
            logger.info("Cached translation failed filters - ignoring cache")

        translation = await self._call_translator(text)

        if not translation:
            self._filtered_outputs += 1
            logger.info("Translation provider returned no content - returning empty")
            return self._filtered(start_time)

        verdict = self.filter.classify(translation)
        if verdict is not FilterVerdict.CLEAN:
            self._filtered_outputs += 1
            logger.info("Filtered translation (%s) - returning empty", verdict.value)
            return self._filtered(start_time)

        self.cache.put(trimmed, translation)

        processing_time_ms = self._elapsed(start_time)
        logger.info(f"Completed in {processing_time_ms:.0f}ms")

        record = TranslationRecord(
            source_text=trimmed,
            target_text=translation,
            source_lang=self.source_lang,
            target_lang=self.target_lang,
            metadata={"processingTime": processing_time_ms},
        )
        record.metadata["timestamp"] = record.created_at.isoformat()
        self.history.record(record, user_id=user_id, room_id=room_id)

        return TranslationOutcome(text=translation, cached=False, processing_time_ms=processing_time_ms)

    async def _call_translator(self, text: str) -> str:
        try:
            if self.timeout_s:
                return await asyncio.wait_for(
                    self.translator.translate(text, self.system_instruction),
                    timeout=self.timeout_s,
                )
            return await self.translator.translate(text, self.system_instruction)
        except asyncio.TimeoutError:
            self._upstream_errors += 1
            logger.warning(f"Translation timeout after {self.timeout_s}s")
            raise UpstreamServiceError(f"Translation timed out after {self.timeout_s}s")
        except UpstreamServiceError:
            self._upstream_errors += 1
            raise

    def _filtered(self, start_time: float) -> TranslationOutcome:
        return TranslationOutcome(text="", cached=False, processing_time_ms=self._elapsed(start_time), filtered=True)

    @staticmethod
    def _elapsed(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "total_requests": self._total_requests,
            "cache_hits": self._cache_hits,
            "stale_cache_hits": self._stale_cache_hits,
            "cache_hit_rate": self._cache_hits / max(1, self._total_requests),
            "cache_size": len(self.cache),
            "filtered_inputs": self._filtered_inputs,
            "filtered_outputs": self._filtered_outputs,
            "upstream_errors": self._upstream_errors,
            "pending_history_writes": self.history.pending,
        }


def build_pipeline(translator: Optional[Translator] = None) -> TranslationPipeline:
    """Wire a pipeline from application settings."""
    config = load_filter_config(settings.filter_config_path, settings.filter_severity)
    timeout_ms = settings.translation_timeout_ms
    return TranslationPipeline(
        translator or build_translation_service(),
        cache=TranslationCache(
            max_size=settings.max_cache_size,
            ttl_seconds=settings.translation_cache_ttl_seconds,
        ),
        hallucination_filter=HallucinationFilter(config),
        history=HistoryRecorder(
            store=build_history_store(),
            retry_delay_s=settings.history_retry_delay_ms / 1000.0,
        ),
        max_text_length=settings.max_text_length,
        timeout_s=timeout_ms / 1000.0 if timeout_ms > 0 else None,
        source_lang=settings.source_lang,
        target_lang=settings.target_lang,
    )
