import logging
import time
from typing import Optional

import httpx

from ..config import settings
from .errors import UpstreamServiceError

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

SYSTEM_INSTRUCTION = """You are an expert translator for Islamic religious content from Arabic to English.

RULES:
1. Preserve Islamic terms in standard English forms:
   - Allah (never "God")
   - Subhanahu wa ta'ala (SWT) when referring to Allah
   - Sallallahu alayhi wa sallam (PBUH) for Prophet Muhammad
   - Radiyallahu anhu/anha (RA) for companions
   - Keep terms: Salah, Zakah, Sawm, Hajj, Jannah, Jahannam, Quran, Hadith, Sunnah, Iman
2. Translate naturally for English-speaking Muslims familiar with basic Islamic terminology
3. Maintain the respectful, formal tone of religious discourse
4. Only output the translation, no explanations or preambles"""


class TranslationService:
    """Single-shot translation through the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 500,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        # No client-level timeout: the pipeline owns the time budget
        self._client = client or httpx.AsyncClient(timeout=None)

    async def translate(self, text: str, system_instruction: str = SYSTEM_INSTRUCTION) -> str:
        if not self.api_key:
            raise UpstreamServiceError("OpenAI API key not configured")

        start_time = time.perf_counter()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": text},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.post(OPENAI_CHAT_URL, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Translation request failed: %s", exc.response.text)
            raise UpstreamServiceError("Translation provider error") from exc
        except httpx.HTTPError as exc:
            logger.error("Translation request crashed: %s", exc)
            raise UpstreamServiceError("Translation request failed") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise UpstreamServiceError("Translation provider returned an unexpected response.")

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"OpenAI translation took {duration_ms:.1f}ms")
        return (content or "").strip()

    async def close(self) -> None:
        await self._client.aclose()


def build_translation_service() -> TranslationService:
    return TranslationService(
        api_key=settings.openai_api_key,
        model=settings.openai_translation_model,
        temperature=settings.translation_temperature,
        max_tokens=settings.translation_max_tokens,
    )
