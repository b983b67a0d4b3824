from typing import Optional

import pytest

from tarjama.services.errors import UpstreamServiceError
from tarjama.services.history_service import HistoryRecorder, InMemoryHistoryStore
from tarjama.services.pipeline import TranslationPipeline
from tarjama.services.translation_cache import TranslationCache

from fakes import FakeTranslator


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def make_pipeline(history_store):
    def _make(translator: Optional[FakeTranslator] = None, **kwargs) -> TranslationPipeline:
        kwargs.setdefault("cache", TranslationCache())
        kwargs.setdefault("history", HistoryRecorder(store=history_store, retry_delay_s=0))
        return TranslationPipeline(translator or FakeTranslator(), **kwargs)

    return _make


@pytest.fixture
def failing_translator():
    return FakeTranslator(UpstreamServiceError("Translation provider error"))
