import hashlib
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from .filters import normalize

logger = logging.getLogger(__name__)


class TranslationCache:
    """Bounded FIFO cache with TTL, keyed by a hash of the normalized source text.

    Eviction is by insertion order, not access order: reading an entry never
    extends its life. Neither method awaits, so each is atomic on the event loop.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock

    @staticmethod
    def make_key(text: str) -> str:
        return hashlib.md5(normalize(text).encode("utf-8")).hexdigest()

    def get(self, text: str) -> Optional[str]:
        key = self.make_key(text)
        entry = self._cache.get(key)
        if entry is None:
            return None
        translation, inserted_at = entry
        if self._clock() - inserted_at >= self._ttl:
            del self._cache[key]
            return None
        return translation

    def put(self, text: str, translation: str) -> None:
        # Overwriting keeps the entry's original position in the FIFO order
        self._cache[self.make_key(text)] = (translation, self._clock())
        while len(self._cache) > self._max_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Evicted oldest cache entry %s", evicted)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, text: str) -> bool:
        return self.make_key(text) in self._cache

    def __len__(self) -> int:
        return len(self._cache)
