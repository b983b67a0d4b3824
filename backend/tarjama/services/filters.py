"""
Hallucination filters for speech-to-text and translation output.

Whisper reliably produces a small, enumerable set of phrases on silence or
noise ("thank you for watching", subscribe prompts, translator credits) and
degenerates into repetition loops on long noisy chunks. Everything here is a
cheap deterministic check that runs on every chunk:

1. Normalization (lowercase, trim, Arabic diacritics)
2. Boilerplate phrase matcher
3. Short hallucination matcher
4. Repeated character / short pattern matcher
5. Repetition loop matcher
6. Known hallucination stripper
"""

import json
import logging
import re
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


# ============================================================================
# DEFAULT DENYLISTS
# ============================================================================

DEFAULT_BOILERPLATE_PHRASES: List[str] = [
    # Closing credits
    "thank you for watching",
    "thanks for watching",
    "thank you for view",
    "thanks for view",
    "شكراً على المشاهدة",
    "شكرا على المشاهدة",
    # Channel promotion / translator credits
    "subscribe to the channel",
    "the translator for the channel",
    "amara.org",
    "اشتركوا في القناة",
    "لا تنسوا الاشتراك",
    "ترجمة نانسي قنقر",
]

DEFAULT_SHORT_HALLUCINATIONS: List[str] = [
    "you're welcome",
    "youre welcome",
    "you are welcome",
    "your welcome",
    "ur welcome",
    "welcome",
    "no problem",
    "no worries",
    "anytime",
    "عفواً",
    "عفوا",
    "أهلاً بك",
    "أهلا بك",
    "أهلاً",
    "أهلا",
    "مرحباً",
    "مرحبا",
]

# Stripped out of transcripts rather than suppressing them
DEFAULT_KNOWN_HALLUCINATIONS: List[str] = [
    "Nancy Quankar",
    "Subscribe to the channel",
    "The translator for the channel",
    "Amara.org",
    "Thanks for watching",
    "Amoudo",
    "Southerner",
    "converted to Islam",
    "اشتركوا في القناة",
    "لا تنسوا الاشتراك",
    "ترجمة نانسي قنقر",
]

# Harakat, tanween, shadda, sukun, superscript alef and tatweel
_ARABIC_DIACRITICS = re.compile(r"[\u0610-\u061A\u064B-\u065F\u0670\u06D6-\u06ED\u0640]")
_WHITESPACE = re.compile(r"\s+")


class FilterVerdict(Enum):
    """Outcome of running the pattern matchers over a piece of text."""
    CLEAN = "clean"
    BOILERPLATE_PHRASE = "boilerplate_phrase"
    SHORT_HALLUCINATION = "short_hallucination"
    REPEATED_CHARACTER_ARTIFACT = "repeated_character_artifact"
    REPETITION_LOOP = "repetition_loop"


class FilterSeverity(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"  # Skips the short hallucination matcher


class FilterConfig(BaseModel):
    """Denylists and thresholds, loadable from JSON so they can change without a deploy."""

    model_config = ConfigDict(populate_by_name=True)

    boilerplate_phrases: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BOILERPLATE_PHRASES), alias="boilerplatePhrases"
    )
    short_hallucinations: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SHORT_HALLUCINATIONS), alias="shortHallucinations"
    )
    known_hallucinations: List[str] = Field(
        default_factory=lambda: list(DEFAULT_KNOWN_HALLUCINATIONS), alias="knownHallucinations"
    )
    severity: FilterSeverity = FilterSeverity.STRICT

    min_artifact_length: int = Field(10, alias="minArtifactLength")
    max_char_ratio: float = Field(0.7, alias="maxCharRatio")
    max_pattern_length: int = Field(3, alias="maxPatternLength")
    min_pattern_repeats: int = Field(5, alias="minPatternRepeats")
    loop_min_words: int = Field(10, alias="loopMinWords")
    loop_min_unique_ratio: float = Field(0.2, alias="loopMinUniqueRatio")

    @classmethod
    def from_file(cls, path: str, **overrides) -> "FilterConfig":
        """Load a config from a JSON file; keys missing from the file keep their defaults."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        data.update(overrides)
        return cls.model_validate(data)


# ============================================================================
# NORMALIZATION
# ============================================================================

def normalize(text: str) -> str:
    """Lowercase and trim. Idempotent."""
    return text.lower().strip()


def strip_diacritics(text: str) -> str:
    """Remove Arabic diacritics so "شكراً" and "شكرا" compare equal."""
    return _ARABIC_DIACRITICS.sub("", text)


def contains_phrase(text: str, phrase: str) -> bool:
    """Substring containment, case-insensitive for Latin and diacritic-insensitive for Arabic."""
    haystack = normalize(text)
    needle = normalize(phrase)
    if not needle:
        return False
    if needle in haystack:
        return True
    bare_needle = strip_diacritics(needle)
    return bool(bare_needle) and bare_needle in strip_diacritics(haystack)


def find_phrase(text: str, phrases: List[str]) -> Optional[str]:
    """Return the first listed phrase found anywhere in text."""
    for phrase in phrases:
        if contains_phrase(text, phrase):
            return phrase
    return None


# ============================================================================
# STATISTICAL MATCHERS
# ============================================================================

def has_repeated_characters(
    text: str,
    *,
    min_length: int = 10,
    max_char_ratio: float = 0.7,
    max_pattern_length: int = 3,
    min_repeats: int = 5,
) -> bool:
    """Detect degenerate output such as "JJJJJJJJJJ" or "ABCABCABCABCABC"."""
    compact = _WHITESPACE.sub("", text)
    if len(compact) < min_length:
        return False

    # A single character dominating the text
    most_common = Counter(compact).most_common(1)[0][1]
    if most_common / len(compact) > max_char_ratio:
        return True

    # A short prefix repeating back to back from position 0
    for pattern_len in range(1, max_pattern_length + 1):
        if len(compact) < pattern_len * min_repeats:
            continue
        pattern = compact[:pattern_len]
        matches = 0
        for i in range(0, len(compact) - pattern_len + 1, pattern_len):
            if compact[i:i + pattern_len] != pattern:
                break
            matches += 1
        if matches >= min_repeats:
            return True

    return False


def is_repetition_loop(text: str, *, min_words: int = 10, min_unique_ratio: float = 0.2) -> bool:
    """True when a long transcript is dominated by a tiny repeating vocabulary."""
    words = text.split()
    if len(words) <= min_words:
        return False
    return len(set(words)) / len(words) < min_unique_ratio


def strip_known_hallucinations(text: str, phrases: List[str]) -> str:
    """Remove every occurrence of the listed phrases (case-insensitive) and re-trim."""
    cleaned = text
    for phrase in phrases:
        pattern = re.compile(re.escape(phrase), re.IGNORECASE)
        if pattern.search(cleaned):
            logger.info("Filtered hallucination: %r", phrase)
            cleaned = pattern.sub("", cleaned).strip()
    return cleaned.strip()


# ============================================================================
# FILTER
# ============================================================================

class HallucinationFilter:
    """Runs the matchers in priority order using a FilterConfig."""

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()

    def is_repeated_character_artifact(self, text: str) -> bool:
        cfg = self.config
        return has_repeated_characters(
            text,
            min_length=cfg.min_artifact_length,
            max_char_ratio=cfg.max_char_ratio,
            max_pattern_length=cfg.max_pattern_length,
            min_repeats=cfg.min_pattern_repeats,
        )

    def is_boilerplate(self, text: str) -> bool:
        return find_phrase(text, self.config.boilerplate_phrases) is not None

    def is_short_hallucination(self, text: str) -> bool:
        if self.config.severity == FilterSeverity.LENIENT:
            return False
        return find_phrase(text, self.config.short_hallucinations) is not None

    def is_repetition_loop(self, text: str) -> bool:
        return is_repetition_loop(
            text,
            min_words=self.config.loop_min_words,
            min_unique_ratio=self.config.loop_min_unique_ratio,
        )

    def classify(self, text: str) -> FilterVerdict:
        """
        Classify text for the translation path.

        Order: repeated characters, boilerplate, short hallucination. The first
        positive match wins; any match means the text must not be shown.
        """
        if self.is_repeated_character_artifact(text):
            return FilterVerdict.REPEATED_CHARACTER_ARTIFACT
        if self.is_boilerplate(text):
            return FilterVerdict.BOILERPLATE_PHRASE
        if self.is_short_hallucination(text):
            return FilterVerdict.SHORT_HALLUCINATION
        return FilterVerdict.CLEAN

    def passes(self, text: str) -> bool:
        return self.classify(text) is FilterVerdict.CLEAN

    def clean_transcript(self, text: str) -> str:
        """Strip known hallucinations, then drop the whole transcript if it is a repetition loop."""
        cleaned = strip_known_hallucinations(text, self.config.known_hallucinations)
        if self.is_repetition_loop(cleaned):
            logger.info("Filtered repetition loop: %r...", cleaned[:50])
            return ""
        return cleaned


def load_filter_config(path: str = "", severity: str = "strict") -> FilterConfig:
    """Build the filter config from an optional JSON file plus the configured severity."""
    if path:
        logger.info("Loading filter config from %s", path)
        return FilterConfig.from_file(path, severity=severity)
    return FilterConfig(severity=severity)
