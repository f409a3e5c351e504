"""Language detection for resume and command text.

Scripts decide first (Hebrew, Arabic, Cyrillic, Latin). Longer Latin-script
text is then handed to langdetect to tell English from other Latin languages.
Language is metadata only: it picks RTL rendering and prompt language but
never feeds into scoring.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

logger = logging.getLogger(__name__)

# langdetect is randomized; a fixed seed keeps results repeatable.
DetectorFactory.seed = 0

DEFAULT_LANGUAGE = "en"

RTL_LANGUAGES = {"he", "ar", "fa", "ur"}

LATIN_LANGUAGES = {"en", "es"}
MIN_WORDS_FOR_LANGDETECT = 8
MIN_LANGDETECT_PROBABILITY = 0.7

_LANGUAGE_RULES: List[Tuple[str, re.Pattern]] = [
    ("he", re.compile(r"[\u0590-\u05FF]")),
    ("ar", re.compile(r"[\u0600-\u06FF]")),
    ("fa", re.compile(r"[\u0750-\u077F\u08A0-\u08FF]")),
    ("ru", re.compile(r"[\u0400-\u04FF]")),
    ("es", re.compile(r"[áéíóúñüÁÉÍÓÚÑÜ]")),
    ("en", re.compile(r"[A-Za-z]")),
]

_LETTERS = re.compile(r"[A-Za-z\u00C0-\u024F\u0400-\u04FF\u0590-\u05FF\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF]")

_MODEL_PROMPT = (
    "What language is the following text written in? Reply with just the ISO 639-1 code "
    "(for example en, he, es).\n\nText:\n{text}"
)


@dataclass(frozen=True)
class LanguageDetection:
    lang: str
    confidence: float
    rtl: bool
    source: str = "heuristic"

    def to_dict(self) -> Dict[str, Any]:
        return {"lang": self.lang, "confidence": self.confidence, "rtl": self.rtl, "source": self.source}


def is_rtl(lang: str) -> bool:
    return lang in RTL_LANGUAGES


def detect_language(text: str, default: str = DEFAULT_LANGUAGE) -> LanguageDetection:
    """Guess the dominant language of *text* from the scripts it uses.

    Two scripts with similar shares (second at least 25% and within 20
    points of the first) are reported as ``mixed``.
    """
    sanitized = (text or "").strip()
    if not sanitized:
        return LanguageDetection(default, 0.0, is_rtl(default))

    total = len(_LETTERS.findall(sanitized))
    if not total:
        return LanguageDetection(default, 0.2, is_rtl(default))

    counts = {lang: len(pattern.findall(sanitized)) for lang, pattern in _LANGUAGE_RULES}
    ranked = sorted(((lang, n) for lang, n in counts.items() if n > 0), key=lambda item: item[1], reverse=True)
    if not ranked:
        return LanguageDetection(default, 0.25, is_rtl(default))

    primary_lang, primary_count = ranked[0]
    primary = primary_count / total
    second = ranked[1][1] / total if len(ranked) > 1 else 0.0

    if len(ranked) > 1 and second >= 0.25 and abs(primary - second) <= 0.2:
        lang = "mixed"
        rtl = any(is_rtl(code) for code, _ in ranked[:2])
        confidence = max(0.4, min(0.65, (primary + second) / 1.5))
    else:
        lang = primary_lang
        rtl = is_rtl(primary_lang)
        if primary >= 0.75:
            confidence = 0.92
        elif primary >= 0.55:
            confidence = 0.78
        elif primary >= 0.35:
            confidence = 0.62
        else:
            confidence = 0.45

    if total < 6:
        confidence = min(confidence, 0.6)
    return _refine_latin(sanitized, LanguageDetection(lang, confidence, rtl))


def _refine_latin(text: str, detection: LanguageDetection) -> LanguageDetection:
    """Let langdetect name the language of longer Latin-script text."""
    if detection.lang not in LATIN_LANGUAGES or len(text.split()) < MIN_WORDS_FOR_LANGDETECT:
        return detection
    try:
        candidates = detect_langs(text)
    except LangDetectException as e:
        logger.debug(f"langdetect could not classify text: {e}")
        return detection
    if not candidates or candidates[0].prob < MIN_LANGDETECT_PROBABILITY:
        return detection

    code = candidates[0].lang.split("-")[0].lower()
    return replace(
        detection,
        lang=code,
        rtl=is_rtl(code),
        confidence=round(max(detection.confidence, min(candidates[0].prob, 0.95)), 2),
        source="langdetect",
    )


async def resolve_language(
    text: str,
    completion: Optional[Any] = None,
    min_confidence: float = 0.75,
    timeout_seconds: float = 5.0,
    default: str = DEFAULT_LANGUAGE,
) -> LanguageDetection:
    """Heuristic detection, refined by the LLM when the heuristic is unsure.

    Model failures fall back to the heuristic result.
    """
    heuristic = detect_language(text, default)
    if completion is None or heuristic.confidence >= min_confidence or not (text or "").strip():
        return heuristic

    try:
        raw = await asyncio.wait_for(
            completion(_MODEL_PROMPT.format(text=text[:500]), max_tokens=5, temperature=0.0),
            timeout=timeout_seconds,
        )
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"Language model detection failed, using heuristic: {e}")
        return heuristic

    code = re.sub(r"[^a-z]", "", (raw or "").strip().lower())[:3]
    if len(code) not in (2, 3):
        return heuristic
    return replace(heuristic, lang=code, rtl=is_rtl(code), confidence=max(heuristic.confidence, 0.8), source="model")
