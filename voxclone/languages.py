"""
Language metadata and auto-detection.

- LanguageCatalog: lookup interface (code -> name, locale, script)
- StaticLanguageCatalog: built-in table
- detect_language(): Unicode script ranges first, then common-word
  scoring for Latin-script text (English when nothing scores)
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanguageInfo:
    name: str
    locale: str
    script: str


class LanguageCatalog(Protocol):
    """Static language metadata lookup."""
    def info(self, code: str) -> LanguageInfo | None: ...
    def codes(self) -> list[str]: ...


_LANGUAGES = {
    "en": LanguageInfo("English", "en-US", "latin"),
    "fa": LanguageInfo("Persian", "fa-IR", "persian"),
    "ar": LanguageInfo("Arabic", "ar-SA", "arabic"),
    "zh": LanguageInfo("Chinese", "zh-CN", "chinese"),
    "hi": LanguageInfo("Hindi", "hi-IN", "devanagari"),
    "es": LanguageInfo("Spanish", "es-ES", "latin"),
    "fr": LanguageInfo("French", "fr-FR", "latin"),
    "de": LanguageInfo("German", "de-DE", "latin"),
    "ja": LanguageInfo("Japanese", "ja-JP", "japanese"),
    "ko": LanguageInfo("Korean", "ko-KR", "korean"),
    "ru": LanguageInfo("Russian", "ru-RU", "cyrillic"),
    "pt": LanguageInfo("Portuguese", "pt-BR", "latin"),
    "it": LanguageInfo("Italian", "it-IT", "latin"),
    "tr": LanguageInfo("Turkish", "tr-TR", "latin"),
    "pl": LanguageInfo("Polish", "pl-PL", "latin"),
    "nl": LanguageInfo("Dutch", "nl-NL", "latin"),
    "sv": LanguageInfo("Swedish", "sv-SE", "latin"),
    "da": LanguageInfo("Danish", "da-DK", "latin"),
    "no": LanguageInfo("Norwegian", "no-NO", "latin"),
    "fi": LanguageInfo("Finnish", "fi-FI", "latin"),
    "he": LanguageInfo("Hebrew", "he-IL", "hebrew"),
    "th": LanguageInfo("Thai", "th-TH", "thai"),
    "vi": LanguageInfo("Vietnamese", "vi-VN", "latin"),
    "uk": LanguageInfo("Ukrainian", "uk-UA", "cyrillic"),
    "cs": LanguageInfo("Czech", "cs-CZ", "latin"),
    "hu": LanguageInfo("Hungarian", "hu-HU", "latin"),
    "ro": LanguageInfo("Romanian", "ro-RO", "latin"),
    "bg": LanguageInfo("Bulgarian", "bg-BG", "cyrillic"),
    "el": LanguageInfo("Greek", "el-GR", "greek"),
    "ur": LanguageInfo("Urdu", "ur-PK", "arabic"),
    "bn": LanguageInfo("Bengali", "bn-BD", "bengali"),
    "ta": LanguageInfo("Tamil", "ta-IN", "tamil"),
    "ka": LanguageInfo("Georgian", "ka-GE", "georgian"),
    "hy": LanguageInfo("Armenian", "hy-AM", "armenian"),
    "az": LanguageInfo("Azerbaijani", "az-AZ", "latin"),
    "kk": LanguageInfo("Kazakh", "kk-KZ", "cyrillic"),
    "uz": LanguageInfo("Uzbek", "uz-UZ", "latin"),
    "tg": LanguageInfo("Tajik", "tg-TJ", "cyrillic"),
    "sw": LanguageInfo("Swahili", "sw-KE", "latin"),
    "am": LanguageInfo("Amharic", "am-ET", "ethiopic"),
    "ms": LanguageInfo("Malay", "ms-MY", "latin"),
    "id": LanguageInfo("Indonesian", "id-ID", "latin"),
    "tl": LanguageInfo("Tagalog", "tl-PH", "latin"),
    "eo": LanguageInfo("Esperanto", "eo", "latin"),
}


class StaticLanguageCatalog:
    """Built-in language table."""

    def __init__(self, languages: dict[str, LanguageInfo] | None = None):
        self._languages = dict(_LANGUAGES if languages is None else languages)

    def info(self, code: str) -> LanguageInfo | None:
        return self._languages.get(code)

    def codes(self) -> list[str]:
        return list(self._languages)


def supported_languages(catalog: LanguageCatalog | None = None) -> list[str]:
    """Language codes known to the catalog."""
    return (catalog or StaticLanguageCatalog()).codes()


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

# Letters Persian uses and standard Arabic does not
_PERSIAN_LETTERS = set("پچژگکی")

# Checked in order; kana before Han so Japanese with kanji is not Chinese
_SCRIPT_RANGES = [
    ("arabic", [("\u0600", "\u06FF"), ("\u0750", "\u077F")]),
    ("ja", [("\u3040", "\u309F"), ("\u30A0", "\u30FF")]),
    ("zh", [("\u4E00", "\u9FFF")]),
    ("ko", [("\uAC00", "\uD7AF")]),
    ("ru", [("\u0400", "\u04FF")]),
    ("el", [("\u0370", "\u03FF")]),
    ("he", [("\u0590", "\u05FF")]),
    ("th", [("\u0E00", "\u0E7F")]),
    ("hi", [("\u0900", "\u097F")]),
]

_COMMON_WORDS = {
    "en": {"the", "and", "is", "are", "of", "to", "in", "that", "it", "you", "was", "for",
           "with", "this", "have", "be", "not", "on", "what", "my", "hello", "how"},
    "es": {"el", "la", "los", "las", "que", "y", "es", "por", "con", "para", "una", "pero",
           "más", "muy", "cuando", "también", "está", "hola", "gracias", "cómo"},
    "fr": {"le", "les", "et", "est", "un", "une", "il", "elle", "pour", "dans", "avec", "pas",
           "être", "avoir", "sur", "ce", "je", "vous", "nous", "bonjour", "merci"},
    "de": {"der", "die", "das", "und", "ist", "nicht", "mit", "sich", "auf", "für", "ein",
           "eine", "ich", "sie", "wir", "auch", "dass", "haben", "wird", "über"},
    "it": {"il", "di", "che", "è", "non", "per", "una", "sono", "come", "ma", "più", "anche",
           "questo", "quello", "molto", "ciao", "grazie", "della", "gli"},
    "pt": {"o", "os", "do", "da", "em", "não", "uma", "com", "mais", "mas", "foi", "ele",
           "ela", "você", "muito", "obrigado", "está", "isso", "também"},
    "nl": {"de", "het", "een", "en", "van", "dat", "op", "voor", "met", "zijn", "maar",
           "niet", "ik", "je", "wij", "naar", "ook", "hallo", "dank"},
}

_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)


def _in_ranges(ch: str, ranges: list[tuple[str, str]]) -> bool:
    return any(lo <= ch <= hi for lo, hi in ranges)


def _detect_script(text: str) -> str | None:
    for code, ranges in _SCRIPT_RANGES:
        if any(_in_ranges(ch, ranges) for ch in text):
            if code == "arabic":
                return "fa" if any(ch in _PERSIAN_LETTERS for ch in text) else "ar"
            return code
    return None


def _detect_latin(text: str) -> str:
    words = _WORD.findall(text.lower())
    best, best_score = "en", 0
    for code, vocab in _COMMON_WORDS.items():
        score = sum(1 for w in words if w in vocab)
        if score > best_score:
            best, best_score = code, score
    return best


def detect_language(text: str) -> str:
    """
    Best-guess language code for ``text``.

    Example:
        detect_language("سلام دنیا")            # "fa"
        detect_language("Der Hund ist nicht hier")  # "de"
    """
    code = _detect_script(text) or _detect_latin(text)
    logger.debug(f"Detected language '{code}' for: {text[:50]!r}")
    return code
