"""
Grapheme to phoneme conversion.

Tables ship for Persian, Arabic and English. Any other language gets one
phoneme per character. Whitespace and punctuation become the pause
phoneme; runs of pauses collapse into one.
"""

import unicodedata

PAUSE = "_"

PERSIAN = {
    "ا": "a", "آ": "aa", "ب": "b", "پ": "p", "ت": "t", "ث": "s", "ج": "j",
    "چ": "ch", "ح": "h", "خ": "kh", "د": "d", "ذ": "z", "ر": "r", "ز": "z",
    "ژ": "zh", "س": "s", "ش": "sh", "ص": "s", "ض": "z", "ط": "t", "ظ": "z",
    "ع": "'", "غ": "gh", "ف": "f", "ق": "gh", "ک": "k", "گ": "g", "ل": "l",
    "م": "m", "ن": "n", "و": "v", "ه": "h", "ی": "i",
}

ARABIC = {
    "ا": "a", "أ": "'a", "إ": "'i", "آ": "aa", "ب": "b", "ت": "t", "ث": "th",
    "ج": "j", "ح": "h", "خ": "kh", "د": "d", "ذ": "dh", "ر": "r", "ز": "z",
    "س": "s", "ش": "sh", "ص": "s", "ض": "d", "ط": "t", "ظ": "z", "ع": "'",
    "غ": "gh", "ف": "f", "ق": "q", "ك": "k", "ل": "l", "م": "m", "ن": "n",
    "ه": "h", "و": "w", "ي": "y", "ى": "a", "ة": "h", "ء": "'",
    # Short-vowel diacritics
    "\u064E": "a", "\u064F": "u", "\u0650": "i",
}

TABLES = {"fa": PERSIAN, "ar": ARABIC}


def _is_pause(ch: str) -> bool:
    return ch.isspace() or unicodedata.category(ch).startswith("P")


def to_phonemes(text: str, language: str) -> list[str]:
    """
    Ordered phoneme sequence for ``text``.

    Example:
        to_phonemes("Hi, you", "en")  # ['h', 'i', '_', 'y', 'o', 'u']
    """
    table = TABLES.get(language)
    out: list[str] = []
    for ch in text:
        if _is_pause(ch):
            if out and out[-1] != PAUSE:
                out.append(PAUSE)
            continue
        if table is not None:
            phoneme = table.get(ch, ch)
        elif language == "en":
            phoneme = ch.lower()
        else:
            phoneme = ch
        out.append(phoneme)
    # Trailing pause carries no sound
    if out and out[-1] == PAUSE:
        out.pop()
    return out
