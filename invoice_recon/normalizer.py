"""
Price and text normalization shared by every extractor.

Both helpers are lenient by contract: they never raise on garbled input.
"""

import re
import unicodedata
from typing import Any


# Yen signs (half- and full-width), the yen kanji and thousands separators
_PRICE_NOISE = re.compile(r"[,¥￥円]")

# Leading numeric prefix, matching how supplier exports are read elsewhere
_NUMERIC_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

_HALF_WIDTH_DAKUTEN = "ﾞ"
_HALF_WIDTH_HANDAKUTEN = "ﾟ"

# Half-width punctuation, prolonged sound mark and the katakana block
_HALF_WIDTH_KANA = re.compile(r"[｡-ﾟ]")


def normalize_price(value: Any) -> float:
    """
    Convert a price cell into a number.

    Numbers are returned unchanged. Strings have commas, yen signs and the
    yen kanji removed, then the leading numeric part is parsed. Anything
    empty or unparseable yields 0.

    Examples:
        "¥12,345円" -> 12345.0
        "" -> 0.0
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return 0.0

    cleaned = _PRICE_NOISE.sub("", value).strip()
    match = _NUMERIC_PREFIX.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def _full_width(char: str) -> str:
    # Standalone voicing marks compose to combining characters under NFKC;
    # map them to the spacing forms instead.
    if char == _HALF_WIDTH_DAKUTEN:
        return "゛"
    if char == _HALF_WIDTH_HANDAKUTEN:
        return "゜"
    return unicodedata.normalize("NFKC", char)


def convert_half_width_to_full_width(text: str) -> str:
    """
    Map half-width katakana to full-width katakana, character by character.

    A dakuten/handakuten following a kana is consumed and folded into the
    voiced form when one exists (``ｶﾞ`` -> ``ガ``, ``ﾊﾟ`` -> ``パ``).
    Characters outside the half-width kana block pass through untouched.
    """
    if not text:
        return text

    result: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if not _HALF_WIDTH_KANA.match(char):
            result.append(char)
            i += 1
            continue

        following = text[i + 1] if i + 1 < len(text) else ""
        if following in (_HALF_WIDTH_DAKUTEN, _HALF_WIDTH_HANDAKUTEN):
            composed = unicodedata.normalize("NFKC", char + following)
            if len(composed) == 1:
                result.append(composed)
                i += 2
                continue

        result.append(_full_width(char))
        i += 1

    return "".join(result)
