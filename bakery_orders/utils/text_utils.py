"""
Text helpers for catalog codes and contact details.
"""
import re
import unicodedata

_NON_CODE_CHARS = re.compile(r"[^a-z0-9]+")
# characters with no NFD decomposition to a plain ASCII letter
_FOLD_MAP = str.maketrans({"ı": "i", "ß": "ss", "ø": "o", "æ": "ae"})


def to_code(text: str) -> str:
    """
    Slug used as a product code: ASCII-folded, lower-cased, runs of anything
    else collapsed to a single underscore.

    >>> to_code("Su Böreği")
    'su_boregi'
    """
    folded = unicodedata.normalize("NFD", str(text or "").translate(_FOLD_MAP))
    stripped = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return _NON_CODE_CHARS.sub("_", stripped.lower().translate(_FOLD_MAP)).strip("_")


_NON_DIGITS = re.compile(r"\D")


def normalize_phone(value: str) -> str:
    """
    Digits-only phone number in Turkish country format where the input
    looks like a local number: ``0555...`` and ``555...`` become ``90555...``.
    Returns an empty string for blank input.
    """
    digits = _NON_DIGITS.sub("", str(value or ""))
    if len(digits) == 11 and digits.startswith("0"):
        return "90" + digits[1:]
    if len(digits) == 10:
        return "90" + digits
    return digits
