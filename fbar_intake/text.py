"""Transliteration of Turkish letters to their closest ASCII equivalents."""
from __future__ import annotations

_TURKISH_TO_ASCII = str.maketrans(
    {
        "ı": "i",
        "İ": "I",
        "ğ": "g",
        "Ğ": "G",
        "ü": "u",
        "Ü": "U",
        "ş": "s",
        "Ş": "S",
        "ö": "o",
        "Ö": "O",
        "ç": "c",
        "Ç": "C",
    }
)


def transliterate(text: str) -> str:
    """Replace Turkish-specific letters; all other characters pass through.

    The table only maps onto ASCII letters it never rewrites, so applying the
    function twice gives the same result as applying it once.
    """

    return text.translate(_TURKISH_TO_ASCII)


__all__ = ["transliterate"]
