"""Text and identifier normalization used by the similarity scorer."""

from __future__ import annotations

import re
import unicodedata

# Trademark, registered, copyright and service marks
_MARKS_RE = re.compile(r"[™®©℠]")
_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")

CORPORATE_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "co",
        "company",
        "corp",
        "corporation",
        "ltd",
        "limited",
        "llc",
        "plc",
        "gmbh",
        "ag",
        "sa",
        "bv",
        "pty",
    }
)

GTIN_LENGTHS = (8, 12, 13, 14)


def strip_diacritics(value: str) -> str:
    """Remove accents: 'Bébé Confort' -> 'Bebe Confort'."""
    nfd = unicodedata.normalize("NFD", value)
    return "".join(c for c in nfd if unicodedata.category(c) != "Mn")


def normalize_text(value: str | None) -> str:
    """Case-fold, strip diacritics, trademark marks and punctuation, collapse whitespace.

    Punctuation becomes a word break, so "Vista-V2" and "Vista V2" normalize alike.
    """
    if not value:
        return ""
    # Marks go first: NFKC would expand "™" to "TM"
    text = _MARKS_RE.sub(" ", value)
    text = unicodedata.normalize("NFKC", text)
    text = strip_diacritics(text).casefold()
    text = _NON_WORD_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(value: str | None) -> list[str]:
    """Split normalized text into words."""
    normalized = normalize_text(value)
    return normalized.split() if normalized else []


def compact(value: str) -> str:
    """Drop whitespace from already-normalized text ("fox 3" -> "fox3")."""
    return value.replace(" ", "")


def normalize_brand(value: str | None) -> str:
    """Normalize a brand name for comparison.

    Trailing corporate suffixes are dropped ("Bugaboo Inc." -> "bugaboo") and
    the remaining words are joined without separators, so hyphenation and
    spacing variants ("Upp-a-baby", "UPPA baby") collapse to one form.
    """
    words = tokenize(value)
    while len(words) > 1 and words[-1] in CORPORATE_SUFFIXES:
        words.pop()
    return "".join(words)


def normalize_gtin(value: str | None) -> str | None:
    """Normalize a GTIN/EAN/UPC to its 14-digit form.

    Spaces, dashes and other separators are ignored. Identifiers of a length
    other than 8, 12, 13 or 14 digits are treated as absent.
    """
    if not value:
        return None
    digits = _NON_DIGIT_RE.sub("", value)
    if len(digits) not in GTIN_LENGTHS:
        return None
    return digits.zfill(14)
