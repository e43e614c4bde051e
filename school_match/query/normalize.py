"""Text normalization for deterministic query parsing."""

from __future__ import annotations

import re
from collections.abc import Iterable

_MULTISPACE_RE = re.compile(r"\s+")
_REMAINDER_NON_WORD_RE = re.compile(r"[^a-zа-яәғқңөұүһі0-9\s\-]+")


def normalize_query(text: str) -> str:
    """Normalize a raw search phrase for keyword and numeric matching.

    Normalization is intentionally conservative:
        - Lowercase.
        - Replace `ё` -> `е`.
        - Map unicode dashes to an ASCII hyphen and non-breaking spaces to spaces.
        - Collapse whitespace.

    Punctuation is kept: comparison signs (`<=`, `>`), currency symbols and "4+" carry meaning
    for the numeric extractors.
    """

    if not isinstance(text, str):
        return ""

    value = text.lower().replace("ё", "е")
    value = value.replace("—", "-").replace("–", "-").replace("−", "-")
    value = value.replace("\u00a0", " ").replace("\u202f", " ")
    return _MULTISPACE_RE.sub(" ", value).strip()


def clean_remainder(text: str, stop_words: Iterable[str]) -> str:
    """Turn leftover query text into residual full-text search terms.

    Punctuation is dropped, stop words are removed and tokens of two characters or fewer are
    discarded unless they are purely numeric.
    """

    stop = frozenset(stop_words)
    value = _REMAINDER_NON_WORD_RE.sub(" ", text)

    tokens: list[str] = []
    for raw in value.split():
        token = raw.strip("-")
        if not token or token in stop:
            continue
        if len(token) <= 2 and not token.isdigit():
            continue
        tokens.append(token)
    return " ".join(tokens)
