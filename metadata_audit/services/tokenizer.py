"""Tokenization and stopword filtering for listing text."""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable

_NON_WORD_RE = re.compile(r"[\W_]+", re.UNICODE)


def tokenize(text: str | None) -> list[str]:
    """Lower-case ``text`` and split it into word tokens.

    Punctuation and underscores act as separators, so
    ``tokenize(" ".join(tokenize(text))) == tokenize(text)``.
    """
    if not text:
        return []
    return _NON_WORD_RE.sub(" ", text.lower()).split()


def filter_stopwords(tokens: Iterable[str], stopwords: Collection[str]) -> list[str]:
    return [token for token in tokens if token not in stopwords]


def unique(tokens: Iterable[str]) -> list[str]:
    """Deduplicate keeping first occurrence."""
    return list(dict.fromkeys(tokens))


def normalize_tokens(text: str | None, stopwords: Collection[str]) -> list[str]:
    """Tokenize, drop stopwords, deduplicate."""
    return unique(filter_stopwords(tokenize(text), stopwords))
