"""Approximate item-name matching between requested names and on-page listings."""

import re

_PUNCT_RE = re.compile(r"[^\w\s]|_")
_SPACE_RE = re.compile(r"\s+")

# Query words this short ("of", "w/") carry no signal
_MIN_WORD_LEN = 3
_WORD_OVERLAP_RATIO = 0.7


def normalize(s: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    s = _PUNCT_RE.sub("", s.lower())
    return _SPACE_RE.sub(" ", s).strip()


def fuzzy_match(candidate: str | None, query: str | None) -> bool:
    """True when *candidate* (a listing name) plausibly names *query*.

    Matches on equality, on substring containment either way, or when at
    least 70% of the query's longer words overlap some candidate word.
    """
    if not candidate or not query:
        return False

    cand = normalize(candidate)
    q = normalize(query)
    if not cand or not q:
        return False

    if cand == q:
        return True
    if q in cand or cand in q:
        return True

    query_words = [w for w in q.split(" ") if len(w) >= _MIN_WORD_LEN]
    if not query_words:
        return False
    cand_words = cand.split(" ")
    hits = sum(
        1 for qw in query_words
        if any(qw in cw or cw in qw for cw in cand_words)
    )
    return hits >= len(query_words) * _WORD_OVERLAP_RATIO
