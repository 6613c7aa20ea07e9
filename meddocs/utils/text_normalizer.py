"""Text normalization and keyword relevance helpers.

This module handles four concerns:

1. **Embedding preprocessing** -- collapses whitespace, strips characters
   outside the word/punctuation allow-list and truncates, so every text
   reaching an embedding model is clean and within API limits.

2. **Lexical relevance** -- tokenizes queries and documents and scores
   term coverage, using rapidfuzz for near-miss spellings that OCR output
   commonly contains ("metformn" vs "metformin").

3. **Substring matching** -- the case-insensitive containment test used
   by the terminal retrieval fallback.

4. **Extraction cleanup** -- tidies OCR and PDF output before it is
   stored and tagged.
"""

import re

from rapidfuzz import fuzz, process

# Characters kept by preprocessing: word chars, whitespace and -.,;:!?()
_DISALLOWED_CHARS = re.compile(r"[^\w\s\-.,;:!?()]")
_WHITESPACE_RUN = re.compile(r"\s+")
_TOKEN = re.compile(r"\w+")

# Terms shorter than this are matched exactly only.
_MIN_FUZZY_TERM_LEN = 4
_FUZZY_CUTOFF = 85.0
_FUZZY_CREDIT = 0.8
_TITLE_WEIGHT = 0.2


def preprocess_for_embedding(text: str, max_chars: int = 8000) -> str:
    """Clean *text* for an embedding call.

    Args:
        text: Raw input text.
        max_chars: Hard cap on the returned length.

    Returns:
        The cleaned, trimmed and truncated text (may be empty).
    """
    cleaned = _DISALLOWED_CHARS.sub("", text)
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    return cleaned[:max_chars]


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens of *text*, in order."""
    return [t.lower() for t in _TOKEN.findall(text)]


def query_terms(query: str) -> list[str]:
    """Unique search terms of *query*, preserving first-seen order.

    Single-character tokens are dropped unless nothing else remains.
    """
    tokens = tokenize(query)
    terms = [t for t in tokens if len(t) > 1] or tokens
    return list(dict.fromkeys(terms))


def _term_credit(term: str, vocabulary: set[str], choices: list[str]) -> float:
    if term in vocabulary:
        return 1.0
    if len(term) < _MIN_FUZZY_TERM_LEN or not choices:
        return 0.0
    match = process.extractOne(term, choices, scorer=fuzz.ratio, score_cutoff=_FUZZY_CUTOFF)
    if match is None:
        return 0.0
    return _FUZZY_CREDIT * (match[1] / 100.0)


def lexical_score(terms: list[str], title: str, content: str) -> float:
    """Score how well *title* and *content* cover the query *terms*.

    Coverage over the whole document contributes 80% of the score and
    coverage over the title alone the remaining 20%.  Exact token hits
    earn full credit; rapidfuzz near-misses earn partial credit.

    Returns:
        A relevance score in ``[0.0, 1.0]``; ``0.0`` means no term matched.
    """
    if not terms:
        return 0.0

    title_vocab = set(tokenize(title))
    body_vocab = title_vocab | set(tokenize(content))

    choices = sorted(body_vocab)
    body_cov = sum(_term_credit(t, body_vocab, choices) for t in terms) / len(terms)
    if body_cov == 0.0:
        return 0.0
    title_cov = sum(1.0 for t in terms if t in title_vocab) / len(terms)

    score = (1.0 - _TITLE_WEIGHT) * body_cov + _TITLE_WEIGHT * title_cov
    return round(min(1.0, score), 6)


def contains_substring(query: str, *fields: str) -> bool:
    """Return ``True`` if *query* occurs case-insensitively in any field."""
    needle = query.strip().lower()
    if not needle:
        return False
    return any(needle in (field or "").lower() for field in fields)


_EXTRACTED_ODD_CHARS = re.compile(r"[^\w\s\-.,;:!?()\[\]{}/]")
_HORIZONTAL_SPACE = re.compile(r"[ \t\f\v]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def clean_extracted_text(text: str) -> str:
    """Tidy raw OCR or PDF text while keeping paragraph breaks.

    Normalizes line endings, collapses runs of spaces and tabs, caps blank
    lines at one, and drops characters OCR engines commonly hallucinate.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _EXTRACTED_ODD_CHARS.sub("", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()
