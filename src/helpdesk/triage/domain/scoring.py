"""
Relevance Scoring
=================

Keyword-overlap relevance between a ticket query and a KB article, plus the
keyword extraction storage backends use for their superset KB search.

Both are deterministic and free of I/O.
"""

import re
from typing import List

MIN_TOKEN_LENGTH = 3
MATCH_WEIGHT = 0.8
LENGTH_WEIGHT = 0.2
# Candidates at or above this many tokens get the full length bonus
LENGTH_BONUS_TOKENS = 100
MAX_KEYWORDS = 10

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "from", "up", "about", "into", "through", "during", "before",
    "after", "above", "below", "between", "among", "this", "that", "these",
    "those", "are", "was", "were", "been", "have", "has", "had", "will",
    "would", "could", "should", "may", "might", "must", "can",
})

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase whitespace tokens."""
    return text.lower().split()


def calculate_relevance_score(query: str, content: str) -> float:
    """
    Score `content` against `query`.

    A query token of at least three characters matches when some content
    token contains it or is contained in it. The ratio is taken over all
    query tokens, short ones included, so filler words lower the score.

        score = 0.8 * matches / len(query_tokens)
              + 0.2 * min(len(content_tokens) / 100, 1)
    """
    query_tokens = tokenize(query)
    if not query_tokens:
        return 0.0
    content_tokens = tokenize(content)

    matches = 0
    for query_token in query_tokens:
        if len(query_token) < MIN_TOKEN_LENGTH:
            continue
        if any(query_token in token or token in query_token for token in content_tokens):
            matches += 1

    match_ratio = matches / len(query_tokens)
    length_bonus = min(len(content_tokens) / LENGTH_BONUS_TOKENS, 1.0)
    return match_ratio * MATCH_WEIGHT + length_bonus * LENGTH_WEIGHT


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Unique, stop-word filtered keywords of `text` in first-seen order.

    Punctuation is stripped and words of two characters or fewer dropped.
    """
    words = _NON_WORD.sub(" ", text.lower()).split()
    keywords: List[str] = []
    for word in words:
        if len(word) <= 2 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords
