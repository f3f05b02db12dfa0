"""Review prioritization and profanity filtering.

Negative reviews (1-3 stars) make the best comic material, so they always come
first; positive reviews only fill the sample up to the cap.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable

from app.core.entities import Review

logger = logging.getLogger(__name__)

DEFAULT_SELECTION_CAP = 5
NEGATIVE_MAX_RATING = 3

BLOCKED_TERMS = frozenset(
    {
        "fuck",
        "shit",
        "ass",
        "bitch",
        "bastard",
        "piss",
        "slut",
        "whore",
    }
)

_TOKEN_SPLIT = re.compile(r"[\W_]+", re.UNICODE)


def _priority(review: Review) -> tuple[int, int]:
    return (review.rating, -len(review.text or ""))


def select_reviews(reviews: Iterable[Review], cap: int = DEFAULT_SELECTION_CAP) -> list[Review]:
    """Order reviews by narrative value and bound the sample to ``cap``.

    Each group is sorted by rating ascending, then by text length descending.
    Positive reviews are appended only while the sample is below ``cap``.
    """
    if cap < 1:
        raise ValueError("cap must be at least 1")

    reviews = list(reviews)
    negative = sorted((r for r in reviews if r.rating <= NEGATIVE_MAX_RATING), key=_priority)
    positive = sorted((r for r in reviews if r.rating > NEGATIVE_MAX_RATING), key=_priority)

    selected = negative[:cap]
    if len(selected) < cap:
        selected.extend(positive[: cap - len(selected)])

    breakdown = Counter(r.rating for r in selected)
    logger.info(
        "reviews selected total=%s negative=%s positive=%s breakdown=%s",
        len(reviews),
        sum(1 for r in selected if r.rating <= NEGATIVE_MAX_RATING),
        sum(1 for r in selected if r.rating > NEGATIVE_MAX_RATING),
        dict(sorted(breakdown.items())),
    )
    return selected


def contains_blocked_term(text: str, blocked: frozenset[str] = BLOCKED_TERMS) -> bool:
    """True when a whole token of ``text`` equals a blocked term, ignoring case."""
    if not text or not text.strip():
        return False
    return any(token.lower() in blocked for token in _TOKEN_SPLIT.split(text) if token)


def filter_inappropriate(texts: Iterable[str], blocked: frozenset[str] = BLOCKED_TERMS) -> list[str]:
    """Drop blank texts and texts containing a blocked word."""
    kept: list[str] = []
    dropped = 0
    for text in texts:
        if not text or not text.strip():
            dropped += 1
            continue
        if contains_blocked_term(text, blocked):
            dropped += 1
            continue
        kept.append(text)
    if dropped:
        logger.info("reviews filtered kept=%s dropped=%s", len(kept), dropped)
    return kept
