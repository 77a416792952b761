"""Find a business in a ranked result list."""

import logging
from dataclasses import dataclass

import config

logger = logging.getLogger(__name__)

NOT_FOUND = -1


@dataclass(frozen=True)
class RankedResult:
    position: int
    title: str
    url: str = ""
    description: str | None = None
    rating: float | None = None


def _significant_words(name: str, min_length: int) -> list[str]:
    return [w for w in name.lower().split() if len(w) > min_length]


def find_rank(
    results: list[RankedResult],
    business_name: str,
    min_word_length: int = config.MIN_MATCH_WORD_LENGTH,
) -> int:
    """Return the 1-based provider position of business_name, or -1.

    Pass 1 looks for the whole name inside a title. Pass 2 accepts any title
    containing one of the name's words longer than min_word_length characters.
    """
    needle = business_name.strip().lower()
    if not needle:
        return NOT_FOUND

    for r in results:
        if r.title and needle in r.title.lower():
            logger.info("Found %r at position %d", business_name, r.position)
            return r.position

    words = _significant_words(needle, min_word_length)
    if not words:
        return NOT_FOUND

    for r in results:
        title = (r.title or "").lower()
        if any(w in title for w in words):
            logger.info("Found partial match for %r at position %d", business_name, r.position)
            return r.position

    logger.info("%r not found in %d results", business_name, len(results))
    return NOT_FOUND
