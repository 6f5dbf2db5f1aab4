"""
Rule-based matching of lost reports against found reports.

A pair matches only when all four gates pass: identical category, identical
location (case and surrounding whitespace ignored), dates at most two days
apart, and at least 70% name-token overlap. Every match emails two people,
so the gates favour precision over recall.
"""

import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

MAX_DAYS_APART = 2.0
MIN_NAME_SIMILARITY = 70.0
MS_PER_DAY = 86_400_000

BASE_SCORE = 40
NAME_WEIGHT = 0.4

STOP_WORDS = frozenset({"a", "an", "the", "and", "or", "of", "in", "on", "at", "to", "is", "it"})

_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class MatchDetails:
    name_similarity: int
    days_apart: int
    category_match: bool = True
    location_match: bool = True


@dataclass(frozen=True)
class MatchResult:
    lost_item: dict
    found_item: dict
    confidence_score: int
    details: MatchDetails

    def to_dict(self) -> dict:
        return {
            "lost_item": self.lost_item,
            "found_item": self.found_item,
            "confidence_score": self.confidence_score,
            "details": asdict(self.details),
        }


def tokenize(name: str) -> List[str]:
    """Lowercase, strip punctuation, drop stop words; sorted and de-duplicated."""
    words = _NON_WORD.sub("", name.lower()).split()
    return sorted({word for word in words if word and word not in STOP_WORDS})


def name_similarity(lost_name: str, found_name: str) -> Optional[float]:
    """Percentage of shared tokens over all distinct tokens, None if a name has no tokens."""
    lost_tokens = set(tokenize(lost_name))
    found_tokens = set(tokenize(found_name))

    if not lost_tokens or not found_tokens:
        return None

    common = len(lost_tokens & found_tokens)
    union = len(lost_tokens | found_tokens)

    return common * 100.0 / union


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(first: datetime, second: datetime) -> float:
    delta = abs(_as_utc(second) - _as_utc(first))
    return (delta / timedelta(milliseconds=1)) / MS_PER_DAY


def date_bonus(lost_date: datetime, found_date: datetime) -> int:
    """+20 on the same UTC calendar day, +10 within a day, +5 otherwise."""
    if _as_utc(lost_date).date() == _as_utc(found_date).date():
        return 20
    if days_between(lost_date, found_date) <= 1:
        return 10
    return 5


def summarize_lost(lost) -> dict:
    return {
        "id": str(lost.id),
        "unique_id": lost.unique_id,
        "item_name": lost.item_name,
        "description": lost.description,
        "category": lost.category,
        "last_known_location": lost.last_known_location,
        "date_lost": lost.date_lost,
    }


def summarize_found(found) -> dict:
    return {
        "id": str(found.id),
        "unique_id": found.unique_id,
        "item_name": found.item_name,
        "description": found.description,
        "category": found.category,
        "location_found": found.location_found,
        "date_found": found.date_found,
    }


def evaluate(lost, found) -> Optional[MatchResult]:
    """
    Decide whether a lost report and a found report describe the same item.

    Both reports are expected to be active. Returns None when any gate fails,
    otherwise a MatchResult with a confidence score between 40 and 100.
    """
    # Category must be exactly the same
    if lost.category != found.category:
        return None

    if lost.last_known_location.strip().lower() != found.location_found.strip().lower():
        return None

    days_apart = days_between(lost.date_lost, found.date_found)
    if days_apart > MAX_DAYS_APART:
        return None

    similarity = name_similarity(lost.item_name, found.item_name)
    if similarity is None or similarity < MIN_NAME_SIMILARITY:
        return None

    bonus = date_bonus(lost.date_lost, found.date_found)
    score = BASE_SCORE + math.floor(similarity * NAME_WEIGHT) + bonus

    return MatchResult(
        lost_item=summarize_lost(lost),
        found_item=summarize_found(found),
        confidence_score=min(round(score), 100),
        details=MatchDetails(
            name_similarity=round(similarity),
            days_apart=round(days_apart),
        ),
    )


def find_all_matches(lost_items: Iterable, found_items: Iterable) -> List[MatchResult]:
    """Run the matcher over the full cross-product, best matches first."""
    found_items = list(found_items)
    matches = []

    for lost in lost_items:
        for found in found_items:
            result = evaluate(lost, found)
            if result:
                matches.append(result)

    # sort is stable, equal scores keep scan order
    matches.sort(key=lambda m: m.confidence_score, reverse=True)
    return matches
