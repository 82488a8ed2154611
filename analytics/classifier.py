"""
Stage label classifier.

Maps a free-text pipeline stage label onto semantic categories using a small
bilingual pattern table. Matching is a case-insensitive substring test, so
"Cierre Ganado", "closedwon" and "CIERRE GANADO (2024)" all classify as won.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class StageCategory(str, Enum):
    WON = "won"
    LOST = "lost"
    FOLLOW_UP = "follow_up"
    CONFIRMED_ORDER = "confirmed_order"


class Outcome(str, Enum):
    WON = "won"
    LOST = "lost"
    OPEN = "open"


STAGE_PATTERNS: Dict[StageCategory, Tuple[str, ...]] = {
    StageCategory.WON: ("cierre ganado", "closedwon"),
    StageCategory.LOST: ("cierre perdido", "closedlost"),
    StageCategory.FOLLOW_UP: ("seguimiento", "negociaci"),
    StageCategory.CONFIRMED_ORDER: ("confirmado", "orden recibida"),
}

# "+14" marks the follow-up stage for deals older than 14 days
URGENT_MARKER = re.compile(r"\+\s*14")


@dataclass(frozen=True)
class StageClassification:
    categories: FrozenSet[StageCategory]
    is_urgent: bool = False

    @property
    def is_won(self) -> bool:
        return StageCategory.WON in self.categories

    @property
    def is_lost(self) -> bool:
        return StageCategory.LOST in self.categories

    @property
    def is_follow_up(self) -> bool:
        return StageCategory.FOLLOW_UP in self.categories

    @property
    def is_confirmed_order(self) -> bool:
        return StageCategory.CONFIRMED_ORDER in self.categories

    @property
    def outcome(self) -> Outcome:
        if self.is_won:
            return Outcome.WON
        if self.is_lost:
            return Outcome.LOST
        return Outcome.OPEN


def classify(label: str) -> StageClassification:
    """Classify a stage label. Total over any string; '' matches nothing."""
    text = (label or "").lower()
    categories = frozenset(
        category
        for category, patterns in STAGE_PATTERNS.items()
        if any(p in text for p in patterns)
    )
    urgent = StageCategory.FOLLOW_UP in categories and bool(URGENT_MARKER.search(text))
    return StageClassification(categories=categories, is_urgent=urgent)


def outcome(label: str) -> Outcome:
    """Single outcome for a label: won takes precedence over lost, anything else is open."""
    return classify(label).outcome
