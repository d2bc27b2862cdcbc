"""End-of-game rating."""

from __future__ import annotations

from dataclasses import dataclass

from .models import Score


@dataclass(frozen=True)
class RatingTier:
    label: str
    min_uptime: float
    max_risky: int | None = None
    max_failed: int | None = None

    def matches(self, score: Score) -> bool:
        if score.uptime < self.min_uptime:
            return False
        if self.max_risky is not None and score.risky_actions > self.max_risky:
            return False
        if self.max_failed is not None and score.failed_migrations > self.max_failed:
            return False
        return True


# Checked top to bottom; first match wins
RATING_TIERS: list[RatingTier] = [
    RatingTier("Seasoned Infra Sage", min_uptime=99, max_risky=5, max_failed=2),
    RatingTier("Competent Operator",  min_uptime=95, max_risky=10),
    RatingTier("Learning Engineer",   min_uptime=90),
]
FALLBACK_RATING = "Novice Operator"


def final_rating(score: Score) -> str:
    for tier in RATING_TIERS:
        if tier.matches(score):
            return tier.label
    return FALLBACK_RATING
