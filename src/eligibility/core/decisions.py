"""Score band to decision label mapping."""

from __future__ import annotations

from typing import Iterable

from ..schemas.criteria import DecisionThreshold

DEFAULT_DECISION = "Under Review"


class DecisionResolver:
    """Selects the band with the highest ``min_score`` not above the score."""

    def __init__(self, default_label: str = DEFAULT_DECISION) -> None:
        self.default_label = default_label

    def resolve(
        self,
        score: float,
        thresholds: Iterable[DecisionThreshold],
        default: str | None = None,
    ) -> str:
        for threshold in sorted(thresholds, key=lambda item: item.min_score, reverse=True):
            if threshold.min_score <= score:
                return threshold.label
        return default or self.default_label
