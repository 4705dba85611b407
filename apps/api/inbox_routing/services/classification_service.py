"""
Keyword team classifier.

Maps free-text message content to a team category. Pure: reads only the
registry it was built from and never touches the store.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass

from inbox_routing.core.team_registry import TeamRegistry

CONFIDENCE_PER_KEYWORD = 25
MAX_CONFIDENCE = 100
DEFAULT_MIN_CONFIDENCE = 30


@dataclass(frozen=True)
class Classification:
    team_category: str | None
    confidence: int
    matched_keywords: tuple[str, ...] = ()


def normalize_text(value: str | None) -> str:
    """Casefold, strip accents and collapse whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


class TeamClassifier:
    """Counts distinct keyword hits per active category; the highest count wins."""

    def __init__(
        self,
        registry: TeamRegistry,
        *,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        unmatched_category: str | None = None,
    ):
        self.min_confidence = min_confidence
        self.unmatched_category = unmatched_category
        # (category, [(original keyword, normalized keyword)]) in declaration order
        self._table: list[tuple[str, list[tuple[str, str]]]] = []
        for team in registry.teams:
            if not team.is_active or not team.keywords:
                continue
            keywords: list[tuple[str, str]] = []
            seen: set[str] = set()
            for keyword in team.keywords:
                normalized = normalize_text(keyword)
                if normalized and normalized not in seen:
                    seen.add(normalized)
                    keywords.append((keyword, normalized))
            self._table.append((team.category, keywords))

    def classify(self, message_text: str | None) -> Classification:
        text = normalize_text(message_text)
        best_category: str | None = None
        best_hits: tuple[str, ...] = ()

        if text:
            for category, keywords in self._table:
                hits = tuple(original for original, normalized in keywords if normalized in text)
                # Strictly greater: ties keep the earlier category
                if len(hits) > len(best_hits):
                    best_category = category
                    best_hits = hits

        if best_category is None:
            return Classification(team_category=self.unmatched_category, confidence=0)

        confidence = min(len(best_hits) * CONFIDENCE_PER_KEYWORD, MAX_CONFIDENCE)
        return Classification(
            team_category=best_category,
            confidence=confidence,
            matched_keywords=best_hits,
        )

    def is_actionable(self, result: Classification) -> bool:
        """Whether the orchestrator may route on this result."""
        return result.team_category is not None and result.confidence >= self.min_confidence
