"""Team (macrosetor) registry.

The registry is the canonical, read-only list of team categories. Each entry
carries its routing metadata, classifier keywords and funnel. It is built once
by ``load_registry`` and handed to the classifier, scheduler callers and the
deal synchronizer by reference.

Category keys are the join key between classifier output, team rows and
funnels, so a table with a repeated category key is rejected at load time.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from inbox_routing.core.errors import ConfigurationError
from inbox_routing.core.team_definitions import DEFAULT_TEAMS

logger = logging.getLogger(__name__)


class StageDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    color: str = "#6B7280"
    order: int = Field(..., ge=1)


class FunnelDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=64)
    name: str
    stages: tuple[StageDefinition, ...] = ()

    @property
    def initial_stage(self) -> StageDefinition:
        """First stage by ordinal; the only valid creation stage for deals."""
        return min(self.stages, key=lambda stage: stage.order)

    @property
    def stage_ids(self) -> frozenset[str]:
        return frozenset(stage.id for stage in self.stages)

    def ordered_stages(self) -> list[StageDefinition]:
        return sorted(self.stages, key=lambda stage: stage.order)


class TeamDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    color: str = "#6B7280"
    is_active: bool = True
    max_capacity: int = Field(50, ge=1)
    priority: int = 100
    auto_assign: bool = True
    keywords: tuple[str, ...] = ()
    funnel: FunnelDefinition

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        return value.strip().lower()


class TeamRegistry:
    """Immutable lookup over validated team definitions."""

    def __init__(self, teams: Iterable[TeamDefinition]):
        self._teams: tuple[TeamDefinition, ...] = tuple(teams)
        _validate(self._teams)
        self._by_category = {team.category: team for team in self._teams}

    def __len__(self) -> int:
        return len(self._teams)

    def __contains__(self, category: object) -> bool:
        return category in self._by_category

    @property
    def teams(self) -> tuple[TeamDefinition, ...]:
        return self._teams

    def resolve(self, category: str | None) -> TeamDefinition | None:
        """Return the team for a category key, or None when unknown."""
        if not category:
            return None
        return self._by_category.get(category.strip().lower())

    def all_categories(self) -> list[str]:
        """Category keys in declaration order."""
        return [team.category for team in self._teams]

    def funnel_stages_for(self, category: str) -> list[StageDefinition]:
        """Ordered stages of the category's funnel ([] for unknown categories)."""
        team = self.resolve(category)
        if team is None:
            return []
        return team.funnel.ordered_stages()

    def initial_stage_for(self, category: str) -> StageDefinition | None:
        team = self.resolve(category)
        if team is None:
            return None
        return team.funnel.initial_stage


def _validate(teams: tuple[TeamDefinition, ...]) -> None:
    if not teams:
        raise ConfigurationError("Team registry is empty")

    seen_categories: set[str] = set()
    seen_funnels: dict[str, str] = {}
    for team in teams:
        if team.category in seen_categories:
            raise ConfigurationError(f"Duplicate team category key '{team.category}'")
        seen_categories.add(team.category)

        funnel = team.funnel
        if not funnel.stages:
            raise ConfigurationError(f"Funnel '{funnel.id}' for '{team.category}' has no stages")

        # A funnel belongs to exactly one category
        owner = seen_funnels.get(funnel.id)
        if owner is not None:
            raise ConfigurationError(
                f"Funnel '{funnel.id}' is shared by '{owner}' and '{team.category}'"
            )
        seen_funnels[funnel.id] = team.category

        stage_ids = [stage.id for stage in funnel.stages]
        if len(stage_ids) != len(set(stage_ids)):
            raise ConfigurationError(f"Funnel '{funnel.id}' has duplicate stage ids")
        orders = [stage.order for stage in funnel.stages]
        if len(orders) != len(set(orders)):
            raise ConfigurationError(f"Funnel '{funnel.id}' has duplicate stage positions")


def build_registry(raw_teams: list[dict]) -> TeamRegistry:
    """Validate raw team dicts and build a registry."""
    try:
        teams = [TeamDefinition.model_validate(raw) for raw in raw_teams]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid team configuration: {exc}") from exc
    return TeamRegistry(teams)


def load_registry(path: str | Path | None = None) -> TeamRegistry:
    """
    Load the team registry.

    With a path, the file must hold a JSON list of team objects (or an object
    with a "teams" list). Without one, the built-in table is used.
    """
    if not path:
        registry = build_registry(DEFAULT_TEAMS)
        logger.info("Loaded built-in team registry with %s categories", len(registry))
        return registry

    config_path = Path(path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read team configuration {config_path}: {exc}") from exc

    raw_teams = payload.get("teams") if isinstance(payload, dict) else payload
    if not isinstance(raw_teams, list):
        raise ConfigurationError(f"{config_path} must contain a list of teams")

    registry = build_registry(raw_teams)
    logger.info("Loaded team registry from %s with %s categories", config_path, len(registry))
    return registry
