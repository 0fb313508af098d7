from __future__ import annotations

"""Yearly objectives: generation and completion checks."""

import math
import random
from typing import List, Optional

from . import settings
from .models import (
    NATURAL_RESOURCE_KEYS,
    RESOURCE_KEYS,
    NationState,
    YearlyObjective,
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _current_value(objective: YearlyObjective, state: NationState) -> Optional[float]:
    """Read the state slice an objective is measured against."""
    if objective.type == "resources":
        return state.resources.get(objective.target)
    if objective.type == "naturalResources":
        return state.natural_resources.get(objective.target)
    if objective.type == "population":
        if objective.target == "total":
            return state.population.total
        if objective.target == "mood":
            return state.population.mood
        return None
    if objective.type == "tech":
        return len(state.unlocked_techs)
    return None


def is_completed(objective: YearlyObjective, state: NationState) -> bool:
    current = _current_value(objective, state)
    return current is not None and current >= objective.amount


def generate(
    state: NationState,
    year: int,
    rng: Optional[random.Random] = None,
) -> List[YearlyObjective]:
    """Build a fresh batch of objectives challenging the current state."""
    rng = rng or random.Random()
    objectives: List[YearlyObjective] = []
    population = state.population

    # Always one national resource goal
    key = rng.choice(RESOURCE_KEYS)
    target = min(100, round_half_up(state.resources.get(key) * settings.RESOURCE_OBJECTIVE_FACTOR))
    objectives.append(
        YearlyObjective(
            type="resources",
            target=key,
            amount=target,
            description=f"Increase {key} to {target}",
        )
    )

    if year > settings.POPULATION_OBJECTIVE_AFTER:
        target = round_half_up(population.total * settings.POPULATION_OBJECTIVE_FACTOR)
        objectives.append(
            YearlyObjective(
                type="population",
                target="total",
                amount=target,
                description=f"Grow population to {target} people",
            )
        )

    key = rng.choice(NATURAL_RESOURCE_KEYS)
    target = round_half_up(state.natural_resources.get(key) * settings.STOCKPILE_OBJECTIVE_FACTOR)
    objectives.append(
        YearlyObjective(
            type="naturalResources",
            target=key,
            amount=target,
            description=f"Stockpile {target} {key}",
        )
    )

    if year > settings.TECH_OBJECTIVE_AFTER:
        target = len(state.unlocked_techs) + 1
        objectives.append(
            YearlyObjective(
                type="tech",
                target="count",
                amount=target,
                description=f"Research at least {target} technologies",
            )
        )

    if population.mood < settings.MOOD_OBJECTIVE_TARGET:
        objectives.append(
            YearlyObjective(
                type="population",
                target="mood",
                amount=settings.MOOD_OBJECTIVE_TARGET,
                description=f"Improve population mood to at least {settings.MOOD_OBJECTIVE_TARGET}",
            )
        )

    for objective in objectives:
        objective.completed = is_completed(objective, state)
    return objectives


def evaluate(objectives: List[YearlyObjective], state: NationState) -> List[YearlyObjective]:
    """Return copies of ``objectives`` with ``completed`` recomputed."""
    return [
        YearlyObjective(
            type=o.type,
            target=o.target,
            amount=o.amount,
            description=o.description,
            completed=is_completed(o, state),
        )
        for o in objectives
    ]


def all_completed(objectives: List[YearlyObjective]) -> bool:
    return all(o.completed for o in objectives)
