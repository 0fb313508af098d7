from __future__ import annotations

"""Pure state transitions for a single nation.

Every function takes a :class:`NationState` and returns a new state, or
``None`` when the action is rejected. Inputs are never mutated.
"""

import logging
import random
import time
from typing import Optional

from . import objectives, population, settings
from .models import RESOURCE_KEYS, LastResearch, NationState
from .resources import (
    apply_labor_output,
    apply_tech_effects,
    growth_modifiers,
    growth_rate,
    investment_cost,
    research_cost,
)
from .technology import TechGraph, era_for_year

logger = logging.getLogger("nationsim.Engine")
logger.addHandler(logging.NullHandler())

__all__ = [
    "research",
    "invest",
    "distribute_labor",
    "advance_month",
    "refresh_objectives",
    "total_population",
    "unassigned_adults",
    "growth_modifiers",
    "investment_cost",
    "research_cost",
    "apply_tech_effects",
]


def total_population(state: NationState) -> int:
    return state.population.total


def unassigned_adults(state: NationState) -> int:
    return state.population.unassigned


def refresh_objectives(state: NationState) -> None:
    """Recompute objective flags and the year gate in place."""
    state.yearly_objectives = objectives.evaluate(state.yearly_objectives, state)
    state.can_advance_year = objectives.all_completed(state.yearly_objectives)


def research(
    state: NationState,
    tech_id: str,
    graph: TechGraph,
    now: Optional[float] = None,
) -> Optional[NationState]:
    if tech_id in state.unlocked_techs:
        logger.debug("Tech %s already researched", tech_id)
        return None
    tech = graph.find_tech(tech_id)
    if tech is None or not graph.is_available(tech_id, state.unlocked_techs):
        logger.debug("Tech %s is not available", tech_id)
        return None

    now = time.time() if now is None else now
    new_state = state.copy()
    new_state.resources = apply_tech_effects(state.resources, tech)
    new_state.unlocked_techs.append(tech_id)
    new_state.last_research = LastResearch(
        tech_id=tech.id,
        name=tech.name,
        researched_at=now,
        expires_at=now + settings.LAST_RESEARCH_DISPLAY_SECONDS,
    )
    refresh_objectives(new_state)
    return new_state


def invest(state: NationState, resource_key: str, graph: TechGraph) -> Optional[NationState]:
    if resource_key not in RESOURCE_KEYS:
        logger.debug("Unknown investment target %s", resource_key)
        return None

    costs = investment_cost(resource_key)
    if not state.natural_resources.can_afford(costs):
        logger.debug("Cannot afford investment in %s: %s", resource_key, costs)
        return None

    modifier = growth_modifiers(state.unlocked_techs, graph)[resource_key]
    current = state.resources.get(resource_key)

    new_state = state.copy()
    new_state.resources.set(
        resource_key,
        min(settings.RESOURCE_MAX, current + current * growth_rate(modifier)),
    )
    for key, amount in costs.items():
        new_state.natural_resources.set(key, new_state.natural_resources.get(key) - amount)
    new_state.population.mood = min(100, new_state.population.mood + settings.INVESTMENT_MOOD_BONUS)
    refresh_objectives(new_state)
    return new_state


def distribute_labor(state: NationState, role: str, delta: int) -> Optional[NationState]:
    if not population.can_assign(state.population, role, delta):
        logger.debug("Rejected labor change %s %+d", role, delta)
        return None

    new_state = state.copy()
    setattr(new_state.population, role, getattr(new_state.population, role) + delta)
    refresh_objectives(new_state)
    return new_state


def advance_month(state: NationState, rng: Optional[random.Random] = None) -> NationState:
    """Advance one month. December is held until every objective is met."""
    new_state = state.copy()
    was_december = state.month == 12
    year_rolled = False

    if state.month + 1 > 12:
        if state.can_advance_year:
            new_state.month = 1
            new_state.year = state.year + 1
            year_rolled = True
        else:
            new_state.month = 12
    else:
        new_state.month = state.month + 1

    people = new_state.population
    people.months_passed += 1
    population.grow(people)

    # Attrition runs on every December call, including a held one
    if was_december:
        population.apply_annual_attrition(people)

    population.feed(people, new_state.natural_resources)
    apply_labor_output(people, new_state.natural_resources, new_state.resources)

    new_state.current_era = era_for_year(new_state.year).name

    if year_rolled:
        new_state.yearly_objectives = objectives.generate(new_state, new_state.year, rng)
        new_state.can_advance_year = False
        logger.info("Entered year %d (%s)", new_state.year, new_state.current_era)
    else:
        refresh_objectives(new_state)
    return new_state
