# Resource calculations: costs, growth modifiers, tech effects and labor output
from __future__ import annotations

from typing import Dict, Iterable

from . import settings
from .models import RESOURCE_KEYS, NaturalResources, Population, Resources, clamp
from .technology import (
    EFFECT_KEYWORDS,
    GROWTH_KEYWORD_WEIGHT,
    GROWTH_KEYWORDS,
    TechGraph,
    TechNode,
    era_multiplier,
)


def investment_cost(resource_key: str) -> Dict[str, int]:
    """Natural resources consumed by one investment in ``resource_key``."""
    return dict(settings.INVESTMENT_COSTS.get(resource_key, {}))


def research_cost(tech: TechNode) -> Dict[str, float]:
    """Stat points spent on researching ``tech``, scaled by its era."""
    base = settings.DEFAULT_RESEARCH_COST
    for prefix, costs in settings.RESEARCH_COSTS.items():
        if tech.id.startswith(prefix):
            base = costs
            break
    multiplier = era_multiplier(tech.era)
    return {key: amount * multiplier for key, amount in base.items()}


def growth_modifiers(unlocked_techs: Iterable[str], graph: TechGraph) -> Dict[str, float]:
    """Per-stat investment multipliers derived from unlocked tech effects."""
    modifiers = {key: 1.0 for key in RESOURCE_KEYS}
    for tech_id in unlocked_techs:
        tech = graph.find_tech(tech_id)
        if tech is None:
            continue
        for value, keyword in tech.parsed_effects():
            stat = GROWTH_KEYWORDS.get(keyword)
            if stat is not None:
                modifiers[stat] += value * GROWTH_KEYWORD_WEIGHT
    for key, value in modifiers.items():
        modifiers[key] = max(settings.MIN_GROWTH_MODIFIER, min(settings.MAX_GROWTH_MODIFIER, value))
    return modifiers


def growth_rate(modifier: float) -> float:
    """Fraction of the current value gained by one investment."""
    return min(settings.BASE_INVESTMENT_RATE * modifier, settings.MAX_GROWTH_PERCENTAGE)


def apply_tech_effects(resources: Resources, tech: TechNode) -> Resources:
    """Return new resources with ``tech``'s effects and research cost applied."""
    updated = Resources(**resources.as_dict())
    for value, keyword in tech.parsed_effects():
        mapping = EFFECT_KEYWORDS.get(keyword)
        if mapping is None:
            continue
        stat, weight = mapping
        updated.set(stat, updated.get(stat) + value * weight)

    for stat, cost in research_cost(tech).items():
        updated.set(stat, updated.get(stat) - cost)

    updated.clamp_all()
    return updated


def apply_labor_output(
    population: Population,
    natural: NaturalResources,
    resources: Resources,
) -> None:
    """Add one month of output from assigned workers, scientists and soldiers."""
    for key, per_head in settings.WORKER_YIELDS.items():
        natural.set(key, natural.get(key) + population.workers * per_head)

    if population.scientists > 0:
        for key, per_head in settings.SCIENTIST_YIELDS.items():
            resources.set(key, clamp(resources.get(key) + population.scientists * per_head))

    if population.soldiers > 0:
        for key, per_head in settings.SOLDIER_YIELDS.items():
            resources.set(key, clamp(resources.get(key) + population.soldiers * per_head))
