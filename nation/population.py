from __future__ import annotations

import math

from . import settings
from .models import ROLES, NaturalResources, Population


def can_assign(population: Population, role: str, delta: int) -> bool:
    """Check a role change against the pool of adults.

    Adding needs that many unassigned adults; removing needs that many
    people already in the role.
    """
    if role not in ROLES or delta == 0:
        return False
    if delta > 0:
        return delta <= population.unassigned
    return -delta <= getattr(population, role)


def grow(population: Population) -> None:
    """Monthly births and coming of age."""
    population.children += math.floor(population.women * settings.MONTHLY_BIRTH_RATE)

    if population.children > 0:
        new_adults = math.floor(population.children * settings.COMING_OF_AGE_RATE)
        population.children -= new_adults
        new_men = new_adults // 2
        population.men += new_men
        population.women += new_adults - new_men


def apply_annual_attrition(population: Population) -> None:
    """Year-end losses, then shrink role assignments to fit the adults left."""
    keep = 1 - settings.ANNUAL_LOSS_RATE
    population.men = math.floor(population.men * keep)
    population.women = math.floor(population.women * keep)
    population.children = math.floor(population.children * keep)

    adults = population.adults
    assigned = population.assigned
    if assigned > adults:
        factor = adults / assigned
        population.workers = math.floor(population.workers * factor)
        population.soldiers = math.floor(population.soldiers * factor)
        population.scientists = math.floor(population.scientists * factor)


def feed(population: Population, natural: NaturalResources) -> int:
    """Consume food for the month; returns the mood penalty (0 when fed)."""
    consumption = population.total * settings.FOOD_PER_PERSON
    if natural.food >= consumption:
        natural.food -= consumption
        population.mood = min(100, population.mood + settings.WELL_FED_MOOD_BONUS)
        return 0

    shortage = consumption - natural.food
    natural.food = 0
    penalty = math.floor(shortage / consumption * 10)
    population.mood = max(0, population.mood - penalty)

    if penalty > settings.STARVATION_PENALTY_THRESHOLD:
        rate = penalty / 100
        # Children take the full rate, adults half of it
        population.children -= math.floor(population.children * rate)
        population.men -= math.floor(population.men * rate / 2)
        population.women -= math.floor(population.women * rate / 2)
    return penalty
