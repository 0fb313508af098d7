from __future__ import annotations

import logging
import math
import random
from typing import List, Optional

from . import settings
from .models import NationState, clamp

logger = logging.getLogger("nationsim.Events")
logger.addHandler(logging.NullHandler())


class Disaster:
    """Base class for random national disasters."""

    name: str = "disaster"

    def apply(self, state: NationState) -> None:
        raise NotImplementedError


def _lower_mood(state: NationState, amount: int) -> None:
    state.population.mood = max(0, state.population.mood - amount)


class Drought(Disaster):
    name = "Drought"

    def apply(self, state: NationState) -> None:
        nat = state.natural_resources
        nat.food = math.floor(nat.food * 0.7)
        nat.water = math.floor(nat.water * 0.6)
        _lower_mood(state, 15)


class Earthquake(Disaster):
    name = "Earthquake"

    def apply(self, state: NationState) -> None:
        nat = state.natural_resources
        nat.minerals = math.floor(nat.minerals * 0.8)
        nat.wood = math.floor(nat.wood * 0.9)
        _lower_mood(state, 20)

        people = state.population
        casualties = math.floor(people.total * 0.02)
        people.men = max(0, people.men - math.floor(casualties * 0.4))
        people.women = max(0, people.women - math.floor(casualties * 0.4))
        people.children = max(0, people.children - math.floor(casualties * 0.2))


class DiseaseOutbreak(Disaster):
    name = "Disease Outbreak"
    infection_rate = 0.15

    def apply(self, state: NationState) -> None:
        people = state.population
        people.men = math.floor(people.men * (1 - self.infection_rate))
        people.women = math.floor(people.women * (1 - self.infection_rate))
        people.children = math.floor(people.children * (1 - self.infection_rate * 0.8))
        _lower_mood(state, 25)
        state.resources.stability = max(0.0, state.resources.stability - 10)


class EconomicRecession(Disaster):
    name = "Economic Recession"

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.economy = max(0.0, res.economy - 15)
        res.stability = max(0.0, res.stability - 8)
        _lower_mood(state, 12)
        state.natural_resources.food = math.floor(state.natural_resources.food * 0.85)


class ForestFire(Disaster):
    name = "Forest Fire"

    def apply(self, state: NationState) -> None:
        nat = state.natural_resources
        nat.wood = math.floor(nat.wood * 0.5)
        nat.food = math.floor(nat.food * 0.8)
        _lower_mood(state, 10)


ALL_DISASTERS: List[type[Disaster]] = [
    Drought,
    Earthquake,
    DiseaseOutbreak,
    EconomicRecession,
    ForestFire,
]


class DisasterSystem:
    """Rolls for a disaster once per simulated month."""

    def __init__(self, rng: Optional[random.Random] = None, chance: float = settings.DISASTER_CHANCE):
        self.rng = rng or random.Random()
        self.chance = chance

    def roll(self, state: NationState) -> Optional[Disaster]:
        """Maybe strike ``state`` in place. Returns the disaster that hit, if any."""
        if self.rng.random() >= self.chance:
            return None
        disaster = self.rng.choice(ALL_DISASTERS)()
        disaster.apply(state)
        logger.warning("Disaster: %s has struck %s", disaster.name, state.nation_name)
        return disaster


# ----------------------------------------------------------------------
# Economic cycles
# ----------------------------------------------------------------------
class EconomicPhase:
    """One phase of the business cycle; ``apply`` runs when the phase begins."""

    name: str = "stable"

    @property
    def description(self) -> str:
        return settings.ECONOMIC_PHASES[self.name]["description"]

    def apply(self, state: NationState) -> None:
        pass


class Boom(EconomicPhase):
    name = "boom"

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.economy = clamp(res.economy * 1.2)
        res.stability = clamp(res.stability * 1.1)
        state.population.mood = min(100, state.population.mood + 15)


class Bust(EconomicPhase):
    name = "bust"

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.economy = clamp(res.economy * 0.6)
        res.stability = clamp(res.stability * 0.8)
        _lower_mood(state, 20)

        people = state.population
        migrants = math.floor(people.total * settings.BUST_MIGRATION_RATE)
        people.men = max(0, people.men - math.floor(migrants * 0.4))
        people.women = max(0, people.women - math.floor(migrants * 0.4))
        people.children = max(0, people.children - math.floor(migrants * 0.2))


class Recovery(EconomicPhase):
    name = "recovery"

    def apply(self, state: NationState) -> None:
        state.resources.economy = clamp(state.resources.economy * 1.1)
        state.population.mood = min(100, state.population.mood + 8)


class Stable(EconomicPhase):
    name = "stable"


ALL_PHASES: List[type[EconomicPhase]] = [Boom, Bust, Recovery, Stable]


class EconomicCycle:
    """
    Rotates the economy through boom, bust, recovery and stable phases.

    Checked once per new year. When the current phase has run its course a
    different phase is drawn, its duration and multiplier are rolled, and
    its effects hit the nation once.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        phase: str = "stable",
        next_change_year: int = settings.FIRST_ECONOMIC_CYCLE_YEAR,
    ):
        self.rng = rng or random.Random()
        self.phase = phase
        self.years_in_phase = 0
        self.next_change_year = next_change_year
        self.multiplier = 1.0

    def on_new_year(self, state: NationState) -> Optional[EconomicPhase]:
        """Advance the cycle for ``state.year``. Returns the phase that began, if any."""
        self.years_in_phase += 1
        if state.year < self.next_change_year:
            return None

        phase = self.rng.choice([p for p in ALL_PHASES if p.name != self.phase])()
        config = settings.ECONOMIC_PHASES[phase.name]
        self.phase = phase.name
        self.years_in_phase = 0
        self.next_change_year = state.year + self.rng.randint(*config["duration"])
        self.multiplier = round(self.rng.uniform(*config["multiplier"]), 2)

        phase.apply(state)
        logger.info("Economic cycle: %s (%.2fx) in %s", phase.description, self.multiplier, state.nation_name)
        return phase


# ----------------------------------------------------------------------
# Research breakthroughs
# ----------------------------------------------------------------------
class Breakthrough:
    """A windfall discovery by the nation's scientists."""

    name: str = "breakthrough"
    min_year: int = 0

    def apply(self, state: NationState) -> None:
        raise NotImplementedError


class AgriculturalInnovation(Breakthrough):
    name = "Agricultural Innovation"

    def apply(self, state: NationState) -> None:
        state.natural_resources.food = math.floor(state.natural_resources.food * 1.5)
        state.resources.economy = clamp(state.resources.economy + 5)


class IndustrialEfficiency(Breakthrough):
    name = "Industrial Efficiency"

    def apply(self, state: NationState) -> None:
        state.natural_resources.minerals += 50
        state.resources.economy = clamp(state.resources.economy + 8)


class MedicalBreakthrough(Breakthrough):
    name = "Medical Breakthrough"

    def apply(self, state: NationState) -> None:
        people = state.population
        people.children += math.floor(people.total * 0.02)
        people.mood = min(100, people.mood + 25)


class EnergyRevolution(Breakthrough):
    name = "Energy Revolution"
    min_year = 1950

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.economy = clamp(res.economy + 12)
        res.stability = clamp(res.stability + 5)


class CommunicationsAdvance(Breakthrough):
    name = "Communications Advance"
    min_year = 1950

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.diplomacy = clamp(res.diplomacy + 10)
        res.culture = clamp(res.culture + 8)


class MilitaryInnovation(Breakthrough):
    name = "Military Innovation"

    def apply(self, state: NationState) -> None:
        res = state.resources
        res.military = clamp(res.military + 15)
        res.stability = clamp(res.stability + 3)


ALL_BREAKTHROUGHS: List[type[Breakthrough]] = [
    AgriculturalInnovation,
    IndustrialEfficiency,
    MedicalBreakthrough,
    EnergyRevolution,
    CommunicationsAdvance,
    MilitaryInnovation,
]


def breakthrough_chance(state: NationState) -> float:
    """Monthly odds of a breakthrough: zero below the scientist threshold."""
    scientists = state.population.scientists
    if scientists < settings.BREAKTHROUGH_MIN_SCIENTISTS:
        return 0.0
    chance = settings.BREAKTHROUGH_BASE_CHANCE
    chance += (scientists - settings.BREAKTHROUGH_MIN_SCIENTISTS + 1) * settings.BREAKTHROUGH_CHANCE_PER_SCIENTIST
    # Only the best education tech counts
    for tech_id, bonus in settings.BREAKTHROUGH_EDUCATION_BONUS.items():
        if tech_id in state.unlocked_techs:
            chance += bonus
            break
    return min(1.0, chance)


class BreakthroughSystem:
    """Rolls for a research breakthrough once per simulated month."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def roll(self, state: NationState) -> Optional[Breakthrough]:
        chance = breakthrough_chance(state)
        if chance <= 0 or self.rng.random() >= chance:
            return None
        candidates = [b for b in ALL_BREAKTHROUGHS if state.year >= b.min_year]
        breakthrough = self.rng.choice(candidates)()
        breakthrough.apply(state)
        logger.info("Research breakthrough in %s: %s", state.nation_name, breakthrough.name)
        return breakthrough
