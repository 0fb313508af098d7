from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

from . import settings

RESOURCE_KEYS = ("stability", "economy", "military", "diplomacy", "culture")
NATURAL_RESOURCE_KEYS = ("wood", "minerals", "food", "water", "land")
ROLES = ("workers", "soldiers", "scientists")


def clamp(value: float, low: float = settings.RESOURCE_MIN, high: float = settings.RESOURCE_MAX) -> float:
    return max(low, min(high, value))


@dataclass
class Resources:
    """National capability scores, each kept within [0, 100]."""

    stability: float = 0.0
    economy: float = 0.0
    military: float = 0.0
    diplomacy: float = 0.0
    culture: float = 0.0

    def get(self, key: str) -> float:
        return getattr(self, key)

    def set(self, key: str, value: float) -> None:
        if key not in RESOURCE_KEYS:
            raise ValueError(f"Unknown resource: {key}")
        setattr(self, key, value)

    def clamp_all(self) -> None:
        for key in RESOURCE_KEYS:
            setattr(self, key, clamp(getattr(self, key)))

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in RESOURCE_KEYS}


@dataclass
class NaturalResources:
    """Raw stockpiles. None of them may ever drop below zero."""

    wood: int = 0
    minerals: int = 0
    food: int = 0
    water: int = 0
    land: int = 0

    def get(self, key: str) -> int:
        return getattr(self, key)

    def set(self, key: str, value: int) -> None:
        if key not in NATURAL_RESOURCE_KEYS:
            raise ValueError(f"Unknown natural resource: {key}")
        setattr(self, key, value)

    def can_afford(self, costs: Dict[str, int]) -> bool:
        return all(self.get(key) - amount >= 0 for key, amount in costs.items())

    def as_dict(self) -> Dict[str, int]:
        return {key: getattr(self, key) for key in NATURAL_RESOURCE_KEYS}


@dataclass
class Population:
    men: int = 0
    women: int = 0
    children: int = 0
    workers: int = 0
    soldiers: int = 0
    scientists: int = 0
    mood: int = 70
    months_passed: int = 0

    @property
    def adults(self) -> int:
        return self.men + self.women

    @property
    def total(self) -> int:
        return self.men + self.women + self.children

    @property
    def assigned(self) -> int:
        return self.workers + self.soldiers + self.scientists

    @property
    def unassigned(self) -> int:
        """Adults without a role. Can only be negative right after starvation."""
        return self.adults - self.assigned

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class YearlyObjective:
    type: str
    target: str
    amount: float
    description: str
    completed: bool = False

    def as_dict(self) -> Dict[str, object]:
        return {
            "type": self.type,
            "target": self.target,
            "amount": self.amount,
            "description": self.description,
            "completed": self.completed,
        }


@dataclass
class LastResearch:
    """What was researched last and until when it is worth showing."""

    tech_id: str
    name: str
    researched_at: float
    expires_at: float

    def is_active(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now < self.expires_at


@dataclass
class DebtRecord:
    month: int
    year: int
    amount: float
    reason: str


@dataclass
class NationalDebt:
    total_debt: float = 0.0
    monthly_interest: float = 0.0
    interest_rate: float = settings.BASE_INTEREST_RATE
    history: List[DebtRecord] = field(default_factory=list)


@dataclass
class NationState:
    """Aggregate root holding one player's complete simulation state."""

    resources: Resources = field(default_factory=Resources)
    natural_resources: NaturalResources = field(default_factory=NaturalResources)
    population: Population = field(default_factory=Population)
    year: int = settings.FIRST_YEAR
    month: int = 1
    current_era: str = settings.ERAS[0][0]
    unlocked_techs: List[str] = field(default_factory=list)
    yearly_objectives: List[YearlyObjective] = field(default_factory=list)
    can_advance_year: bool = False
    nation_name: str = settings.DEFAULT_NATION_NAME
    leader_name: str = settings.DEFAULT_LEADER_NAME
    last_research: Optional[LastResearch] = None
    national_debt: NationalDebt = field(default_factory=NationalDebt)
    game_start_time: float = field(default_factory=time.time)

    def copy(self) -> "NationState":
        return copy.deepcopy(self)

    @classmethod
    def initial(cls) -> "NationState":
        """Fresh starting position (objectives are generated by the caller)."""
        return cls(
            resources=Resources(**settings.INITIAL_RESOURCES),
            natural_resources=NaturalResources(**settings.INITIAL_NATURAL_RESOURCES),
            population=Population(**settings.INITIAL_POPULATION),
        )
