"""Nation package exposing the single-player simulation core."""

from .game import Game
from .models import (
    NationState,
    Resources,
    NaturalResources,
    Population,
    YearlyObjective,
    LastResearch,
    NationalDebt,
)
from .technology import TechGraph, TechNode, TechGraphError, load_tech_graph, era_for_year
from .persistence import GameSaveError, GameLoadError

__all__ = [
    "Game",
    "NationState",
    "Resources",
    "NaturalResources",
    "Population",
    "YearlyObjective",
    "LastResearch",
    "NationalDebt",
    "TechGraph",
    "TechNode",
    "TechGraphError",
    "load_tech_graph",
    "era_for_year",
    "GameSaveError",
    "GameLoadError",
]
