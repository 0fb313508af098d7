from __future__ import annotations

"""Technology tree, eras and tech effect parsing."""

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from . import settings

logger = logging.getLogger("nationsim.Technology")
logger.addHandler(logging.NullHandler())

DATA_DIR: Path = Path(__file__).resolve().parent / "data"
TECH_TREE_FILE: Path = DATA_DIR / "tech_tree.json"


# --------------------------------------------------------------------
# Eras
# --------------------------------------------------------------------
@dataclass(frozen=True)
class Era:
    name: str
    start_year: int
    cost_multiplier: float


ERAS: List[Era] = [Era(name, start, mult) for name, start, mult in settings.ERAS]
_ERAS_BY_NAME: Dict[str, Era] = {era.name: era for era in ERAS}


def era_for_year(year: int) -> Era:
    """Return the era containing ``year``. Years before 1925 fall in the first era."""
    current = ERAS[0]
    for era in ERAS:
        if year >= era.start_year:
            current = era
    return current


def era_multiplier(era_name: str) -> float:
    era = _ERAS_BY_NAME.get(era_name)
    # Unknown era tags are treated as the most expensive era
    return era.cost_multiplier if era else ERAS[-1].cost_multiplier


# --------------------------------------------------------------------
# Effect parsing
# --------------------------------------------------------------------
# keyword -> (stat, weight). Direct stat keywords weigh twice as much as
# the looser synonyms.
EFFECT_KEYWORDS: Dict[str, Tuple[str, float]] = {
    "stability": ("stability", 100.0),
    "morale": ("stability", 50.0),
    "unity": ("stability", 50.0),
    "control": ("stability", 50.0),
    "gdp": ("economy", 100.0),
    "growth": ("economy", 100.0),
    "industry": ("economy", 100.0),
    "manufacturing": ("economy", 100.0),
    "military": ("military", 100.0),
    "defense": ("military", 100.0),
    "foreign": ("diplomacy", 100.0),
    "diplomacy": ("diplomacy", 100.0),
    "influence": ("diplomacy", 100.0),
    "cultural": ("culture", 100.0),
    "education": ("culture", 100.0),
}

# Keywords that speed up investment growth, each worth value * 0.5.
GROWTH_KEYWORDS: Dict[str, str] = {
    "stability": "stability",
    "gdp": "economy",
    "growth": "economy",
    "industry": "economy",
    "military": "military",
    "diplomacy": "diplomacy",
    "influence": "diplomacy",
    "cultural": "culture",
    "education": "culture",
}
GROWTH_KEYWORD_WEIGHT = 0.5

_EFFECT_RE = re.compile(r"([+-]\d+)%\s+(\w+)")


def parse_effect(effect: str) -> Optional[Tuple[float, str]]:
    """Parse ``"+10% gdp"`` into ``(0.10, "gdp")``. Returns None when unparsable."""
    match = _EFFECT_RE.search(effect)
    if not match:
        return None
    value_str, keyword = match.groups()
    return int(value_str) / 100, keyword.lower()


# --------------------------------------------------------------------
# Tech graph
# --------------------------------------------------------------------
class TechGraphError(ValueError):
    """Raised when tech reference data is malformed."""


@dataclass(frozen=True)
class TechNode:
    id: str
    name: str
    era: str
    description: str = ""
    effects: Tuple[str, ...] = ()
    prerequisites: Tuple[str, ...] = ()
    unlocks: Tuple[str, ...] = ()

    def parsed_effects(self) -> List[Tuple[float, str]]:
        return [p for p in (parse_effect(e) for e in self.effects) if p is not None]


@dataclass
class TechGraph:
    """Static prerequisite graph indexed by tech id."""

    branches: Dict[str, List[str]] = field(default_factory=dict)
    nodes: Dict[str, TechNode] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "TechGraph":
        graph = cls()
        for branch in data.get("branches", []):
            branch_name = branch.get("name", "")
            ids: List[str] = []
            for raw in branch.get("technologies", []):
                node = TechNode(
                    id=raw["id"],
                    name=raw.get("name", raw["id"]),
                    era=raw.get("era", ERAS[0].name),
                    description=raw.get("description", ""),
                    effects=tuple(raw.get("effects") or ()),
                    prerequisites=tuple(raw.get("prerequisites") or ()),
                    unlocks=tuple(raw.get("unlocks") or ()),
                )
                if node.id in graph.nodes:
                    raise TechGraphError(f"Duplicate tech id {node.id!r}")
                graph.nodes[node.id] = node
                ids.append(node.id)
            graph.branches[branch_name] = ids
        graph.validate()
        return graph

    @classmethod
    def from_file(cls, path: Path) -> "TechGraph":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def validate(self) -> None:
        """Check that prerequisites exist and form a DAG."""
        for node in self.nodes.values():
            for pre in node.prerequisites:
                if pre not in self.nodes:
                    raise TechGraphError(f"{node.id!r} requires unknown tech {pre!r}")
            for unlock in node.unlocks:
                if unlock not in self.nodes:
                    logger.warning("Tech %r lists unknown unlock %r", node.id, unlock)

        visiting: set[str] = set()
        done: set[str] = set()

        def visit(tech_id: str) -> None:
            if tech_id in done:
                return
            if tech_id in visiting:
                raise TechGraphError(f"Prerequisite cycle through {tech_id!r}")
            visiting.add(tech_id)
            for pre in self.nodes[tech_id].prerequisites:
                visit(pre)
            visiting.remove(tech_id)
            done.add(tech_id)

        for tech_id in self.nodes:
            visit(tech_id)

    def find_tech(self, tech_id: str) -> Optional[TechNode]:
        return self.nodes.get(tech_id)

    def is_available(self, tech_id: str, unlocked: Iterable[str]) -> bool:
        """True iff every prerequisite of ``tech_id`` is in ``unlocked``."""
        tech = self.nodes.get(tech_id)
        if tech is None:
            return False
        unlocked_set = set(unlocked)
        return all(pre in unlocked_set for pre in tech.prerequisites)

    def available_techs(self, unlocked: Iterable[str]) -> List[TechNode]:
        """Techs that could be researched next."""
        unlocked_set = set(unlocked)
        return [
            node
            for node in self.nodes.values()
            if node.id not in unlocked_set and self.is_available(node.id, unlocked_set)
        ]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, tech_id: object) -> bool:
        return tech_id in self.nodes


@lru_cache(maxsize=1)
def load_tech_graph() -> TechGraph:
    """Return the bundled tech tree (loaded once)."""
    return TechGraph.from_file(TECH_TREE_FILE)
