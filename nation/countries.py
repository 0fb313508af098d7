from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from .technology import DATA_DIR

COUNTRIES_FILE: Path = DATA_DIR / "countries.json"


@dataclass(frozen=True)
class Country:
    """Preset starting position a player can pick instead of the default one."""

    id: str
    name: str
    region: str = ""
    starting_resources: Dict[str, float] = field(default_factory=dict)
    starting_natural_resources: Dict[str, int] = field(default_factory=dict)


def _parse(raw: dict) -> Country:
    return Country(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        region=raw.get("region", ""),
        starting_resources=dict(raw.get("starting_resources", {})),
        starting_natural_resources=dict(raw.get("starting_natural_resources", {})),
    )


@lru_cache(maxsize=1)
def load_countries(path: Path = COUNTRIES_FILE) -> List[Country]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return [_parse(raw) for raw in data.get("countries", [])]


def find_country(country_id: str) -> Optional[Country]:
    for country in load_countries():
        if country.id == country_id:
            return country
    return None
