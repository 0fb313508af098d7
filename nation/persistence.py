from __future__ import annotations

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    NATURAL_RESOURCE_KEYS,
    RESOURCE_KEYS,
    DebtRecord,
    NationalDebt,
    NationState,
    Population,
    YearlyObjective,
    clamp,
)
from .technology import era_for_year


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
SAVE_FILE: Path = Path("save.json")
SAVE_VERSION = "1.0"


# -----------------------------------------------------------------------------
# Custom Exceptions
# -----------------------------------------------------------------------------
class GameSaveError(Exception):
    """Exception raised when saving the game state fails."""


class GameLoadError(Exception):
    """Exception raised when loading the game state fails."""


# -----------------------------------------------------------------------------
# Serialization / Deserialization Helpers
# -----------------------------------------------------------------------------
def serialize_objectives(objectives: List[YearlyObjective]) -> List[Dict[str, Any]]:
    return [o.as_dict() for o in objectives]


def deserialize_objectives(data: Any) -> List[YearlyObjective]:
    result: List[YearlyObjective] = []
    if not isinstance(data, list):
        return result
    for entry in data:
        if not isinstance(entry, dict):
            continue
        try:
            result.append(
                YearlyObjective(
                    type=str(entry["type"]),
                    target=str(entry["target"]),
                    amount=float(entry["amount"]),
                    description=str(entry.get("description", "")),
                    completed=bool(entry.get("completed", False)),
                )
            )
        except (KeyError, ValueError, TypeError):
            logging.warning(f"Skipping invalid objective entry: {entry}")
    return result


def serialize_debt(debt: NationalDebt) -> Dict[str, Any]:
    return {
        "total_debt": debt.total_debt,
        "monthly_interest": debt.monthly_interest,
        "interest_rate": debt.interest_rate,
        "history": [
            {"month": r.month, "year": r.year, "amount": r.amount, "reason": r.reason}
            for r in debt.history
        ],
    }


def deserialize_debt(data: Any, default: NationalDebt) -> NationalDebt:
    if not isinstance(data, dict):
        return default
    debt = NationalDebt()
    for key in ("total_debt", "monthly_interest", "interest_rate"):
        value = data.get(key, getattr(default, key))
        try:
            setattr(debt, key, float(value))
        except (ValueError, TypeError):
            logging.warning(f"Invalid debt field {key}: {value}")
            setattr(debt, key, getattr(default, key))
    raw_history = data.get("history", [])
    if isinstance(raw_history, list):
        for entry in raw_history:
            try:
                debt.history.append(
                    DebtRecord(
                        month=int(entry["month"]),
                        year=int(entry["year"]),
                        amount=float(entry["amount"]),
                        reason=str(entry.get("reason", "")),
                    )
                )
            except (KeyError, ValueError, TypeError):
                logging.warning(f"Skipping invalid debt record: {entry}")
    return debt


def serialize_nation(state: NationState) -> Dict[str, Any]:
    """Convert a nation into a JSON-serializable mapping."""
    return {
        "nation_name": state.nation_name,
        "leader_name": state.leader_name,
        "year": state.year,
        "month": state.month,
        "current_era": state.current_era,
        "resources": state.resources.as_dict(),
        "natural_resources": state.natural_resources.as_dict(),
        "population": state.population.as_dict(),
        "unlocked_techs": list(state.unlocked_techs),
        "yearly_objectives": serialize_objectives(state.yearly_objectives),
        "can_advance_year": state.can_advance_year,
        "national_debt": serialize_debt(state.national_debt),
        "game_start_time": state.game_start_time,
    }


def _read_numbers(target: Any, data: Any, keys, cast, label: str) -> None:
    if not isinstance(data, dict):
        if data is not None:
            logging.warning(f"'{label}' is not a mapping; keeping defaults.")
        return
    for key in keys:
        if key not in data:
            continue
        try:
            setattr(target, key, cast(data[key]))
        except (ValueError, TypeError, OverflowError):
            logging.warning(f"Skipping invalid {label} entry: {key}:{data[key]}")


def _stat(value: Any) -> float:
    return clamp(float(value))


def _count(value: Any) -> int:
    return max(0, int(value))


def deserialize_nation(data: Any, base: Optional[NationState] = None) -> NationState:
    """Build a nation from saved data, keeping ``base`` (or defaults) for anything missing or malformed."""
    state = base.copy() if base is not None else NationState.initial()
    if not isinstance(data, dict):
        logging.warning("Nation data is not a mapping; using defaults.")
        return state

    for key in ("nation_name", "leader_name"):
        if isinstance(data.get(key), str):
            setattr(state, key, data[key])

    for key in ("year", "month"):
        if key in data:
            try:
                setattr(state, key, int(data[key]))
            except (ValueError, TypeError):
                logging.warning(f"Invalid {key} in nation data: {data[key]}")
    state.month = min(12, max(1, state.month))
    # Era is always derived from the year
    state.current_era = era_for_year(state.year).name

    # Stats stay within [0, 100]; stockpiles and head counts are never negative
    _read_numbers(state.resources, data.get("resources"), RESOURCE_KEYS, _stat, "resources")
    _read_numbers(state.natural_resources, data.get("natural_resources"), NATURAL_RESOURCE_KEYS, _count, "natural_resources")
    population_keys = [k for k in Population().as_dict()]
    _read_numbers(state.population, data.get("population"), population_keys, _count, "population")
    state.population.mood = min(100, state.population.mood)

    techs = data.get("unlocked_techs")
    if isinstance(techs, list):
        state.unlocked_techs = [str(t) for t in techs]

    if "yearly_objectives" in data:
        state.yearly_objectives = deserialize_objectives(data["yearly_objectives"])
    if "can_advance_year" in data:
        state.can_advance_year = bool(data["can_advance_year"])

    state.national_debt = deserialize_debt(data.get("national_debt"), state.national_debt)

    start = data.get("game_start_time")
    if isinstance(start, (int, float)):
        state.game_start_time = float(start)
    return state


# -----------------------------------------------------------------------------
# Save / Load
# -----------------------------------------------------------------------------
def load_state(file_path: Optional[Path] = None) -> Optional[NationState]:
    """Load a saved nation. Returns None when no save exists."""
    path = Path(file_path) if file_path else SAVE_FILE
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise GameLoadError(f"Failed to read or parse save file: {e}") from e

    if not isinstance(raw_data, dict):
        raise GameLoadError("Save file does not contain an object")

    version = raw_data.get("version", "0.0")
    if version != SAVE_VERSION:
        logging.warning(f"Loading save with version {version}; expected {SAVE_VERSION}")
    return deserialize_nation(raw_data.get("nation", {}))


def save_state(state: NationState, file_path: Optional[Path] = None) -> None:
    """
    Persist a nation to disk in an atomic manner.

    Raises:
        GameSaveError: if writing or renaming fails.
    """
    path = Path(file_path) if file_path else SAVE_FILE
    temp_file = path.with_suffix(".json.tmp")
    data = {
        "version": SAVE_VERSION,
        "timestamp": time.time(),
        "nation": serialize_nation(state),
    }

    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        raise GameSaveError(f"Failed to write to temporary save file: {e}") from e

    try:
        shutil.move(str(temp_file), str(path))
    except OSError as e:
        try:
            temp_file.unlink(missing_ok=True)
        except OSError:
            pass
        raise GameSaveError(f"Failed to rename temporary save file to final: {e}") from e
