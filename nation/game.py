import logging
import random
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from . import debt, engine, objectives
from .countries import find_country
from .events import Breakthrough, BreakthroughSystem, Disaster, DisasterSystem, EconomicCycle, EconomicPhase
from .models import NATURAL_RESOURCE_KEYS, RESOURCE_KEYS, NationState, clamp
from .persistence import deserialize_nation, load_state, save_state
from .technology import TechGraph, load_tech_graph

logger = logging.getLogger("nationsim.Game")
logger.addHandler(logging.NullHandler())

# Called as listener(action, state) after every accepted mutation.
Listener = Callable[[str, NationState], None]

_POPULATION_COUNTS = ("men", "women", "children", "workers", "soldiers", "scientists")


class Game:
    """
    Owns one player's nation and exposes every action that changes it.

    Each action delegates to the pure functions in ``engine``/``debt``; the
    new state is computed from the current one and swapped in while a
    re-entrant lock is held, so a remote ``adjust`` on the sync thread
    waits for a local action instead of being overwritten. Rejected actions
    return False and leave the state untouched; accepted ones notify the
    registered listeners.
    """

    def __init__(
        self,
        state: Optional[NationState] = None,
        graph: Optional[TechGraph] = None,
        rng: Optional[random.Random] = None,
        disasters: bool = False,
        clock: Callable[[], float] = time.time,
        economic_cycles: bool = False,
        breakthroughs: bool = False,
    ):
        self.graph = graph or load_tech_graph()
        self.rng = rng or random.Random()
        self.clock = clock
        self.disaster_system: Optional[DisasterSystem] = DisasterSystem(self.rng) if disasters else None
        self.economic_cycle: Optional[EconomicCycle] = EconomicCycle(self.rng) if economic_cycles else None
        self.breakthrough_system: Optional[BreakthroughSystem] = BreakthroughSystem(self.rng) if breakthroughs else None
        # What the last advance_month rolled
        self.last_disaster: Optional[Disaster] = None
        self.last_cycle_change: Optional[EconomicPhase] = None
        self.last_breakthrough: Optional[Breakthrough] = None

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._state: NationState = state if state is not None else self._fresh_state()

    # ------------------------------------------------------------------
    # State access & notification
    # ------------------------------------------------------------------
    @property
    def state(self) -> NationState:
        """The live state. Treat as read-only; use ``snapshot`` for a copy."""
        return self._state

    def snapshot(self) -> NationState:
        with self._lock:
            return self._state.copy()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it again."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, action: str, state: NationState) -> None:
        for listener in list(self._listeners):
            listener(action, state)

    def _transition(self, action: str, compute: Callable[[NationState], Optional[NationState]]) -> bool:
        """Compute and install the next state in one critical section.

        ``compute`` gets the current state and returns the new one, or None
        to reject. Listeners run after the lock is released.
        """
        with self._lock:
            new_state = compute(self._state)
            if new_state is None:
                logger.debug("Action %s rejected", action)
                return False
            self._state = new_state
        self._emit(action, new_state)
        return True

    def _fresh_state(self) -> NationState:
        state = NationState.initial()
        state.game_start_time = self.clock()
        state.yearly_objectives = objectives.generate(state, state.year, self.rng)
        engine.refresh_objectives(state)
        return state

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------
    def set_nation(self, name: str) -> bool:
        name = name.strip()
        if not name:
            return False

        def rename(state: NationState) -> NationState:
            new_state = state.copy()
            new_state.nation_name = name
            return new_state

        return self._transition("set_nation", rename)

    def set_leader(self, name: str) -> bool:
        name = name.strip()
        if not name:
            return False

        def rename(state: NationState) -> NationState:
            new_state = state.copy()
            new_state.leader_name = name
            return new_state

        return self._transition("set_leader", rename)

    def select_tech(self, tech_id: str) -> bool:
        def research(state: NationState) -> Optional[NationState]:
            new_state = engine.research(state, tech_id, self.graph, now=self.clock())
            if new_state is not None:
                logger.info("Researched %s", tech_id)
            return new_state

        return self._transition("select_tech", research)

    def invest_in_resource(self, resource_key: str) -> bool:
        return self._transition(
            "invest_in_resource", lambda state: engine.invest(state, resource_key, self.graph)
        )

    def distribute_people(self, role: str, amount: int) -> bool:
        return self._transition(
            "distribute_people", lambda state: engine.distribute_labor(state, role, amount)
        )

    def advance_month(self) -> bool:
        """Core month transition, then debt interest and the optional random systems."""
        return self._transition("advance_month", self._next_month)

    def _next_month(self, state: NationState) -> NationState:
        year = state.year
        new_state = engine.advance_month(state, self.rng)
        new_state = debt.accrue_interest(new_state)

        self.last_breakthrough = None
        self.last_disaster = None
        self.last_cycle_change = None
        if self.breakthrough_system is not None:
            self.last_breakthrough = self.breakthrough_system.roll(new_state)
        if self.disaster_system is not None:
            self.last_disaster = self.disaster_system.roll(new_state)
        if self.economic_cycle is not None and new_state.year != year:
            self.last_cycle_change = self.economic_cycle.on_new_year(new_state)

        # A fresh batch after rollover keeps its gate closed
        if new_state.year == year:
            engine.refresh_objectives(new_state)
        return new_state

    def reset_game(self) -> bool:
        def reset(state: NationState) -> NationState:
            self.last_disaster = None
            self.last_breakthrough = None
            self.last_cycle_change = None
            return self._fresh_state()

        logger.info("Game reset")
        return self._transition("reset_game", reset)

    def choose_country(self, country_id: str) -> bool:
        """Start over from a country preset's resources and name."""
        country = find_country(country_id)
        if country is None:
            logger.debug("Unknown country %s", country_id)
            return False

        def start(state: NationState) -> NationState:
            new_state = self._fresh_state()
            new_state.nation_name = country.name
            for key, value in country.starting_resources.items():
                if key in RESOURCE_KEYS:
                    new_state.resources.set(key, clamp(float(value)))
            for key, value in country.starting_natural_resources.items():
                if key in NATURAL_RESOURCE_KEYS:
                    new_state.natural_resources.set(key, max(0, int(value)))
            new_state.yearly_objectives = objectives.generate(new_state, new_state.year, self.rng)
            engine.refresh_objectives(new_state)
            return new_state

        return self._transition("choose_country", start)

    def take_debt(self, amount: float, reason: str = "government spending") -> bool:
        def borrow(state: NationState) -> Optional[NationState]:
            new_state = debt.take_debt(state, amount, reason)
            if new_state is not None:
                engine.refresh_objectives(new_state)
            return new_state

        return self._transition("take_debt", borrow)

    # ------------------------------------------------------------------
    # Remote reconciliation
    # ------------------------------------------------------------------
    def apply_remote_state(self, data: Dict) -> bool:
        """Overwrite the simulation state with a remote slice (fields missing remotely are kept)."""
        if not isinstance(data, dict):
            return False
        return self._transition("apply_remote_state", lambda state: deserialize_nation(data, base=state))

    def adjust(
        self,
        resources: Optional[Dict[str, float]] = None,
        natural_resources: Optional[Dict[str, float]] = None,
        population: Optional[Dict[str, float]] = None,
    ) -> bool:
        """Apply deltas coming from another player's action (trade, battle).

        Stats stay within [0, 100]; stockpiles and head counts never drop
        below zero.
        """
        if not (resources or natural_resources or population):
            return False

        def apply_deltas(state: NationState) -> NationState:
            new_state = state.copy()
            for key, delta in (resources or {}).items():
                if key in RESOURCE_KEYS:
                    new_state.resources.set(key, clamp(new_state.resources.get(key) + delta))
            for key, delta in (natural_resources or {}).items():
                if key in NATURAL_RESOURCE_KEYS:
                    new_state.natural_resources.set(key, max(0, int(new_state.natural_resources.get(key) + delta)))
            for key, delta in (population or {}).items():
                if key in _POPULATION_COUNTS:
                    setattr(new_state.population, key, max(0, int(getattr(new_state.population, key) + delta)))
            engine.refresh_objectives(new_state)
            return new_state

        return self._transition("adjust", apply_deltas)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, file_path: Optional[Path] = None) -> None:
        """Write the nation to disk. Raises GameSaveError on failure."""
        save_state(self.snapshot(), file_path)
        logger.info("Game saved")

    @classmethod
    def load(cls, file_path: Optional[Path] = None, **kwargs) -> "Game":
        """Restore a saved nation, or start fresh when there is no save."""
        state = load_state(file_path)
        if state is None:
            logger.warning("No saved state found; starting fresh.")
        return cls(state=state, **kwargs)
