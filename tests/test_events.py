import random

import pytest

from nation import settings
from nation.events import (
    ALL_BREAKTHROUGHS,
    ALL_DISASTERS,
    AgriculturalInnovation,
    Boom,
    BreakthroughSystem,
    Bust,
    DisasterSystem,
    DiseaseOutbreak,
    Drought,
    Earthquake,
    EconomicCycle,
    EconomicRecession,
    ForestFire,
    MedicalBreakthrough,
    breakthrough_chance,
)
from nation.models import NationState


def large_state():
    state = NationState.initial()
    state.population.men = 100
    state.population.women = 100
    state.population.children = 50
    return state


def test_disaster_frequency_is_low():
    system = DisasterSystem(rng=random.Random(0))
    hits = 0
    for _ in range(200):
        if system.roll(NationState.initial()):
            hits += 1
    assert hits <= 20


def test_zero_chance_never_strikes():
    system = DisasterSystem(rng=random.Random(0), chance=0.0)
    state = NationState.initial()
    before = state.copy()
    assert all(system.roll(state) is None for _ in range(100))
    assert state == before


def test_roll_applies_chosen_disaster(monkeypatch):
    rng = random.Random(0)
    monkeypatch.setattr(rng, "random", lambda: 0.01)
    monkeypatch.setattr(rng, "choice", lambda seq: ForestFire)
    state = NationState.initial()
    hit = DisasterSystem(rng=rng).roll(state)
    assert isinstance(hit, ForestFire)
    assert state.natural_resources.wood == 250
    assert state.natural_resources.food == 320
    assert state.population.mood == 60


def test_drought():
    state = NationState.initial()
    Drought().apply(state)
    assert state.natural_resources.food == 280
    assert state.natural_resources.water == 360
    assert state.population.mood == 55


def test_earthquake_casualties():
    state = large_state()
    Earthquake().apply(state)
    # 2% of 250 = 5 casualties split 40/40/20
    assert (state.population.men, state.population.women, state.population.children) == (98, 98, 49)
    assert state.natural_resources.minerals == 240
    assert state.natural_resources.wood == 450
    assert state.population.mood == 50


def test_disease_outbreak():
    state = large_state()
    DiseaseOutbreak().apply(state)
    assert state.population.men == 85
    assert state.population.children == 44
    assert state.resources.stability == 0
    assert state.population.mood == 45


def test_recession_never_goes_negative():
    state = NationState.initial()
    EconomicRecession().apply(state)
    assert state.resources.economy == 0
    assert state.resources.stability == 2
    assert state.natural_resources.food == 340


def test_all_disasters_registered():
    names = {cls().name for cls in ALL_DISASTERS}
    assert names == {"Drought", "Earthquake", "Disease Outbreak", "Economic Recession", "Forest Fire"}


def test_cycle_waits_for_change_year():
    cycle = EconomicCycle(rng=random.Random(0))
    state = NationState.initial()
    state.year = 1926
    assert cycle.on_new_year(state) is None
    assert cycle.years_in_phase == 1
    assert cycle.phase == "stable"


def test_cycle_rotates_without_repeating():
    cycle = EconomicCycle(rng=random.Random(3), next_change_year=1925)
    state = NationState.initial()
    phases = []
    for year in range(1930, 1990):
        state.year = year
        phase = cycle.on_new_year(state)
        if phase is None:
            continue
        low, high = settings.ECONOMIC_PHASES[phase.name]["duration"]
        assert low <= cycle.next_change_year - year <= high
        low, high = settings.ECONOMIC_PHASES[phase.name]["multiplier"]
        assert low - 0.005 <= cycle.multiplier <= high + 0.005
        phases.append(phase.name)
    assert len(phases) > 5
    assert all(a != b for a, b in zip(phases, phases[1:]))


def test_bust_drives_people_away():
    state = large_state()
    Bust().apply(state)
    # 5% of 250 = 12 migrants split 40/40/20
    assert (state.population.men, state.population.women, state.population.children) == (96, 96, 48)
    assert state.resources.economy == pytest.approx(3)
    assert state.resources.stability == pytest.approx(8)
    assert state.population.mood == 50


def test_boom_is_capped():
    state = NationState.initial()
    state.resources.stability = 95
    state.population.mood = 90
    Boom().apply(state)
    assert state.resources.stability == 100
    assert state.resources.economy == pytest.approx(6)
    assert state.population.mood == 100


def test_breakthrough_chance_grows_with_scientists_and_education():
    state = NationState.initial()
    state.population.scientists = 2
    assert breakthrough_chance(state) == 0
    state.population.scientists = 3
    assert breakthrough_chance(state) == pytest.approx(0.015)
    state.population.scientists = 5
    assert breakthrough_chance(state) == pytest.approx(0.025)
    state.unlocked_techs = ["cul_public_education"]
    assert breakthrough_chance(state) == pytest.approx(0.035)
    state.unlocked_techs = ["cul_public_education", "cul_higher_education"]
    assert breakthrough_chance(state) == pytest.approx(0.045)


def test_no_breakthrough_without_scientists(monkeypatch):
    rng = random.Random(0)
    monkeypatch.setattr(rng, "random", lambda: 0.0)
    assert BreakthroughSystem(rng=rng).roll(NationState.initial()) is None


def test_modern_breakthroughs_need_1950(monkeypatch):
    rng = random.Random(0)
    offered = []
    monkeypatch.setattr(rng, "random", lambda: 0.0)
    monkeypatch.setattr(rng, "choice", lambda seq: offered.append(seq) or seq[0])
    state = NationState.initial()
    state.population.scientists = 4
    system = BreakthroughSystem(rng=rng)

    assert isinstance(system.roll(state), AgriculturalInnovation)
    assert state.natural_resources.food == 600
    assert state.resources.economy == pytest.approx(10)
    state.year = 1950
    system.roll(state)
    assert len(offered[0]) == 4
    assert offered[1] == ALL_BREAKTHROUGHS


def test_medical_breakthrough():
    state = large_state()
    MedicalBreakthrough().apply(state)
    assert state.population.children == 55
    assert state.population.mood == 95
