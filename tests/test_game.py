import os
import random
import sys
import threading

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from nation import engine
from nation.game import Game
from nation.events import Boom, BreakthroughSystem, Drought, EconomicCycle, MilitaryInnovation
from nation.models import NationState, YearlyObjective
import nation.persistence as persistence


@pytest.fixture
def game():
    return Game(rng=random.Random(0), clock=lambda: 1000.0)


def test_defaults(game):
    state = game.state
    assert state.year == 1925
    assert state.month == 1
    assert state.nation_name == "New Nation"
    assert state.leader_name == "Anonymous Leader"
    assert state.yearly_objectives
    assert state.game_start_time == 1000.0


def test_set_names(game):
    assert game.set_nation("Freedonia")
    assert game.set_leader("Rufus")
    assert not game.set_nation("   ")
    assert game.state.nation_name == "Freedonia"
    assert game.state.leader_name == "Rufus"


def test_select_tech_unlocks(game):
    assert game.select_tech("gov_colonial_resistance")
    assert "gov_colonial_resistance" in game.state.unlocked_techs
    assert game.state.last_research.researched_at == 1000.0
    assert not game.select_tech("gov_colonial_resistance")


def test_select_tech_without_prerequisites_is_noop(game):
    before = game.snapshot()
    assert not game.select_tech("gov_democracy")
    assert game.state == before


def test_listeners_fire_only_on_accepted_actions(game):
    calls = []
    remove = game.add_listener(lambda action, state: calls.append(action))
    game.invest_in_resource("economy")
    game.distribute_people("workers", 100)
    game.advance_month()
    assert calls == ["invest_in_resource", "advance_month"]

    remove()
    game.advance_month()
    assert len(calls) == 2


def test_stuck_in_december_until_objectives_met():
    state = NationState.initial()
    state.yearly_objectives = [YearlyObjective("resources", "economy", 100, "impossible")]
    game = Game(state=state, rng=random.Random(0))
    for _ in range(14):
        game.advance_month()
    assert game.state.year == 1925
    assert game.state.month == 12


def test_year_advances_once_objectives_are_met():
    state = NationState.initial()
    state.month = 12
    state.yearly_objectives = [YearlyObjective("resources", "stability", 1, "easy", completed=True)]
    state.can_advance_year = True
    game = Game(state=state, rng=random.Random(0))
    game.advance_month()
    assert (game.state.month, game.state.year) == (1, 1926)
    assert not game.state.can_advance_year


def test_reset_game(game):
    game.select_tech("gov_colonial_resistance")
    game.advance_month()
    assert game.reset_game()
    assert game.state.unlocked_techs == []
    assert game.state.month == 1
    assert game.state.resources.stability == 10


def test_choose_country(game):
    assert game.choose_country("france")
    assert game.state.nation_name == "France"
    assert game.state.natural_resources.food == 700
    assert game.state.resources.culture == 18
    assert not game.choose_country("atlantis")


def test_take_debt_and_interest(game):
    assert game.take_debt(1000, "railways")
    state = game.state
    debt = state.national_debt
    assert debt.total_debt == 1000
    assert debt.interest_rate == pytest.approx(0.05 + 500 * 0.00005)
    assert state.resources.economy == 100  # 5 + 100, capped
    assert state.resources.stability == pytest.approx(60)
    assert state.natural_resources.food == 400 + 250
    assert state.natural_resources.minerals == 300 + 125
    assert debt.history[0].reason == "railways"

    game.advance_month()
    debt = game.state.national_debt
    interest = 1000 * 0.075 / 12
    assert debt.monthly_interest == pytest.approx(interest)
    assert debt.total_debt == pytest.approx(1000 + interest - interest * 1.5)


def test_take_debt_rejects_non_positive(game):
    assert not game.take_debt(0)
    assert not game.take_debt(-10)


def test_disasters_are_opt_in(monkeypatch):
    game = Game(rng=random.Random(0), disasters=True)
    monkeypatch.setattr(game.disaster_system.rng, "random", lambda: 0.0)
    monkeypatch.setattr(game.disaster_system.rng, "choice", lambda seq: Drought)
    game.advance_month()
    assert isinstance(game.last_disaster, Drought)

    quiet = Game(rng=random.Random(0))
    assert quiet.disaster_system is None
    quiet.advance_month()
    assert quiet.last_disaster is None


def test_economic_cycles_and_breakthroughs_are_opt_in(monkeypatch):
    state = NationState.initial()
    state.month = 12
    state.yearly_objectives = [YearlyObjective("resources", "stability", 1, "easy", completed=True)]
    state.can_advance_year = True
    state.population.workers = 2
    state.population.scientists = 5
    control = Game(state=state.copy(), rng=random.Random(0))
    control.advance_month()
    game = Game(state=state, rng=random.Random(0), economic_cycles=True, breakthroughs=True)
    game.economic_cycle = EconomicCycle(rng=random.Random(0), next_change_year=1926)
    game.breakthrough_system = BreakthroughSystem(rng=random.Random(0))
    monkeypatch.setattr(game.economic_cycle.rng, "choice", lambda seq: Boom)
    monkeypatch.setattr(game.breakthrough_system.rng, "random", lambda: 0.0)
    monkeypatch.setattr(game.breakthrough_system.rng, "choice", lambda seq: MilitaryInnovation)

    game.advance_month()
    assert game.state.year == 1926
    assert isinstance(game.last_breakthrough, MilitaryInnovation)
    assert isinstance(game.last_cycle_change, Boom)
    assert game.economic_cycle.phase == "boom"
    assert game.state.population.mood == min(100, control.state.population.mood + 15)
    assert game.state.resources.military == pytest.approx(control.state.resources.military + 15)

    quiet = Game(rng=random.Random(0))
    assert quiet.economic_cycle is None and quiet.breakthrough_system is None
    quiet.advance_month()
    assert quiet.last_cycle_change is None and quiet.last_breakthrough is None


def test_remote_adjust_waits_for_local_action(game, monkeypatch):
    """An adjust from another thread lands after, not inside, a running action."""
    real_invest = engine.invest
    blocked = []

    def invest_while_remote_adjusts(state, resource_key, graph):
        new_state = real_invest(state, resource_key, graph)
        remote = threading.Thread(target=game.adjust, kwargs={"natural_resources": {"water": 1000}})
        remote.start()
        remote.join(timeout=0.2)
        blocked.append(remote.is_alive())
        invest_while_remote_adjusts.remote = remote
        return new_state

    monkeypatch.setattr(engine, "invest", invest_while_remote_adjusts)
    assert game.invest_in_resource("stability")
    invest_while_remote_adjusts.remote.join()

    assert blocked == [True]
    nat = game.state.natural_resources
    assert nat.water == 1600
    assert (nat.food, nat.minerals) == (390, 295)
    assert game.state.resources.stability > 10


def test_adjust_clamps(game):
    assert game.adjust(
        resources={"stability": 500, "economy": -50},
        natural_resources={"wood": -10_000, "food": 30},
        population={"soldiers": -5},
    )
    state = game.state
    assert state.resources.stability == 100
    assert state.resources.economy == 0
    assert state.natural_resources.wood == 0
    assert state.natural_resources.food == 430
    assert state.population.soldiers == 0
    assert not game.adjust()


def test_apply_remote_state_keeps_missing_fields(game):
    game.take_debt(100)
    assert game.apply_remote_state({"nation_name": "Remote", "natural_resources": {"wood": 7}})
    assert game.state.nation_name == "Remote"
    assert game.state.natural_resources.wood == 7
    assert game.state.national_debt.total_debt == 100


def test_save_and_load_round_trip(game, tmp_path):
    game.set_nation("Saved")
    game.select_tech("econ_agricultural_reform")
    path = tmp_path / "save.json"
    game.save(path)
    loaded = Game.load(path)
    assert loaded.state.nation_name == "Saved"
    assert loaded.state.unlocked_techs == ["econ_agricultural_reform"]


def test_load_without_save_starts_fresh(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "SAVE_FILE", tmp_path / "missing.json")
    game = Game.load()
    assert game.state.year == 1925
