import os
import random
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

import main
from multiplayer import lobby
from multiplayer.store import InMemoryDocumentStore
from multiplayer.sync import MultiplayerSync
from nation.game import Game


@pytest.fixture
def session(tmp_path):
    return main.Session(Game(rng=random.Random(0)), save_path=tmp_path / "save.json")


def test_parse_amounts():
    assert main.parse_amounts("wood=50,food=30") == {"wood": 50, "food": 30}
    assert main.parse_amounts("-") == {}
    with pytest.raises(ValueError):
        main.parse_amounts("wood=lots")


def test_basic_commands(session):
    assert main.run_command(session, "") == ""
    assert main.run_command(session, "quit") is None
    assert "Commands:" in main.run_command(session, "help")
    assert "Unknown command" in main.run_command(session, "dance")
    assert "New Nation" in main.run_command(session, "status")
    assert "gov_colonial_resistance" in main.run_command(session, "techs")


def test_actions_change_the_nation(session):
    assert main.run_command(session, "research gov_colonial_resistance") == "Researched gov_colonial_resistance."
    assert main.run_command(session, "research gov_colonial_resistance") == "Not possible right now."
    assert main.run_command(session, "invest economy") == "Invested in economy."
    assert main.run_command(session, "assign scientists 3") == "scientists: 3"
    assert main.run_command(session, "assign farmers 3").startswith("Roles:")
    assert "02/1925" in main.run_command(session, "month")
    assert main.run_command(session, "debt 100 railways") == "Borrowed 100."


def test_bad_arguments_are_reported(session):
    assert "Invalid arguments for assign" in main.run_command(session, "assign workers")
    assert "Invalid arguments for month" in main.run_command(session, "month soon")


def test_save_command(session):
    assert main.run_command(session, "save") == "Saved."
    assert session.save_path.exists()


def test_multiplayer_commands_need_a_session(session):
    assert "Not in a multiplayer game" in main.run_command(session, "players")


def test_multiplayer_commands(session):
    store = InMemoryDocumentStore()
    other = Game(rng=random.Random(1))
    gid = lobby.create_game(store, "me", "Game", session.game.snapshot())
    lobby.join_game(store, gid, "them", other.snapshot())
    session.sync = MultiplayerSync(session.game, store, "me", push_interval=3600, heartbeat_interval=3600)
    them = MultiplayerSync(other, store, "them", push_interval=3600, heartbeat_interval=3600)
    session.sync.start(gid)
    them.start(gid)
    try:
        assert "me (you)" in main.run_command(session, "players")
        assert main.run_command(session, "stance them alliance") == "Stance towards them is now alliance."
        assert main.run_command(session, "trade them wood=50 food=30").startswith("Offer offer_")
        offer_id = them.incoming_offers()[0].id
        assert them.respond_to_trade_offer(offer_id, True)
        assert "trade_settled" in main.run_command(session, "events")
        assert main.run_command(session, "events") == "No new events."
        assert main.run_command(session, "war them") == "War declared on them."
        assert main.run_command(session, "attack them 100").startswith("Battle win")
        assert main.run_command(session, "invest culture") == "Invested in culture."
        assert lobby.load_game(store, gid)["action_log"]
    finally:
        session.sync.stop()
        them.stop()


def test_main_exits_cleanly(monkeypatch, tmp_path, capsys):
    save = tmp_path / "save.json"
    monkeypatch.setattr(sys, "argv", ["main.py", "--load-file", str(save), "--store", "memory"])
    inputs = iter(["status", "month 2", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(inputs))
    assert main.main() == 0
    out = capsys.readouterr().out
    assert "Hosting game" in out
    assert "03/1925" in out
    assert save.exists()


def test_unknown_country_fails(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["main.py", "--no-save", "--country", "atlantis"])
    assert main.main() == 1


def test_random_systems_flags(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["main.py", "--no-save", "--economic-cycles", "--breakthroughs", "--disasters"])
    inputs = iter(["status", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(inputs))
    assert main.main() == 0
    assert "Economy: stable (1.00x) until 1930" in capsys.readouterr().out
