import pytest

from multiplayer import lobby, settings
from multiplayer.models import TurnInfo
from multiplayer.store import InMemoryDocumentStore
from nation.models import NationState


def nation(name="Nation", **natural):
    state = NationState.initial()
    state.nation_name = name
    for key, value in natural.items():
        state.natural_resources.set(key, value)
    return state


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def game_id(store):
    gid = lobby.create_game(store, "alice", "Test Game", nation("Aland"), now=100.0)
    assert lobby.join_game(store, gid, "bob", nation("Bobland"), now=101.0)
    return gid


def slice_of(store, gid, player_id):
    return lobby.load_game(store, gid)["player_data"][player_id]


# --- Hosting & joining --------------------------------------------------------

def test_create_game_layout(store):
    gid = lobby.create_game(store, "alice", "Test Game", nation("Aland"), now=100.0)
    doc = lobby.load_game(store, gid)
    assert doc["host_id"] == "alice"
    assert doc["player_ids"] == ["alice"]
    assert doc["status"] == "waiting"
    assert doc["turn_info"]["current_player"] == "alice"
    assert doc["player_data"]["alice"]["nation_name"] == "Aland"
    assert doc["player_data"]["alice"]["last_updated"] == 100.0
    assert "national_debt" not in doc["player_data"]["alice"]
    assert doc["player_presence"]["alice"] == {"is_online": True, "last_seen": 100.0}


def test_join_is_idempotent_and_activates(store, game_id):
    assert lobby.join_game(store, game_id, "bob", nation("Other"))
    doc = lobby.load_game(store, game_id)
    assert doc["player_ids"] == ["alice", "bob"]
    assert doc["status"] == "active"
    assert doc["player_data"]["bob"]["nation_name"] == "Bobland"


def test_join_rejects_missing_finished_or_full_games(store, game_id):
    assert not lobby.join_game(store, "missing", "carol", nation())

    for i in range(settings.MAX_PLAYERS - 2):
        assert lobby.join_game(store, game_id, f"p{i}", nation())
    assert not lobby.join_game(store, game_id, "late", nation())

    store.update(settings.GAMES_COLLECTION, game_id, {"status": "finished"})
    assert not lobby.join_game(store, game_id, "later", nation())


def test_list_games_newest_first(store):
    old = lobby.create_game(store, "a", "Old", nation(), now=1.0)
    new = lobby.create_game(store, "b", "New", nation(), now=2.0)
    lobby.join_game(store, old, "c", nation())
    assert [gid for gid, _ in lobby.list_games(store)] == [new, old]
    assert [gid for gid, _ in lobby.list_games(store, "waiting")] == [new]


# --- Diplomacy ----------------------------------------------------------------

def test_set_diplomatic_stance(store, game_id):
    assert lobby.set_diplomatic_stance(store, game_id, "alice", "bob", "alliance")
    assert not lobby.set_diplomatic_stance(store, game_id, "alice", "bob", "vassal")
    assert not lobby.set_diplomatic_stance(store, game_id, "alice", "alice", "rivalry")
    assert not lobby.set_diplomatic_stance(store, game_id, "alice", "zed", "rivalry")
    doc = lobby.load_game(store, game_id)
    assert doc["diplomatic_stances"]["alice"] == {"bob": "alliance"}
    assert doc["diplomatic_stances"]["bob"] == {}


# --- Trade --------------------------------------------------------------------

def test_trade_offer_validation(store, game_id):
    assert lobby.send_trade_offer(store, game_id, "alice", "bob", {"wood": 501}, {}) is None
    assert lobby.send_trade_offer(store, game_id, "alice", "bob", {"wood": -5}, {"food": 1}) is None
    assert lobby.send_trade_offer(store, game_id, "alice", "bob", {"gold": 5}, {}) is None
    assert lobby.send_trade_offer(store, game_id, "alice", "bob", {}, {}) is None
    assert lobby.send_trade_offer(store, game_id, "alice", "alice", {"wood": 5}, {}) is None
    assert lobby.send_trade_offer(store, game_id, "alice", "zed", {"wood": 5}, {}) is None
    assert lobby.load_game(store, game_id)["trade_offers"] == {}


def test_accepted_trade_moves_resources_once(store, game_id):
    offer_id = lobby.send_trade_offer(store, game_id, "alice", "bob", {"wood": 50}, {"food": 30}, now=5.0)
    assert offer_id.startswith("offer_")

    # only the recipient may respond
    assert not lobby.respond_to_trade_offer(store, game_id, offer_id, "alice", True)
    assert lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", True, now=6.0)

    alice = slice_of(store, game_id, "alice")["natural_resources"]
    bob = slice_of(store, game_id, "bob")["natural_resources"]
    assert (alice["wood"], alice["food"]) == (450, 430)
    assert (bob["wood"], bob["food"]) == (550, 370)
    offer = lobby.load_game(store, game_id)["trade_offers"][offer_id]
    assert offer["status"] == "accepted"
    assert offer["responded_at"] == 6.0

    # terminal
    assert not lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", True)
    assert not lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", False)
    assert slice_of(store, game_id, "alice")["natural_resources"]["wood"] == 450


def test_racing_responses_settle_an_offer_once(store, game_id, monkeypatch):
    offer_id = lobby.send_trade_offer(store, game_id, "alice", "bob", {"wood": 50}, {"food": 30})
    stale = lobby.load_game(store, game_id)
    assert lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", True)

    # a second response that read the offer before the first one landed
    monkeypatch.setattr(lobby, "load_game", lambda s, gid: stale)
    assert not lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", True)
    monkeypatch.undo()

    alice = slice_of(store, game_id, "alice")["natural_resources"]
    assert (alice["wood"], alice["food"]) == (450, 430)
    assert lobby.load_game(store, game_id)["trade_offers"][offer_id]["status"] == "accepted"


def test_rejected_trade_changes_nothing(store, game_id):
    offer_id = lobby.send_trade_offer(store, game_id, "alice", "bob", {"wood": 50}, {"food": 30})
    assert lobby.respond_to_trade_offer(store, game_id, offer_id, "bob", False)
    assert lobby.load_game(store, game_id)["trade_offers"][offer_id]["status"] == "rejected"
    assert slice_of(store, game_id, "alice")["natural_resources"]["wood"] == 500


# --- War ----------------------------------------------------------------------

def test_declare_war_sets_rivalry_once(store, game_id):
    assert lobby.declare_war(store, game_id, "alice", "bob", now=7.0)
    assert not lobby.declare_war(store, game_id, "bob", "alice")
    doc = lobby.load_game(store, game_id)
    assert doc["diplomatic_stances"]["alice"]["bob"] == "rivalry"
    assert doc["diplomatic_stances"]["bob"]["alice"] == "rivalry"
    assert len(doc["active_wars"]) == 1
    assert lobby.at_war(doc, "bob", "alice")


def test_attack_requires_war(store, game_id):
    assert lobby.launch_attack(store, game_id, "alice", "bob", 150) is None
    assert lobby.game_events(store, game_id) == []


def test_attack_win_plunders_defender(store, game_id):
    store.update(settings.GAMES_COLLECTION, game_id, {
        "player_data.bob.resources.military": 100,
        "player_data.bob.population.soldiers": 40,
        "player_data.alice.population.soldiers": 50,
    })
    lobby.declare_war(store, game_id, "alice", "bob")
    outcome = lobby.launch_attack(store, game_id, "alice", "bob", 150, now=9.0)
    assert outcome.result == "win"

    alice = slice_of(store, game_id, "alice")
    bob = slice_of(store, game_id, "bob")
    assert bob["natural_resources"] == {"wood": 450, "minerals": 270, "food": 360, "water": 540, "land": 1000}
    assert alice["natural_resources"]["wood"] == 550
    assert alice["natural_resources"]["land"] == 1000
    assert bob["population"]["soldiers"] == 36
    assert alice["population"]["soldiers"] == 49
    assert alice["resources"]["stability"] == 15
    assert bob["resources"]["stability"] == 5

    events = lobby.game_events(store, game_id)
    assert [e.type for e in events] == ["attack"]
    assert events[0].target_user_id == "bob"
    assert events[0].data["plunder"]["wood"] == 50


def test_attack_strength_defaults_to_shared_military(store, game_id):
    lobby.declare_war(store, game_id, "alice", "bob")
    # 3 against 3 is a draw
    outcome = lobby.launch_attack(store, game_id, "alice", "bob")
    assert outcome.result == "draw"


# --- Turns --------------------------------------------------------------------

def test_next_turn_wraps_and_counts():
    order = ["a", "b", "c"]
    turn = TurnInfo(current_player="a", turn_number=1)
    turn = lobby.next_turn(turn, order)
    assert (turn.current_player, turn.turn_number) == ("b", 1)
    turn = lobby.next_turn(lobby.next_turn(turn, order), order)
    assert (turn.current_player, turn.turn_number) == ("a", 2)
    assert lobby.next_turn(turn, []).current_player == ""
