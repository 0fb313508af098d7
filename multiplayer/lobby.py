from __future__ import annotations

"""Game-level operations on the shared store: hosting, joining, diplomacy, trade and war.

Every function takes the store explicitly. Expected rejections (unknown
player, offer exceeding holdings, duplicate war...) return False/None;
``StoreError`` from the backend is left for the caller to handle.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from nation.models import NATURAL_RESOURCE_KEYS, NationState
from nation.persistence import serialize_nation

from . import settings
from .diplomacy import BattleOutcome, Combatant, NationDelta, resolve_battle, settle_trade
from .models import (
    OFFER_ACCEPTED,
    OFFER_PENDING,
    OFFER_REJECTED,
    GameEvent,
    TradeOffer,
    TurnInfo,
    War,
    clean_amounts,
)
from .store import ArrayUnion, DocumentStore, Increment, PreconditionFailedError, Snapshot, WriteBatch, get_path

logger = logging.getLogger("nationsim.Lobby")
logger.addHandler(logging.NullHandler())

# Fields of a nation shared with the other players
SHARED_NATION_FIELDS = (
    "nation_name",
    "leader_name",
    "resources",
    "natural_resources",
    "population",
    "unlocked_techs",
    "year",
    "month",
    "current_era",
    "yearly_objectives",
    "can_advance_year",
)


def player_slice(state: NationState, now: float, sync_version: int = 0) -> Dict[str, Any]:
    """The part of a nation written to ``player_data.<uid>``."""
    data = serialize_nation(state)
    result = {key: data[key] for key in SHARED_NATION_FIELDS}
    result["last_updated"] = now
    result["sync_version"] = sync_version
    return result


def _presence(online: bool, now: float) -> Dict[str, Any]:
    return {"is_online": online, "last_seen": now}


def _delta_updates(player_id: str, delta: NationDelta) -> Dict[str, Any]:
    prefix = f"player_data.{player_id}"
    updates: Dict[str, Any] = {}
    for key, amount in delta.natural_resources.items():
        updates[f"{prefix}.natural_resources.{key}"] = Increment(amount)
    for key, amount in delta.resources.items():
        updates[f"{prefix}.resources.{key}"] = Increment(amount)
    for key, amount in delta.population.items():
        updates[f"{prefix}.population.{key}"] = Increment(amount)
    return updates


def load_game(store: DocumentStore, game_id: str) -> Optional[Snapshot]:
    return store.get(settings.GAMES_COLLECTION, game_id)


def record_event(
    store: DocumentStore,
    game_id: str,
    event: GameEvent,
    batch: Optional[WriteBatch] = None,
) -> str:
    """Append ``event`` to the game's event log (inside ``batch`` when given)."""
    data = event.to_dict()
    data["game_id"] = game_id
    if batch is not None:
        return batch.add(settings.EVENTS_COLLECTION, data)
    return store.add(settings.EVENTS_COLLECTION, data)


def game_events(store: DocumentStore, game_id: str) -> List[GameEvent]:
    """Logged events of a game, oldest first."""
    docs = store.query(settings.EVENTS_COLLECTION, "game_id", game_id, order_by="timestamp")
    events = [GameEvent.from_dict(doc) for _, doc in docs]
    return [e for e in events if e is not None]


# --------------------------------------------------------------------
# Lobby
# --------------------------------------------------------------------
def create_game(
    store: DocumentStore,
    host_id: str,
    game_name: str,
    state: NationState,
    now: Optional[float] = None,
) -> str:
    """Host a new game with ``state`` as the host's nation. Returns the game id."""
    now = time.time() if now is None else now
    doc = {
        "game_name": game_name,
        "host_id": host_id,
        "player_ids": [host_id],
        "status": "waiting",
        "created_at": now,
        "player_data": {host_id: player_slice(state, now)},
        "player_presence": {host_id: _presence(True, now)},
        "diplomatic_stances": {host_id: {}},
        "active_wars": [],
        "trade_offers": {},
        "action_log": {},
        "turn_info": TurnInfo(current_player=host_id).to_dict(),
    }
    game_id = store.add(settings.GAMES_COLLECTION, doc)
    logger.info("Game %s (%s) created by %s", game_id, game_name, host_id)
    return game_id


def join_game(
    store: DocumentStore,
    game_id: str,
    player_id: str,
    state: NationState,
    now: Optional[float] = None,
) -> bool:
    now = time.time() if now is None else now
    doc = load_game(store, game_id)
    if doc is None:
        logger.warning("Cannot join missing game %s", game_id)
        return False
    player_ids = doc.get("player_ids") or []
    if player_id in player_ids:
        return True
    if doc.get("status") not in settings.JOINABLE_STATUSES or len(player_ids) >= settings.MAX_PLAYERS:
        logger.debug("Game %s is not accepting players", game_id)
        return False

    store.update(
        settings.GAMES_COLLECTION,
        game_id,
        {
            "player_ids": ArrayUnion(player_id),
            f"player_data.{player_id}": player_slice(state, now),
            f"player_presence.{player_id}": _presence(True, now),
            f"diplomatic_stances.{player_id}": {},
            "status": "active",
        },
    )
    logger.info("%s joined game %s", player_id, game_id)
    return True


def list_games(store: DocumentStore, status: Optional[str] = None) -> List[Tuple[str, Snapshot]]:
    """Games, newest first, optionally filtered by status."""
    if status is None:
        return store.query(settings.GAMES_COLLECTION, order_by="created_at", descending=True)
    return store.query(settings.GAMES_COLLECTION, "status", status, order_by="created_at", descending=True)


def _is_member(doc: Snapshot, *player_ids: str) -> bool:
    members = doc.get("player_ids") or []
    return all(p in members for p in player_ids)


# --------------------------------------------------------------------
# Diplomacy
# --------------------------------------------------------------------
def set_diplomatic_stance(
    store: DocumentStore,
    game_id: str,
    player_id: str,
    target_id: str,
    stance: str,
) -> bool:
    if stance not in settings.STANCES or player_id == target_id:
        return False
    doc = load_game(store, game_id)
    if doc is None or not _is_member(doc, player_id, target_id):
        return False
    store.update(
        settings.GAMES_COLLECTION,
        game_id,
        {f"diplomatic_stances.{player_id}.{target_id}": stance},
    )
    return True


def send_trade_offer(
    store: DocumentStore,
    game_id: str,
    from_id: str,
    to_id: str,
    offered: Dict[str, int],
    requested: Dict[str, int],
    now: Optional[float] = None,
) -> Optional[str]:
    """Post an offer. Rejected when it offers more than the sender holds."""
    now = time.time() if now is None else now
    if from_id == to_id:
        return None
    for amounts in (offered, requested):
        for key, value in amounts.items():
            if key not in NATURAL_RESOURCE_KEYS or value < 0:
                logger.debug("Invalid trade amount %s:%s", key, value)
                return None
    offered = clean_amounts(offered)
    requested = clean_amounts(requested)
    if not offered and not requested:
        return None

    doc = load_game(store, game_id)
    if doc is None or not _is_member(doc, from_id, to_id):
        return None
    holdings = get_path(doc, f"player_data.{from_id}.natural_resources", {}) or {}
    for key, amount in offered.items():
        if holdings.get(key, 0) < amount:
            logger.debug("Offer exceeds holdings of %s: %s", key, amount)
            return None

    offer = TradeOffer(
        id=f"offer_{uuid.uuid4().hex[:12]}",
        from_user_id=from_id,
        to_user_id=to_id,
        offered_resources=offered,
        requested_resources=requested,
        created_at=now,
    )
    store.update(settings.GAMES_COLLECTION, game_id, {f"trade_offers.{offer.id}": offer.to_dict()})
    logger.info("Trade offer %s from %s to %s", offer.id, from_id, to_id)
    return offer.id


def respond_to_trade_offer(
    store: DocumentStore,
    game_id: str,
    offer_id: str,
    player_id: str,
    accept: bool,
    now: Optional[float] = None,
) -> bool:
    """Accept or reject a pending offer addressed to ``player_id``.

    Acceptance writes the new status and both sides' resource increments
    in one update, which only applies while the offer is still pending.
    Returns False if another response settled it first.
    """
    now = time.time() if now is None else now
    doc = load_game(store, game_id)
    if doc is None:
        return False
    offer = TradeOffer.from_dict(get_path(doc, f"trade_offers.{offer_id}"))
    if offer is None or offer.to_user_id != player_id or offer.status != OFFER_PENDING:
        return False

    prefix = f"trade_offers.{offer_id}"
    updates: Dict[str, Any] = {
        f"{prefix}.status": OFFER_ACCEPTED if accept else OFFER_REJECTED,
        f"{prefix}.responded_at": now,
    }
    if accept:
        settlement = settle_trade(offer)
        updates.update(_delta_updates(offer.from_user_id, settlement.sender))
        updates.update(_delta_updates(offer.to_user_id, settlement.receiver))
    try:
        store.update(settings.GAMES_COLLECTION, game_id, updates, expected={f"{prefix}.status": OFFER_PENDING})
    except PreconditionFailedError as e:
        logger.info("Trade offer %s already settled: %s", offer_id, e)
        return False
    logger.info("Trade offer %s %s", offer_id, "accepted" if accept else "rejected")
    return True


def active_wars(doc: Snapshot) -> List[War]:
    wars = [War.from_dict(w) for w in doc.get("active_wars") or []]
    return [w for w in wars if w is not None]


def at_war(doc: Snapshot, a: str, b: str) -> bool:
    return any(w.involves(a, b) for w in active_wars(doc))


def declare_war(
    store: DocumentStore,
    game_id: str,
    attacker_id: str,
    defender_id: str,
    now: Optional[float] = None,
) -> bool:
    """Both stances become rivalry and the war is listed, in a single update."""
    now = time.time() if now is None else now
    if attacker_id == defender_id:
        return False
    doc = load_game(store, game_id)
    if doc is None or not _is_member(doc, attacker_id, defender_id):
        return False
    if at_war(doc, attacker_id, defender_id):
        logger.debug("%s and %s are already at war", attacker_id, defender_id)
        return False

    war = War(attacker_id=attacker_id, defender_id=defender_id, started_at=now)
    store.update(
        settings.GAMES_COLLECTION,
        game_id,
        {
            f"diplomatic_stances.{attacker_id}.{defender_id}": "rivalry",
            f"diplomatic_stances.{defender_id}.{attacker_id}": "rivalry",
            "active_wars": ArrayUnion(war.to_dict()),
        },
    )
    logger.info("%s declared war on %s", attacker_id, defender_id)
    return True


def _combatant(doc: Snapshot, player_id: str) -> Combatant:
    slice_ = get_path(doc, f"player_data.{player_id}", {}) or {}
    resources = slice_.get("resources") or {}
    population = slice_.get("population") or {}
    natural = slice_.get("natural_resources") or {}
    return Combatant(
        military=float(resources.get("military", 0)),
        soldiers=int(population.get("soldiers", 0)),
        natural_resources={k: int(natural.get(k, 0)) for k in NATURAL_RESOURCE_KEYS},
    )


def launch_attack(
    store: DocumentStore,
    game_id: str,
    attacker_id: str,
    defender_id: str,
    attack_strength: Optional[float] = None,
    now: Optional[float] = None,
) -> Optional[BattleOutcome]:
    """
    Resolve an attack between two players at war.

    Both players' increments and the ``attack`` event are committed as one
    batch. ``attack_strength`` defaults to the attacker's shared military.
    """
    now = time.time() if now is None else now
    doc = load_game(store, game_id)
    if doc is None or not at_war(doc, attacker_id, defender_id):
        return None

    attacker = _combatant(doc, attacker_id)
    defender = _combatant(doc, defender_id)
    strength = attacker.military if attack_strength is None else attack_strength
    outcome = resolve_battle(strength, attacker, defender)

    updates = _delta_updates(attacker_id, outcome.attacker)
    updates.update(_delta_updates(defender_id, outcome.defender))

    batch = store.batch()
    if updates:
        batch.update(settings.GAMES_COLLECTION, game_id, updates)
    record_event(
        store,
        game_id,
        GameEvent(
            type="attack",
            from_user_id=attacker_id,
            target_user_id=defender_id,
            timestamp=now,
            data={
                "result": outcome.result,
                "attack_strength": strength,
                "plunder": dict(outcome.plunder),
                "attacker_casualties": outcome.attacker_casualties,
                "defender_casualties": outcome.defender_casualties,
            },
        ),
        batch=batch,
    )
    batch.commit()
    logger.info("%s attacked %s: %s", attacker_id, defender_id, outcome.result)
    return outcome


def next_turn(turn: TurnInfo, player_ids: List[str]) -> TurnInfo:
    """Round-robin to the next player; the turn number grows when the order wraps."""
    if not player_ids:
        return TurnInfo(turn_number=turn.turn_number)
    index = player_ids.index(turn.current_player) if turn.current_player in player_ids else -1
    next_index = (index + 1) % len(player_ids)
    number = turn.turn_number + 1 if next_index == 0 else turn.turn_number
    return TurnInfo(current_player=player_ids[next_index], turn_number=number)
