import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from nation.game import Game
from nation.models import NATURAL_RESOURCE_KEYS, RESOURCE_KEYS, NationState

from . import lobby, settings
from .diplomacy import BattleOutcome
from .models import OFFER_PENDING, GameEvent, PlayerInfo, TradeOffer, TurnInfo, War
from .store import DocumentStore, PreconditionFailedError, Snapshot, StoreError, get_path

logger = logging.getLogger("nationsim.Sync")
logger.addHandler(logging.NullHandler())

SYNCED = "synced"
SYNCING = "syncing"
ERROR = "error"

_POPULATION_COUNTS = ("men", "women", "children", "workers", "soldiers", "scientists")


class _PeriodicTask:
    """Runs ``func`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, name: str, interval: float, func: Callable[[], Any]):
        self.name = name
        self.interval = interval
        self.func = func
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.func()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None


class MultiplayerSync:
    """
    Keeps one local :class:`Game` in step with a shared game document.

    Writes are always scoped to ``player_data.<player_id>`` and
    ``player_presence.<player_id>``; other players' slices are only read.
    Remote increments to the local player's own slice (trade settlement,
    battle results) are detected against the last pushed slice and applied
    to the local nation. Store failures only change ``sync_status``.
    """

    def __init__(
        self,
        game: Game,
        store: DocumentStore,
        player_id: str,
        push_interval: float = settings.PUSH_INTERVAL,
        heartbeat_interval: float = settings.HEARTBEAT_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.game = game
        self.store = store
        self.player_id = player_id
        self.push_interval = push_interval
        self.heartbeat_interval = heartbeat_interval
        self.clock = clock

        self.game_id: Optional[str] = None
        self.is_host = False
        self.player_order: List[str] = []
        self.players: Dict[str, PlayerInfo] = {}
        self.diplomatic_stances: Dict[str, Dict[str, str]] = {}
        self.active_wars: List[War] = []
        self.trade_offers: Dict[str, TradeOffer] = {}
        self.turn_info = TurnInfo()
        self.events: List[GameEvent] = []
        self.pending_actions: List[Dict[str, Any]] = []
        self.sync_status = SYNCED
        self.last_error: Optional[str] = None

        self._lock = threading.RLock()
        self._push_lock = threading.Lock()
        self._active = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None
        self._tasks: List[_PeriodicTask] = []
        self._baseline: Optional[Dict[str, Any]] = None
        self._sync_version = 0
        self._seen_offers: set = set()
        self._settled_offers: set = set()

        self._handlers: Dict[str, Callable[[Dict[str, Any]], bool]] = {
            "tech_research": lambda p: self.game.select_tech(p["tech_id"]),
            "resource_investment": lambda p: self.game.invest_in_resource(p["resource"]),
            "population_distribution": lambda p: self.game.distribute_people(p["role"], int(p["amount"])),
            "month_advance": lambda p: self.game.advance_month(),
        }

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------
    def _fail(self, action: str, error: Exception) -> None:
        self.sync_status = ERROR
        self.last_error = f"{action}: {error}"
        logger.warning("Failed to %s: %s", action, error)

    def _add_event(self, event: GameEvent) -> None:
        with self._lock:
            self.events.append(event)

    def unread_events(self) -> List[GameEvent]:
        with self._lock:
            return [e for e in self.events if not e.read]

    def mark_event_read(self, event_id: str) -> bool:
        with self._lock:
            for event in self.events:
                if event.id == event_id:
                    event.read = True
                    return True
        return False

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def initialize_session(self, game_id: str) -> bool:
        """Fetch the shared game once and hydrate local state from it."""
        try:
            doc = lobby.load_game(self.store, game_id)
        except StoreError as e:
            self._fail("load game", e)
            return False
        if doc is None:
            self._fail("load game", StoreError(f"game {game_id} not found"))
            return False

        with self._lock:
            self.game_id = game_id
            self.is_host = doc.get("host_id") == self.player_id
            own = get_path(doc, f"player_data.{self.player_id}")
            if isinstance(own, dict):
                self.game.apply_remote_state(own)
                self._baseline = own
                version = own.get("sync_version", 0)
                self._sync_version = version if isinstance(version, int) else 0
            self._apply_shared(doc)
            self.sync_status = SYNCED
        logger.info("Session %s initialised for %s (host=%s)", game_id, self.player_id, self.is_host)
        return True

    def start(self, game_id: str) -> bool:
        """Initialise, subscribe, push once and start the periodic tasks."""
        if not self.initialize_session(game_id):
            return False
        self._active = True
        try:
            self._unsubscribe = self.store.subscribe(settings.GAMES_COLLECTION, game_id, self._on_snapshot)
        except StoreError as e:
            self._fail("subscribe", e)
        self._remove_listener = self.game.add_listener(self._on_local_change)
        self.update_presence(True)
        self.push_player_state()

        self._tasks = [
            _PeriodicTask("push-sync", self.push_interval, self.push_player_state),
            _PeriodicTask("heartbeat", self.heartbeat_interval, self.update_presence),
        ]
        for task in self._tasks:
            task.start()
        return True

    def stop(self) -> None:
        """Unsubscribe first, then stop the timers and mark the player offline."""
        self._active = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in self._tasks:
            task.stop()
        self._tasks = []
        if self.game_id is not None:
            self.update_presence(False)
        logger.info("Session %s stopped for %s", self.game_id, self.player_id)

    @property
    def active(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------
    def push_player_state(self) -> bool:
        """Write the full local nation to this player's slice.

        The write only lands if the slice is unchanged since it was read,
        so an increment settled in between is folded in on the next pass
        rather than overwritten.
        """
        if self.game_id is None:
            return False
        # _lock is never held across a store write: the store may call
        # other clients' snapshot handlers from this thread.
        with self._push_lock:
            self.sync_status = SYNCING
            path = f"player_data.{self.player_id}"
            error: Optional[StoreError] = None
            for _ in range(settings.PUSH_ATTEMPTS):
                try:
                    doc = lobby.load_game(self.store, self.game_id)
                except StoreError as e:
                    self._fail("push player state", e)
                    return False

                with self._lock:
                    # Pick up increments made since the last push before overwriting them
                    if doc is not None:
                        self._reconcile_own_slice(doc)
                    previous = (self._baseline, self._sync_version)
                    self._sync_version += 1
                    slice_ = lobby.player_slice(self.game.snapshot(), self.clock(), self._sync_version)
                    self._baseline = slice_

                current = get_path(doc, path) if doc is not None else None
                try:
                    self.store.update(
                        settings.GAMES_COLLECTION,
                        self.game_id,
                        {path: slice_},
                        expected={path: current} if current is not None else None,
                    )
                except PreconditionFailedError as e:
                    with self._lock:
                        self._baseline, self._sync_version = previous
                    error = e
                    logger.debug("Slice of %s changed during push, retrying", self.player_id)
                    continue
                except StoreError as e:
                    with self._lock:
                        self._baseline, self._sync_version = previous
                    self._fail("push player state", e)
                    return False
                self.sync_status = SYNCED
                return True
            self._fail("push player state", error)
            return False

    def update_presence(self, online: bool = True) -> bool:
        if self.game_id is None:
            return False
        try:
            self.store.update(
                settings.GAMES_COLLECTION,
                self.game_id,
                {f"player_presence.{self.player_id}": {"is_online": online, "last_seen": self.clock()}},
            )
        except StoreError as e:
            self._fail("update presence", e)
            return False
        return True

    def is_player_online(self, user_id: str) -> bool:
        """Online iff flagged online and seen within the staleness window."""
        with self._lock:
            info = self.players.get(user_id)
            if info is None or not info.is_online:
                return False
            return self.clock() - info.last_seen <= settings.PRESENCE_STALE_AFTER

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------
    def _on_snapshot(self, doc: Snapshot) -> None:
        if not self._active:
            return
        with self._lock:
            self._apply_shared(doc)
            self._reconcile_own_slice(doc)
            if self.sync_status != SYNCING:
                self.sync_status = SYNCED

    def _apply_shared(self, doc: Snapshot) -> None:
        """Roster, presence, stances, wars, turn and offers from a remote snapshot."""
        player_ids = doc.get("player_ids")
        self.player_order = [str(p) for p in player_ids] if isinstance(player_ids, list) else []

        player_data = doc.get("player_data") if isinstance(doc.get("player_data"), dict) else {}
        presence = doc.get("player_presence") if isinstance(doc.get("player_presence"), dict) else {}
        players: Dict[str, PlayerInfo] = {}
        for uid in self.player_order:
            data = player_data.get(uid) if isinstance(player_data.get(uid), dict) else {}
            seen = presence.get(uid) if isinstance(presence.get(uid), dict) else {}
            resources = data.get("resources") if isinstance(data.get("resources"), dict) else {}
            try:
                last_seen = float(seen.get("last_seen", 0.0))
            except (ValueError, TypeError):
                last_seen = 0.0
            players[uid] = PlayerInfo(
                user_id=uid,
                nation_name=str(data.get("nation_name", "")),
                leader_name=str(data.get("leader_name", "")),
                is_online=bool(seen.get("is_online", False)),
                last_seen=last_seen,
                military=float(resources.get("military", 0) or 0),
            )
        self.players = players

        stances = doc.get("diplomatic_stances")
        if isinstance(stances, dict):
            self.diplomatic_stances = {
                str(uid): {str(t): str(s) for t, s in row.items()}
                for uid, row in stances.items()
                if isinstance(row, dict)
            }
        self.active_wars = lobby.active_wars(doc)
        self.turn_info = TurnInfo.from_dict(doc.get("turn_info"))

        offers = doc.get("trade_offers")
        if isinstance(offers, dict):
            self._apply_offers(offers)

    def _apply_offers(self, raw_offers: Dict[str, Any]) -> None:
        offers: Dict[str, TradeOffer] = {}
        for raw in raw_offers.values():
            offer = TradeOffer.from_dict(raw)
            if offer is None:
                continue
            offers[offer.id] = offer
            if offer.to_user_id == self.player_id and offer.status == OFFER_PENDING:
                if offer.id not in self._seen_offers:
                    self._seen_offers.add(offer.id)
                    self.events.append(
                        GameEvent(
                            type="trade_offer",
                            from_user_id=offer.from_user_id,
                            target_user_id=self.player_id,
                            data={"offer_id": offer.id, **offer.to_dict()},
                            timestamp=offer.created_at,
                        )
                    )
            elif offer.from_user_id == self.player_id and offer.status != OFFER_PENDING:
                if offer.id not in self._settled_offers:
                    self._settled_offers.add(offer.id)
                    self.events.append(
                        GameEvent(
                            type="trade_settled",
                            from_user_id=offer.to_user_id,
                            target_user_id=self.player_id,
                            data={"offer_id": offer.id, "status": offer.status},
                        )
                    )
        self.trade_offers = offers

    def _reconcile_own_slice(self, doc: Snapshot) -> None:
        """Apply increments other players wrote to this player's slice since the last push."""
        remote = get_path(doc, f"player_data.{self.player_id}")
        baseline = self._baseline
        if not isinstance(remote, dict) or baseline is None:
            return
        # Snapshots older than our last push carry nothing new
        if remote.get("sync_version") != baseline.get("sync_version"):
            return

        deltas = {
            "resources": _diff(remote.get("resources"), baseline.get("resources"), RESOURCE_KEYS),
            "natural_resources": _diff(
                remote.get("natural_resources"), baseline.get("natural_resources"), NATURAL_RESOURCE_KEYS
            ),
            "population": _diff(remote.get("population"), baseline.get("population"), _POPULATION_COUNTS),
        }
        self._baseline = remote
        if any(deltas.values()):
            logger.info("Applying remote changes to %s: %s", self.player_id, deltas)
            self.game.adjust(**deltas)

    # ------------------------------------------------------------------
    # Local changes
    # ------------------------------------------------------------------
    def _on_local_change(self, action: str, state: NationState) -> None:
        if action != "advance_month" or self.game_id is None:
            return
        when = {"month": state.month, "year": state.year}
        if self.game.last_breakthrough is not None:
            self._record_system_event(
                "research_breakthrough",
                {"breakthrough_type": self.game.last_breakthrough.name, "scientists": state.population.scientists, **when},
            )
        if self.game.last_disaster is not None:
            self._record_system_event("disaster", {"disaster_type": self.game.last_disaster.name, **when})
        if self.game.last_cycle_change is not None:
            cycle = self.game.economic_cycle
            self._record_system_event(
                "economic_cycle",
                {
                    "cycle_type": self.game.last_cycle_change.name,
                    "description": self.game.last_cycle_change.description,
                    "multiplier": cycle.multiplier if cycle is not None else 1.0,
                    **when,
                },
            )

    def _record_system_event(self, event_type: str, data: Dict[str, Any]) -> None:
        event = GameEvent(
            type=event_type,
            from_user_id="system",
            target_user_id=self.player_id,
            data=data,
            timestamp=self.clock(),
        )
        self._add_event(event)
        try:
            lobby.record_event(self.store, self.game_id, event)
        except StoreError as e:
            self._fail(f"record {event_type}", e)

    def execute_multiplayer_action(
        self,
        action_type: str,
        execute: Callable[[], Any],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Apply locally first, then relay to the shared action log (best effort)."""
        result = execute()
        if self.game_id is None:
            return result

        now = self.clock()
        entry = {
            "type": action_type,
            "player_id": self.player_id,
            "payload": dict(payload or {}),
            "timestamp": now,
            "applied": bool(result),
        }
        key = f"{self.player_id}_{int(now * 1000)}_{uuid.uuid4().hex[:6]}"
        try:
            self.store.update(settings.GAMES_COLLECTION, self.game_id, {f"action_log.{key}": entry})
        except StoreError as e:
            self._fail(f"relay {action_type}", e)
            return result
        self._add_event(
            GameEvent(type=action_type, from_user_id=self.player_id, data=dict(payload or {}), timestamp=now)
        )
        return result

    def queue_action(self, action_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self.pending_actions.append({"type": action_type, "payload": dict(payload or {})})

    def process_queued_actions(self) -> int:
        """Run queued actions in order; returns how many were accepted."""
        with self._lock:
            queued, self.pending_actions = self.pending_actions, []
        accepted = 0
        for action in queued:
            handler = self._handlers.get(action["type"])
            if handler is None:
                logger.warning("Unknown queued action type %s", action["type"])
                continue
            payload = action["payload"]
            try:
                if self.execute_multiplayer_action(action["type"], lambda: handler(payload), payload):
                    accepted += 1
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Malformed queued action %s: %s", action, e)
        return accepted

    def end_turn(self) -> bool:
        """Pass the turn to the next player in join order."""
        if self.game_id is None:
            return False
        with self._lock:
            if self.turn_info.current_player not in ("", self.player_id) and not self.is_host:
                return False
            current = self.turn_info
            following = lobby.next_turn(current, self.player_order)
        event = GameEvent(
            type="turn_ended",
            from_user_id=self.player_id,
            data={"turn_number": current.turn_number, "actions_taken": list(current.actions_taken)},
            timestamp=self.clock(),
        )
        try:
            self.store.update(settings.GAMES_COLLECTION, self.game_id, {"turn_info": following.to_dict()})
            lobby.record_event(self.store, self.game_id, event)
        except StoreError as e:
            self._fail("end turn", e)
            return False
        with self._lock:
            self.turn_info = following
        self._add_event(event)
        return True

    # ------------------------------------------------------------------
    # Cross-nation actions
    # ------------------------------------------------------------------
    def set_diplomatic_stance(self, target_id: str, stance: str) -> bool:
        if self.game_id is None:
            return False
        try:
            ok = lobby.set_diplomatic_stance(self.store, self.game_id, self.player_id, target_id, stance)
        except StoreError as e:
            self._fail("set stance", e)
            return False
        if ok:
            with self._lock:
                self.diplomatic_stances.setdefault(self.player_id, {})[target_id] = stance
        return ok

    def stance_towards(self, target_id: str) -> str:
        with self._lock:
            return self.diplomatic_stances.get(self.player_id, {}).get(target_id, settings.DEFAULT_STANCE)

    def send_trade_offer(self, to_id: str, offered: Dict[str, int], requested: Dict[str, int]) -> Optional[str]:
        if self.game_id is None:
            return None
        # Holdings are checked against the shared slice, so publish first
        self.push_player_state()
        try:
            return lobby.send_trade_offer(
                self.store, self.game_id, self.player_id, to_id, offered, requested, now=self.clock()
            )
        except StoreError as e:
            self._fail("send trade offer", e)
            return None

    def incoming_offers(self) -> List[TradeOffer]:
        with self._lock:
            return [o for o in self.trade_offers.values() if o.to_user_id == self.player_id and o.is_pending]

    def respond_to_trade_offer(self, offer_id: str, accept: bool) -> bool:
        if self.game_id is None:
            return False
        # Settlement increments both slices, so ours must be current first
        self.push_player_state()
        try:
            return lobby.respond_to_trade_offer(
                self.store, self.game_id, offer_id, self.player_id, accept, now=self.clock()
            )
        except StoreError as e:
            self._fail("respond to trade offer", e)
            return False

    def declare_war(self, target_id: str) -> bool:
        if self.game_id is None:
            return False
        try:
            ok = lobby.declare_war(self.store, self.game_id, self.player_id, target_id, now=self.clock())
        except StoreError as e:
            self._fail("declare war", e)
            return False
        if ok:
            with self._lock:
                self.diplomatic_stances.setdefault(self.player_id, {})[target_id] = "rivalry"
        return ok

    def launch_attack(self, target_id: str, attack_strength: Optional[float] = None) -> Optional[BattleOutcome]:
        """Attack with the local military stat unless a strength is given."""
        if self.game_id is None:
            return None
        self.push_player_state()
        strength = self.game.state.resources.military if attack_strength is None else attack_strength
        try:
            outcome = lobby.launch_attack(
                self.store, self.game_id, self.player_id, target_id, strength, now=self.clock()
            )
        except StoreError as e:
            self._fail("launch attack", e)
            return None
        if outcome is not None:
            self._add_event(
                GameEvent(
                    type="attack",
                    from_user_id=self.player_id,
                    target_user_id=target_id,
                    data={"result": outcome.result, "plunder": dict(outcome.plunder)},
                    timestamp=self.clock(),
                )
            )
        return outcome


def _diff(remote: Any, baseline: Any, keys) -> Dict[str, float]:
    if not isinstance(remote, dict) or not isinstance(baseline, dict):
        return {}
    result: Dict[str, float] = {}
    for key in keys:
        a, b = remote.get(key), baseline.get(key)
        if isinstance(a, (int, float)) and isinstance(b, (int, float)) and a != b:
            result[key] = a - b
    return result
