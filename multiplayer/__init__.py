"""Multiplayer package: shared document store, lobby, conflict resolution and sync."""

from .store import (
    DocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
    StoreError,
    DocumentNotFoundError,
    Increment,
    ArrayUnion,
    DELETE_FIELD,
)
from .models import TradeOffer, War, GameEvent, TurnInfo, PlayerInfo
from .diplomacy import settle_trade, resolve_battle, TradeSettlement, BattleOutcome, Combatant
from .sync import MultiplayerSync

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    "StoreError",
    "DocumentNotFoundError",
    "Increment",
    "ArrayUnion",
    "DELETE_FIELD",
    "TradeOffer",
    "War",
    "GameEvent",
    "TurnInfo",
    "PlayerInfo",
    "settle_trade",
    "resolve_battle",
    "TradeSettlement",
    "BattleOutcome",
    "Combatant",
    "MultiplayerSync",
]
