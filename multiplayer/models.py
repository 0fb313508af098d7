from __future__ import annotations

"""Data models shared between clients of one multiplayer game."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nation.models import NATURAL_RESOURCE_KEYS

logger = logging.getLogger("nationsim.Multiplayer")
logger.addHandler(logging.NullHandler())

OFFER_PENDING = "pending"
OFFER_ACCEPTED = "accepted"
OFFER_REJECTED = "rejected"


def clean_amounts(data: Any) -> Dict[str, int]:
    """Keep natural-resource keys with positive integer amounts."""
    result: Dict[str, int] = {}
    if not isinstance(data, dict):
        return result
    for key, value in data.items():
        if key not in NATURAL_RESOURCE_KEYS:
            continue
        try:
            amount = int(value)
        except (ValueError, TypeError):
            logger.warning("Skipping invalid amount %s:%s", key, value)
            continue
        if amount > 0:
            result[key] = amount
    return result


@dataclass
class TradeOffer:
    """Offer of ``offered_resources`` in exchange for ``requested_resources``."""

    id: str
    from_user_id: str
    to_user_id: str
    offered_resources: Dict[str, int] = field(default_factory=dict)
    requested_resources: Dict[str, int] = field(default_factory=dict)
    status: str = OFFER_PENDING
    created_at: float = field(default_factory=time.time)
    responded_at: Optional[float] = None

    @property
    def is_pending(self) -> bool:
        return self.status == OFFER_PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "offered_resources": dict(self.offered_resources),
            "requested_resources": dict(self.requested_resources),
            "status": self.status,
            "created_at": self.created_at,
            "responded_at": self.responded_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TradeOffer"]:
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                id=str(data["id"]),
                from_user_id=str(data["from_user_id"]),
                to_user_id=str(data["to_user_id"]),
                offered_resources=clean_amounts(data.get("offered_resources")),
                requested_resources=clean_amounts(data.get("requested_resources")),
                status=str(data.get("status", OFFER_PENDING)),
                created_at=float(data.get("created_at", 0.0)),
                responded_at=data.get("responded_at"),
            )
        except (KeyError, ValueError, TypeError):
            logger.warning("Skipping malformed trade offer: %s", data)
            return None


@dataclass
class War:
    attacker_id: str
    defender_id: str
    started_at: float = field(default_factory=time.time)

    def involves(self, a: str, b: str) -> bool:
        return {self.attacker_id, self.defender_id} == {a, b}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["War"]:
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                attacker_id=str(data["attacker_id"]),
                defender_id=str(data["defender_id"]),
                started_at=float(data.get("started_at", 0.0)),
            )
        except (KeyError, ValueError, TypeError):
            logger.warning("Skipping malformed war entry: %s", data)
            return None


@dataclass
class GameEvent:
    """Something a player should hear about (trade offer, attack, disaster...)."""

    type: str
    from_user_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    target_user_id: Optional[str] = None
    id: str = field(default_factory=lambda: f"event_{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)
    read: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "from_user_id": self.from_user_id,
            "target_user_id": self.target_user_id,
            "data": dict(self.data),
            "timestamp": self.timestamp,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["GameEvent"]:
        if not isinstance(data, dict) or "type" not in data:
            return None
        return cls(
            type=str(data["type"]),
            from_user_id=str(data.get("from_user_id", "system")),
            data=data.get("data") if isinstance(data.get("data"), dict) else {},
            target_user_id=data.get("target_user_id"),
            id=str(data.get("id") or f"event_{uuid.uuid4().hex[:12]}"),
            timestamp=float(data.get("timestamp", 0.0)),
            read=bool(data.get("read", False)),
        )


@dataclass
class TurnInfo:
    current_player: str = ""
    turn_number: int = 1
    actions_taken: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_player": self.current_player,
            "turn_number": self.turn_number,
            "actions_taken": list(self.actions_taken),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TurnInfo":
        if not isinstance(data, dict):
            return cls()
        actions = data.get("actions_taken")
        try:
            turn_number = int(data.get("turn_number", 1))
        except (ValueError, TypeError):
            turn_number = 1
        return cls(
            current_player=str(data.get("current_player", "")),
            turn_number=turn_number,
            actions_taken=[str(a) for a in actions] if isinstance(actions, list) else [],
        )


@dataclass
class PlayerInfo:
    """Roster entry as seen by the local client."""

    user_id: str
    nation_name: str = ""
    leader_name: str = ""
    is_online: bool = False
    last_seen: float = 0.0
    military: float = 0.0
