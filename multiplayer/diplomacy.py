from __future__ import annotations

"""Trade settlement and battle resolution between two nations.

Both functions are pure: they compute per-player deltas which the lobby
writes to the shared store as increments on each player's slice.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping

from nation.models import NATURAL_RESOURCE_KEYS

from . import settings
from .models import TradeOffer

WIN = "win"
LOSS = "loss"
DRAW = "draw"


@dataclass
class NationDelta:
    """Changes to one player's slice, applied as independent increments."""

    natural_resources: Dict[str, int] = field(default_factory=dict)
    resources: Dict[str, float] = field(default_factory=dict)
    population: Dict[str, int] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.natural_resources or self.resources or self.population)


@dataclass
class TradeSettlement:
    sender: NationDelta
    receiver: NationDelta


@dataclass
class Combatant:
    """The parts of a nation a battle looks at."""

    military: float = 0.0
    soldiers: int = 0
    natural_resources: Mapping[str, int] = field(default_factory=dict)


@dataclass
class BattleOutcome:
    result: str
    attacker: NationDelta
    defender: NationDelta
    plunder: Dict[str, int] = field(default_factory=dict)
    attacker_casualties: int = 0
    defender_casualties: int = 0


def settle_trade(offer: TradeOffer) -> TradeSettlement:
    """
    Deltas for accepting ``offer``: offered resources flow sender to
    receiver, requested resources flow receiver to sender.

    Nothing is held in escrow between offer and acceptance, so the sender
    may already have spent what it offered. Stockpiles are floored at zero
    when the deltas are applied; a version check on the slices would be
    the place to close that gap.
    """
    sender: Dict[str, int] = {}
    receiver: Dict[str, int] = {}
    for key, amount in offer.offered_resources.items():
        sender[key] = sender.get(key, 0) - amount
        receiver[key] = receiver.get(key, 0) + amount
    for key, amount in offer.requested_resources.items():
        sender[key] = sender.get(key, 0) + amount
        receiver[key] = receiver.get(key, 0) - amount
    return TradeSettlement(
        sender=NationDelta(natural_resources={k: v for k, v in sender.items() if v}),
        receiver=NationDelta(natural_resources={k: v for k, v in receiver.items() if v}),
    )


def battle_result(attack_strength: float, defender_military: float) -> str:
    if attack_strength > defender_military * settings.BATTLE_WIN_RATIO:
        return WIN
    if attack_strength < defender_military * settings.BATTLE_LOSS_RATIO:
        return LOSS
    return DRAW


def resolve_battle(attack_strength: float, attacker: Combatant, defender: Combatant) -> BattleOutcome:
    """Threshold comparison of ``attack_strength`` against the defender's military."""
    result = battle_result(attack_strength, defender.military)
    swing = settings.BATTLE_STABILITY_SWING

    if result == WIN:
        plunder = {}
        for key in NATURAL_RESOURCE_KEYS:
            if key == "land":
                continue
            amount = math.floor(defender.natural_resources.get(key, 0) * settings.BATTLE_PLUNDER_RATE)
            if amount > 0:
                plunder[key] = amount
        attacker_losses = math.floor(attacker.soldiers * settings.BATTLE_LIGHT_LOSS_RATE)
        defender_losses = math.floor(defender.soldiers * settings.BATTLE_HEAVY_LOSS_RATE)
        return BattleOutcome(
            result=result,
            attacker=NationDelta(
                natural_resources=dict(plunder),
                resources={"stability": swing},
                population={"soldiers": -attacker_losses} if attacker_losses else {},
            ),
            defender=NationDelta(
                natural_resources={k: -v for k, v in plunder.items()},
                resources={"stability": -swing},
                population={"soldiers": -defender_losses} if defender_losses else {},
            ),
            plunder=plunder,
            attacker_casualties=attacker_losses,
            defender_casualties=defender_losses,
        )

    if result == LOSS:
        attacker_losses = math.floor(attacker.soldiers * settings.BATTLE_HEAVY_LOSS_RATE)
        defender_losses = math.floor(defender.soldiers * settings.BATTLE_LIGHT_LOSS_RATE)
        return BattleOutcome(
            result=result,
            attacker=NationDelta(
                resources={"stability": -swing},
                population={"soldiers": -attacker_losses} if attacker_losses else {},
            ),
            defender=NationDelta(
                resources={"stability": swing},
                population={"soldiers": -defender_losses} if defender_losses else {},
            ),
            attacker_casualties=attacker_losses,
            defender_casualties=defender_losses,
        )

    attacker_losses = math.floor(attacker.soldiers * settings.BATTLE_DRAW_LOSS_RATE)
    defender_losses = math.floor(defender.soldiers * settings.BATTLE_DRAW_LOSS_RATE)
    return BattleOutcome(
        result=result,
        attacker=NationDelta(population={"soldiers": -attacker_losses} if attacker_losses else {}),
        defender=NationDelta(population={"soldiers": -defender_losses} if defender_losses else {}),
        attacker_casualties=attacker_losses,
        defender_casualties=defender_losses,
    )
