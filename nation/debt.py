from __future__ import annotations

import logging
import math
from typing import Optional

from . import settings
from .models import DebtRecord, NationState

logger = logging.getLogger("nationsim.Debt")
logger.addHandler(logging.NullHandler())


def interest_rate_for(total_debt: float, current_rate: float) -> float:
    """Annual rate after the risk premium for large debts."""
    if total_debt > settings.RISK_PREMIUM_THRESHOLD:
        return min(
            settings.MAX_INTEREST_RATE,
            settings.BASE_INTEREST_RATE
            + (total_debt - settings.RISK_PREMIUM_THRESHOLD) * settings.RISK_PREMIUM_PER_UNIT,
        )
    return current_rate


def take_debt(state: NationState, amount: float, reason: str) -> Optional[NationState]:
    """Borrow ``amount`` and convert it into stats and stockpiles right away."""
    if amount <= 0:
        logger.debug("Rejected non-positive loan of %s", amount)
        return None

    new_state = state.copy()
    debt = new_state.national_debt
    debt.total_debt += amount
    debt.history.append(DebtRecord(month=state.month, year=state.year, amount=amount, reason=reason))
    debt.interest_rate = interest_rate_for(debt.total_debt, debt.interest_rate)

    res = new_state.resources
    res.economy = min(settings.RESOURCE_MAX, res.economy + amount * 0.1)
    res.stability = min(settings.RESOURCE_MAX, res.stability + amount * 0.05)

    share = amount / 4
    nat = new_state.natural_resources
    nat.food += math.floor(share)
    nat.wood += math.floor(share)
    nat.minerals += math.floor(share * 0.5)
    nat.water += math.floor(share)

    logger.info("Debt taken: %.0f for %s, total %.0f", amount, reason, debt.total_debt)
    return new_state


def accrue_interest(state: NationState) -> NationState:
    """Monthly compound interest, automatic repayment and crisis penalties."""
    debt = state.national_debt
    if debt.total_debt <= 0:
        return state

    new_state = state.copy()
    debt = new_state.national_debt
    res = new_state.resources

    interest = debt.total_debt * debt.interest_rate / 12
    debt.total_debt += interest
    debt.monthly_interest = interest

    payment = min(res.economy * 2, interest * 1.5)
    debt.total_debt = max(0.0, debt.total_debt - payment)
    res.economy = max(0.0, res.economy - payment / 2)

    if debt.total_debt > settings.DEBT_CRISIS_THRESHOLD:
        res.stability = max(0.0, res.stability - 5)
        new_state.population.mood = max(0, new_state.population.mood - 8)
        if debt.total_debt > settings.DEBT_COLLAPSE_THRESHOLD:
            res.economy = max(0.0, res.economy - 10)
            logger.warning("Debt crisis: national debt of %.0f is crippling the economy", debt.total_debt)
    return new_state
