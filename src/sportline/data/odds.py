from __future__ import annotations

import math
from typing import Tuple

import pandas as pd


def is_valid_american(odds: float | int | None) -> bool:
    """American odds are valid when finite and at least 100 in magnitude."""
    if odds is None or pd.isna(odds):
        return False
    odds = float(odds)
    return math.isfinite(odds) and abs(odds) >= 100.0


def american_to_prob(odds: float | int | None) -> float | None:
    """
    Convert American odds to implied probability (including vig).

    Returns None for NaN / missing / invalid odds.
    """
    if not is_valid_american(odds):
        return None
    odds = float(odds)
    if odds < 0:
        return -odds / (-odds + 100.0)
    return 100.0 / (odds + 100.0)


def american_to_decimal(odds: float | int) -> float:
    """
    Convert American odds to decimal odds.

    +150 -> 2.5, -200 -> 1.5. Raises ValueError on missing or invalid odds.
    """
    if not is_valid_american(odds):
        raise ValueError(f"Invalid American odds: {odds!r}")
    odds = float(odds)
    if odds > 0:
        return odds / 100.0 + 1.0
    return 100.0 / abs(odds) + 1.0


def decimal_to_american(decimal_odds: float) -> float:
    if decimal_odds <= 1.0:
        raise ValueError(f"Decimal odds must exceed 1.0; got {decimal_odds}")
    if decimal_odds >= 2.0:
        return (decimal_odds - 1.0) * 100.0
    return -100.0 / (decimal_odds - 1.0)


def remove_vig(prob_a: float, prob_b: float) -> Tuple[float, float]:
    """
    Normalize a two-way pair of implied probabilities so they sum to 1.

    Raises ValueError when the pair does not sum to a positive number.
    """
    total = prob_a + prob_b
    if not total > 0:
        raise ValueError(f"Cannot remove vig from pair ({prob_a}, {prob_b})")
    return prob_a / total, prob_b / total


def no_vig_prob(odds_a: float | int | None, odds_b: float | int | None) -> float | None:
    """Vig-free probability of side A from a two-way American odds pair."""
    prob_a = american_to_prob(odds_a)
    prob_b = american_to_prob(odds_b)
    if prob_a is None or prob_b is None:
        return None
    return remove_vig(prob_a, prob_b)[0]


def wager_profit(stake: float, odds: float | int, won: bool) -> float:
    """Net profit of a settled wager: stake*decimal - stake on a win, -stake on a loss."""
    if not won:
        return -stake
    return stake * american_to_decimal(odds) - stake


def expected_value(prob: float, odds: float | int) -> float:
    """Expected profit per unit stake for a wager won with probability `prob`."""
    payout = american_to_decimal(odds) - 1.0
    return prob * payout - (1.0 - prob)


def kelly_fraction(
    prob: float,
    odds: float | int,
    multiplier: float = 0.25,
    cap: float = 0.10,
) -> float:
    """
    Fractional Kelly stake as a share of bankroll.

    Full Kelly is (b*p - q) / b with b = decimal - 1. Negative edges stake 0;
    the result is scaled by `multiplier` and capped at `cap`.
    """
    b = american_to_decimal(odds) - 1.0
    full = (b * prob - (1.0 - prob)) / b
    if full <= 0:
        return 0.0
    return min(full * multiplier, cap)
