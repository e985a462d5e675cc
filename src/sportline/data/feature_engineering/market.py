"""
Market pricing context for a single game.

Odds are parsed per market. A market whose record is partially present
(for example a spread line without both prices) is malformed: it is logged
and treated as absent for that game only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

import pandas as pd
import structlog

from sportline.data.odds import is_valid_american, no_vig_prob
from sportline.exceptions import MalformedOddsError

logger = structlog.get_logger(__name__)

UNDERDOG_TIERS: Tuple[str, ...] = ("moderate", "heavy", "extreme")

_MARKET_FIELDS = {
    "moneyline": ("home_moneyline", "away_moneyline"),
    "spread": ("spread_line", "home_spread_odds", "away_spread_odds"),
    "total": ("total_line", "over_odds", "under_odds"),
}
_PRICE_FIELDS = {
    "home_moneyline", "away_moneyline", "home_spread_odds",
    "away_spread_odds", "over_odds", "under_odds",
}


def classify_underdog_tier(win_prob: Optional[float]) -> Optional[str]:
    """
    Bucket a side's vig-free win probability into an underdog tier.

    >= 0.50 is not an underdog (None), [0.33, 0.50) moderate,
    [0.25, 0.33) heavy, below 0.25 extreme.
    """
    if win_prob is None or pd.isna(win_prob) or win_prob >= 0.5:
        return None
    if win_prob >= 0.33:
        return "moderate"
    if win_prob >= 0.25:
        return "heavy"
    return "extreme"


def parse_market(market: str, row: Mapping, game_id: Optional[str] = None) -> Optional[dict]:
    """
    Extract the fields of one market from a game row.

    Returns None when the market is entirely absent and a dict of floats when
    complete. Raises MalformedOddsError when only some fields are present or
    a price is not a valid American price.
    """
    fields = _MARKET_FIELDS[market]
    values = {f: row.get(f) for f in fields}
    present = [f for f, v in values.items() if v is not None and not pd.isna(v)]
    if not present:
        return None

    missing = [f for f in fields if f not in present]
    invalid = [f for f in present if f in _PRICE_FIELDS and not is_valid_american(values[f])]
    if missing or invalid:
        raise MalformedOddsError(market, game_id, missing + invalid)
    return {f: float(v) for f, v in values.items()}


@dataclass(frozen=True)
class MarketContext:
    """
    Parsed market prices for one game, home perspective.

    Probabilities are vig-free. Any market may be None when absent or
    malformed.
    """

    moneyline: Optional[dict] = None
    spread: Optional[dict] = None
    total: Optional[dict] = None

    @classmethod
    def from_row(cls, row: Mapping, markets: Sequence[str] = ("moneyline", "spread", "total")) -> "MarketContext":
        game_id = row.get("game_id")
        parsed = {}
        for market in markets:
            try:
                parsed[market] = parse_market(market, row, game_id)
            except MalformedOddsError as exc:
                logger.warning(
                    "malformed_odds_skipped",
                    game_id=game_id,
                    market=market,
                    missing=exc.missing,
                )
                parsed[market] = None
        return cls(**parsed)

    @property
    def home_win_prob(self) -> Optional[float]:
        if self.moneyline is None:
            return None
        return no_vig_prob(self.moneyline["home_moneyline"], self.moneyline["away_moneyline"])

    @property
    def spread_line(self) -> Optional[float]:
        return None if self.spread is None else self.spread["spread_line"]

    @property
    def home_cover_prob(self) -> Optional[float]:
        if self.spread is None:
            return None
        return no_vig_prob(self.spread["home_spread_odds"], self.spread["away_spread_odds"])

    @property
    def total_line(self) -> Optional[float]:
        return None if self.total is None else self.total["total_line"]

    @property
    def over_prob(self) -> Optional[float]:
        if self.total is None:
            return None
        return no_vig_prob(self.total["over_odds"], self.total["under_odds"])

    @property
    def underdog_side(self) -> Optional[str]:
        """'home' or 'away' for the moneyline underdog; None for a pick'em or no line."""
        prob = self.home_win_prob
        if prob is None or prob == 0.5:
            return None
        return "home" if prob < 0.5 else "away"

    @property
    def underdog_prob(self) -> Optional[float]:
        side = self.underdog_side
        if side is None:
            return None
        prob = self.home_win_prob
        return prob if side == "home" else 1.0 - prob

    @property
    def underdog_odds(self) -> Optional[float]:
        side = self.underdog_side
        if side is None:
            return None
        return self.moneyline[f"{side}_moneyline"]

    @property
    def underdog_tier(self) -> Optional[str]:
        return classify_underdog_tier(self.underdog_prob)
