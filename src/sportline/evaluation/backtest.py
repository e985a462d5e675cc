"""
Backtest engine.

Replays settled games through a trained run, places one fixed-stake wager per
game on the model's side, settles it on the actual score and reports ROI,
calibration error, confidence buckets and spread/odds breakdowns. Pushes are
refunded and excluded from win rate and ROI.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import structlog

from sportline.config import BacktestConfig
from sportline.data.odds import american_to_decimal, is_valid_american, no_vig_prob, wager_profit
from sportline.evaluation.metrics import brier_score, calibration_bins, expected_calibration_error

logger = structlog.get_logger(__name__)

SPREAD_SIZE_BUCKETS: Tuple[Tuple[str, float, float], ...] = (
    ("0-3", 0.0, 3.0),
    ("3.5-7", 3.0, 7.0),
    ("7.5+", 7.0, math.inf),
)

# (label, low, high): low < odds <= high, American odds
ODDS_RANGES: Tuple[Tuple[str, float, float], ...] = (
    ("-200 or shorter", -math.inf, -200.0),
    ("-199 to -100", -200.0, -100.0),
    ("+100 to +149", -100.0, 149.0),
    ("+150 to +199", 149.0, 199.0),
    ("+200 to +249", 199.0, 249.0),
    ("+250 to +299", 249.0, 299.0),
    ("+300 and longer", 299.0, math.inf),
)

# side -> (odds column, label value that wins, market label column)
_SIDES = {
    "moneyline": {"home": ("home_moneyline", 1.0), "away": ("away_moneyline", 0.0)},
    "spread": {"home": ("home_spread_odds", 1.0), "away": ("away_spread_odds", 0.0)},
    "total": {"over": ("over_odds", 1.0), "under": ("under_odds", 0.0)},
}
_LABELS = {
    "moneyline": "home_win",
    "spread": "home_cover",
    "total": "total_over",
    "underdog": "underdog_win",
}


def spread_size_bucket(spread_line: float) -> Optional[str]:
    if spread_line is None or pd.isna(spread_line):
        return None
    size = abs(spread_line)
    for label, low, high in SPREAD_SIZE_BUCKETS:
        if (low == 0.0 and size <= high) or low < size <= high:
            return label
    return None


def odds_range(odds: float) -> Optional[str]:
    if odds is None or pd.isna(odds):
        return None
    for label, low, high in ODDS_RANGES:
        if low < odds <= high:
            return label
    return None


@dataclass(frozen=True)
class Pick:
    """The side the model backs in one game, priced."""

    side: str
    prob: float  # model probability that this side wins
    odds: float  # American
    market_prob: Optional[float]  # vig-free

    @property
    def edge(self) -> Optional[float]:
        return None if self.market_prob is None else self.prob - self.market_prob


def select_pick(market: str, row: dict, prob: float) -> Optional[Pick]:
    """
    Choose and price the wager for one game.

    `prob` is the model probability of the market's positive outcome (home
    win, home cover, over, underdog win). Returns None when the needed price
    is missing or invalid.
    """
    if prob is None or pd.isna(prob):
        return None

    if market == "underdog":
        side = row.get("underdog_side")
        odds = row.get("underdog_odds")
        if side is None or pd.isna(side) or not is_valid_american(odds):
            return None
        home_prob = no_vig_prob(row.get("home_moneyline"), row.get("away_moneyline"))
        market_prob = None if home_prob is None else (home_prob if side == "home" else 1.0 - home_prob)
        return Pick(side=str(side), prob=float(prob), odds=float(odds), market_prob=market_prob)

    sides = _SIDES[market]
    positive, negative = list(sides)
    side = positive if prob >= 0.5 else negative
    side_prob = prob if side == positive else 1.0 - prob

    odds = row.get(sides[side][0])
    other_odds = row.get(sides[negative if side == positive else positive][0])
    if not is_valid_american(odds):
        return None
    market_prob = no_vig_prob(odds, other_odds)
    return Pick(side=side, prob=float(side_prob), odds=float(odds), market_prob=market_prob)


def settle(market: str, row: dict, pick: Pick) -> str:
    """'win', 'loss' or 'push' for a pick on a settled game."""
    label = row.get(_LABELS[market])
    if label is None or pd.isna(label):
        return "push"
    if market == "underdog":
        return "win" if label == 1.0 else "loss"
    winning = _SIDES[market][pick.side][1]
    return "win" if label == winning else "loss"


@dataclass(frozen=True)
class Wager:
    game_id: str
    gameday: str
    side: str
    prob: float
    raw_prob: float
    market_prob: Optional[float]
    odds: float
    decimal_odds: float
    stake: float
    outcome: str
    profit: float
    spread_size: Optional[str] = None
    odds_range: Optional[str] = None
    tier: Optional[str] = None

    @property
    def won(self) -> bool:
        return self.outcome == "win"


@dataclass
class BucketStats:
    label: str
    bets: int
    wins: int
    win_rate: float
    avg_prediction: float
    profit: float
    roi: float


@dataclass
class Readiness:
    ready: bool
    failures: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class BacktestResult:
    sport: str
    market: str
    run_id: Optional[str]
    seasons: List[int]
    total_bets: int
    wins: int
    losses: int
    pushes: int
    win_rate: float
    total_staked: float
    profit: float
    roi: float
    ece: float
    brier: float
    avg_edge: Optional[float]
    calibration_applied: bool
    calibration_note: Optional[str]
    buckets: List[BucketStats] = field(default_factory=list)
    by_spread_size: List[BucketStats] = field(default_factory=list)
    by_odds_range: List[BucketStats] = field(default_factory=list)
    ece_bins: List[Dict[str, float]] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)
    readiness: Readiness = field(default_factory=lambda: Readiness(False))

    def to_dict(self) -> dict:
        return asdict(self)


def summarize(wagers: Sequence[Wager], label: str) -> BucketStats:
    """Stats over graded (non-push) wagers."""
    graded = [w for w in wagers if w.outcome != "push"]
    staked = sum(w.stake for w in graded)
    profit = sum(w.profit for w in graded)
    wins = sum(1 for w in graded if w.won)
    return BucketStats(
        label=label,
        bets=len(graded),
        wins=wins,
        win_rate=wins / len(graded) if graded else 0.0,
        avg_prediction=float(np.mean([w.prob for w in graded])) if graded else 0.0,
        profit=profit,
        roi=(profit / staked) * 100.0 if staked else 0.0,
    )


def confidence_buckets(wagers: Sequence[Wager], edges: Sequence[float]) -> List[BucketStats]:
    """Group wagers by model probability into [edge_i, edge_i+1) buckets (last closed)."""
    out = []
    for i in range(len(edges) - 1):
        low, high = edges[i], edges[i + 1]
        last = i == len(edges) - 2
        members = [w for w in wagers if low <= w.prob < high or (last and w.prob == high)]
        if members:
            out.append(summarize(members, f"{low:.0%}-{high:.0%}"))
    return out


def _grouped(wagers: Sequence[Wager], attr: str, order: Sequence[str]) -> List[BucketStats]:
    out = []
    for label in order:
        members = [w for w in wagers if getattr(w, attr) == label]
        if members:
            out.append(summarize(members, label))
    return out


def readiness(roi: float, ece: float, bets: int, config: BacktestConfig) -> Readiness:
    """All three thresholds must hold; each failing one is reported by name."""
    failures = []
    if roi < config.min_roi:
        failures.append({
            "code": "roi_below_minimum",
            "message": f"ROI {roi:.2f}% is below the minimum {config.min_roi:.2f}%",
        })
    if ece > config.max_ece:
        failures.append({
            "code": "ece_above_maximum",
            "message": f"ECE {ece:.2%} exceeds the maximum {config.max_ece:.2%}",
        })
    if bets < config.min_bets:
        failures.append({
            "code": "insufficient_sample",
            "message": f"{bets} settled wagers is below the minimum {config.min_bets}",
        })
    return Readiness(ready=not failures, failures=failures)


def _passes_filters(market: str, row: dict, pick: Pick, config: BacktestConfig) -> Optional[str]:
    """Name of the filter that rejects this pick, or None."""
    if config.min_edge > 0 and (pick.edge is None or pick.edge < config.min_edge):
        return "filtered_edge"
    if config.min_odds is not None and pick.odds < config.min_odds:
        return "filtered_odds"
    if config.max_odds is not None and pick.odds > config.max_odds:
        return "filtered_odds"
    if market == "underdog" and config.tiers is not None and row.get("underdog_tier") not in config.tiers:
        return "filtered_tier"
    return None


def simulate_wagers(
    market: str,
    frame: pd.DataFrame,
    probs: np.ndarray,
    raw_probs: Optional[np.ndarray] = None,
    config: Optional[BacktestConfig] = None,
) -> Tuple[List[Wager], Dict[str, int]]:
    """
    One wager per settled game with a prediction and a valid price.

    Returns the wagers and counts of games skipped per reason. A game that
    cannot be priced is skipped without stopping the batch.
    """
    config = config or BacktestConfig()
    raw_probs = probs if raw_probs is None else raw_probs
    skipped = {"no_prediction": 0, "no_odds": 0, "filtered_edge": 0, "filtered_odds": 0, "filtered_tier": 0}
    wagers: List[Wager] = []

    for row, prob, raw in zip(frame.to_dict("records"), probs, raw_probs):
        if not row.get("is_settled", True):
            continue
        if prob is None or np.isnan(prob):
            skipped["no_prediction"] += 1
            continue
        pick = select_pick(market, row, float(prob))
        if pick is None:
            skipped["no_odds"] += 1
            continue
        reason = _passes_filters(market, row, pick, config)
        if reason:
            skipped[reason] += 1
            continue

        outcome = settle(market, row, pick)
        profit = 0.0 if outcome == "push" else wager_profit(config.stake, pick.odds, outcome == "win")
        raw_side = float(raw) if pick.side in ("home", "over") or market == "underdog" else 1.0 - float(raw)
        wagers.append(Wager(
            game_id=str(row["game_id"]),
            gameday=str(pd.Timestamp(row["gameday"]).date()),
            side=pick.side,
            prob=pick.prob,
            raw_prob=raw_side,
            market_prob=pick.market_prob,
            odds=pick.odds,
            decimal_odds=american_to_decimal(pick.odds),
            stake=config.stake,
            outcome=outcome,
            profit=profit,
            spread_size=spread_size_bucket(row.get("spread_line")) if market == "spread" else None,
            odds_range=odds_range(pick.odds),
            tier=row.get("underdog_tier") if market == "underdog" else None,
        ))

    return wagers, skipped


def evaluate_wagers(
    wagers: Sequence[Wager],
    config: Optional[BacktestConfig] = None,
    **meta,
) -> BacktestResult:
    """Aggregate settled wagers into a BacktestResult."""
    config = config or BacktestConfig()
    graded = [w for w in wagers if w.outcome != "push"]
    overall = summarize(wagers, "all")
    probs = [w.prob for w in graded]
    outcomes = [1.0 if w.won else 0.0 for w in graded]
    ece = expected_calibration_error(probs, outcomes, config.ece_bins)
    edges = [w.prob - w.market_prob for w in graded if w.market_prob is not None]

    return BacktestResult(
        sport=meta.get("sport", ""),
        market=meta.get("market", ""),
        run_id=meta.get("run_id"),
        seasons=list(meta.get("seasons", [])),
        total_bets=overall.bets,
        wins=overall.wins,
        losses=overall.bets - overall.wins,
        pushes=len(wagers) - len(graded),
        win_rate=overall.win_rate,
        total_staked=sum(w.stake for w in graded),
        profit=overall.profit,
        roi=overall.roi,
        ece=ece,
        brier=brier_score(probs, outcomes),
        avg_edge=float(np.mean(edges)) if edges else None,
        calibration_applied=bool(meta.get("calibration_applied", False)),
        calibration_note=meta.get("calibration_note"),
        buckets=confidence_buckets(graded, config.bucket_edges),
        by_spread_size=_grouped(graded, "spread_size", [b[0] for b in SPREAD_SIZE_BUCKETS]),
        by_odds_range=_grouped(graded, "odds_range", [r[0] for r in ODDS_RANGES]),
        ece_bins=calibration_bins(probs, outcomes, config.ece_bins),
        skipped=dict(meta.get("skipped", {})),
        readiness=readiness(overall.roi, ece, overall.bets, config),
    )


def run_backtest(
    frame: pd.DataFrame,
    run,
    config: Optional[BacktestConfig] = None,
    calibrate: bool = True,
) -> BacktestResult:
    """
    Backtest a TrainingRun over a feature frame.

    Only settled, eligible rows are replayed. When the run carries no
    calibration curve (or calibrate=False) raw probabilities are used and the
    reason is reported on the result.
    """
    config = config or BacktestConfig()
    games = frame[frame["is_settled"].astype(bool) & frame["eligible"].astype(bool)]
    raw, calibrated = run.calibrated_proba(games)
    applied = calibrate and run.calibration is not None
    probs = calibrated if applied else raw

    if applied:
        note = None
    elif not calibrate:
        note = "calibration disabled for this backtest"
    else:
        note = run.calibration_skipped or "no calibration curve"

    wagers, skipped = simulate_wagers(run.market, games, probs, raw, config)
    result = evaluate_wagers(
        wagers,
        config,
        sport=run.sport,
        market=run.market,
        run_id=run.run_id,
        seasons=sorted(int(s) for s in games["season"].unique()),
        calibration_applied=applied,
        calibration_note=note,
        skipped=skipped,
    )
    logger.info(
        "backtest_complete",
        sport=run.sport,
        market=run.market,
        bets=result.total_bets,
        roi=round(result.roi, 2),
        ece=round(result.ece, 4),
        ready=result.readiness.ready,
        skipped=sum(skipped.values()),
    )
    return result
