from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from sportline.config import BacktestConfig
from sportline.data.odds import expected_value, kelly_fraction
from sportline.evaluation.backtest import select_pick

PREDICTION_COLS = [
    "game_id",
    "gameday",
    "home_team",
    "away_team",
    "market",
    "side",
    "raw_prob",
    "prob",
    "market_prob",
    "edge",
    "odds",
    "expected_value",
    "kelly_fraction",
    "underdog_tier",
    "meets_min_edge",
]


def predict_upcoming(
    frame: pd.DataFrame,
    run,
    config: Optional[BacktestConfig] = None,
) -> pd.DataFrame:
    """
    Score unsettled, eligible games with a TrainingRun.

    One row per game the model can price: the backed side, raw and
    calibrated probabilities, the vig-free market probability and edge,
    expected value per unit stake and a quarter-Kelly stake fraction.
    Underdog games outside `config.tiers` are left out when tiers are set.
    """
    config = config or BacktestConfig()
    games = frame[~frame["is_settled"].astype(bool) & frame["eligible"].astype(bool)]
    if games.empty:
        return pd.DataFrame(columns=PREDICTION_COLS)

    raw, calibrated = run.calibrated_proba(games)
    rows = []
    for row, p_raw, p_cal in zip(games.to_dict("records"), raw, calibrated):
        if np.isnan(p_cal):
            continue
        if run.market == "underdog" and config.tiers is not None and row.get("underdog_tier") not in config.tiers:
            continue
        pick = select_pick(run.market, row, float(p_cal))
        if pick is None:
            continue
        raw_side = float(p_raw) if pick.side in ("home", "over") or run.market == "underdog" else 1.0 - float(p_raw)
        edge = pick.edge
        rows.append({
            "game_id": row["game_id"],
            "gameday": row["gameday"],
            "home_team": row["home_team"],
            "away_team": row["away_team"],
            "market": run.market,
            "side": pick.side,
            "raw_prob": raw_side,
            "prob": pick.prob,
            "market_prob": pick.market_prob,
            "edge": edge,
            "odds": pick.odds,
            "expected_value": expected_value(pick.prob, pick.odds),
            "kelly_fraction": kelly_fraction(pick.prob, pick.odds),
            "underdog_tier": row.get("underdog_tier"),
            "meets_min_edge": edge is not None and edge >= config.min_edge,
        })

    return pd.DataFrame(rows, columns=PREDICTION_COLS)
