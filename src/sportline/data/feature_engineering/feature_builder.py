from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
import structlog

from sportline.config import FeatureConfig, feature_config_for
from sportline.data.feature_engineering.feature_spec import (
    FeatureSpec,
    MatchupContext,
    all_feature_names,
    market_specs,
)
from sportline.data.feature_engineering.history import HistoryIndex
from sportline.data.feature_engineering.market import MarketContext
from sportline.data.preprocessing.base_dataset import MARKET_COLS, build_base_dataset

logger = structlog.get_logger(__name__)

META_COLS: List[str] = [
    "game_id",
    "season",
    "gameday",
    "home_team",
    "away_team",
    "is_settled",
    "home_history_games",
    "away_history_games",
    "eligible",
]

LABEL_COLS: List[str] = [
    "home_win",
    "home_cover",
    "total_over",
    "total_points",
    "underdog_win",
]

UNDERDOG_COLS: List[str] = ["underdog_side", "underdog_tier", "underdog_odds"]


@dataclass
class FeatureBuilderConfig:
    """
    Configuration for the feature builder.

    Attributes
    ----------
    sport:
        Sport key; selects history thresholds (see SPORT_FEATURE_DEFAULTS).
    feature_config:
        Overrides the sport defaults when given.
    season_scoped:
        If True, team histories reset at each season boundary.
    settled_only:
        If True, drop unsettled games from the output (training/backtest).
    """

    sport: str = "nfl"
    feature_config: Optional[FeatureConfig] = None
    season_scoped: bool = True
    settled_only: bool = False

    def resolved_feature_config(self) -> FeatureConfig:
        return self.feature_config or feature_config_for(self.sport)


class FeatureBuilder:
    """
    Build the game-level feature frame from a base dataset.

    Typical usage
    -------------
        builder = FeatureBuilder(FeatureBuilderConfig(sport="nba"))
        frame = builder.build_features(base_games)
        base_spec, market_spec = builder.specs("moneyline")
        X = base_spec.matrix(frame[frame["eligible"]])

    One row per game, containing:
        - identifiers and per-side prior-game counts, `eligible` flag
        - market prices carried through for pricing wagers
        - underdog side/tier/odds from the moneyline
        - labels (NaN where a market has no outcome: ties, pushes, no line)
        - every feature column used by any market spec

    Every feature for a game is computed from settled games dated strictly
    before that game's date.
    """

    def __init__(self, config: Optional[FeatureBuilderConfig] = None):
        self.config = config or FeatureBuilderConfig()
        self.feature_config = self.config.resolved_feature_config()

    def specs(self, market: str) -> tuple[FeatureSpec, FeatureSpec]:
        return market_specs(market, self.feature_config)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def build_features(self, games: pd.DataFrame) -> pd.DataFrame:
        if "is_settled" not in games.columns:
            games = build_base_dataset(games)

        index = HistoryIndex(games, season_scoped=self.config.season_scoped)
        all_cols = all_feature_names(self.feature_config)
        union_spec = self._union_spec(all_cols)

        rows = []
        for game in games.to_dict("records"):
            rows.append(self._build_row(game, index, union_spec))

        # spread_line and total_line are both raw prices and features; the
        # feature value (NaN when the market is malformed) wins
        leading = META_COLS + MARKET_COLS + UNDERDOG_COLS + LABEL_COLS
        columns = leading + [c for c in all_cols if c not in leading]
        frame = pd.DataFrame(rows, columns=columns)
        if self.config.settled_only:
            frame = frame[frame["is_settled"]].reset_index(drop=True)

        logger.info(
            "features_built",
            sport=self.config.sport,
            games=len(frame),
            eligible=int(frame["eligible"].sum()),
            features=len(all_cols),
        )
        return frame

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _union_spec(self, names: List[str]) -> FeatureSpec:
        by_name = {}
        for market in ("moneyline", "spread", "total", "underdog"):
            for spec in self.specs(market):
                for col in spec.columns:
                    by_name.setdefault(col.name, col)
        return FeatureSpec("all", tuple(by_name[n] for n in names))

    def _build_row(self, game: dict, index: HistoryIndex, spec: FeatureSpec) -> dict:
        market = MarketContext.from_row(game)
        ctx = MatchupContext(game, index, market, self.feature_config)

        home_n = ctx.history_count("home")
        away_n = ctx.history_count("away")
        min_games = self.feature_config.min_history_games

        row = {
            "game_id": game["game_id"],
            "season": game["season"],
            "gameday": game["gameday"],
            "home_team": game["home_team"],
            "away_team": game["away_team"],
            "is_settled": bool(game["is_settled"]),
            "home_history_games": home_n,
            "away_history_games": away_n,
            "eligible": home_n >= min_games and away_n >= min_games,
        }
        for col in MARKET_COLS:
            row[col] = game.get(col, np.nan)

        side = market.underdog_side
        row["underdog_side"] = side
        row["underdog_tier"] = market.underdog_tier
        row["underdog_odds"] = market.underdog_odds if side else np.nan

        for col in ["home_win", "home_cover", "total_over", "total_points"]:
            row[col] = game.get(col, np.nan)
        home_win = row["home_win"]
        if side is None or pd.isna(home_win):
            row["underdog_win"] = np.nan
        else:
            row["underdog_win"] = home_win if side == "home" else 1.0 - home_win

        row.update(spec.extract(ctx))
        return row
