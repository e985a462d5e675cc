from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
import structlog

from sportline.config import DATA_CONFIG

logger = structlog.get_logger(__name__)

REQUIRED_COLS: List[str] = [
    "game_id",
    "season",
    "gameday",
    "home_team",
    "away_team",
    "home_score",
    "away_score",
]

MARKET_COLS: List[str] = [
    "home_moneyline",
    "away_moneyline",
    "spread_line",
    "home_spread_odds",
    "away_spread_odds",
    "total_line",
    "over_odds",
    "under_odds",
]

# |margin + spread| below this is graded a push
PUSH_TOLERANCE = 0.5


@dataclass
class BaseDatasetConfig:
    """
    Configuration for building the base modeling dataset.

    This dataset is the canonical, chronologically indexed table that
    feature engineering, training and backtesting build on.

    Attributes:
        seasons: Seasons to keep. If None, all seasons in the input are kept.
        keep_unsettled: Keep games without final scores (needed for predict).
        save_parquet: If True, save the resulting dataset to data/processed/.
        filename: Optional custom filename for the saved dataset.
    """

    seasons: Optional[List[int]] = None
    keep_unsettled: bool = True
    save_parquet: bool = False
    filename: Optional[str] = None


def _validate_raw_games(df: pd.DataFrame) -> None:
    """Basic validation for a raw games DataFrame."""
    if df is None or len(df) == 0:
        raise ValueError("No games provided to build the base dataset.")

    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns in raw games data: {missing}")


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce dtypes and make sure every market column exists (NaN if absent)."""
    df = df.copy()

    if not pd.api.types.is_datetime64_any_dtype(df["gameday"]):
        try:
            df["gameday"] = pd.to_datetime(df["gameday"])
        except (ValueError, TypeError) as exc:
            raise TypeError(
                f"Column 'gameday' must be datetime-like; got dtype {df['gameday'].dtype}"
            ) from exc
    # Cutoffs compare calendar days; drop the time of day
    df["gameday"] = df["gameday"].dt.normalize()

    df["game_id"] = df["game_id"].astype(str)
    df["season"] = df["season"].astype(int)
    for col in ["home_score", "away_score", *MARKET_COLS]:
        if col not in df.columns:
            df[col] = np.nan
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)

    return df


def add_outcome_targets(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add settlement flags and outcome labels.

    Adds:
    - is_settled: both final scores present
    - margin: home_score - away_score
    - total_points: home_score + away_score
    - home_win: 1/0, NaN for ties and unsettled games
    - home_cover: 1/0 against spread_line, NaN for pushes or missing line
    - total_over: 1/0 against total_line, NaN for pushes or missing line

    Labels are floats so that NaN marks "no outcome" for a market.
    """
    df = df.copy()
    settled = df["home_score"].notna() & df["away_score"].notna()
    df["is_settled"] = settled

    margin = df["home_score"] - df["away_score"]
    total = df["home_score"] + df["away_score"]
    df["margin"] = margin
    df["total_points"] = total

    df["home_win"] = np.where(margin > 0, 1.0, np.where(margin < 0, 0.0, np.nan))
    df.loc[~settled, "home_win"] = np.nan

    cover_margin = margin + df["spread_line"]
    df["home_cover"] = np.where(
        cover_margin.abs() < PUSH_TOLERANCE,
        np.nan,
        np.where(cover_margin > 0, 1.0, 0.0),
    )
    df.loc[~settled | df["spread_line"].isna(), "home_cover"] = np.nan

    df["total_over"] = np.where(
        total > df["total_line"], 1.0, np.where(total < df["total_line"], 0.0, np.nan)
    )
    df.loc[~settled | df["total_line"].isna(), "total_over"] = np.nan

    return df


def build_base_dataset(
    games: pd.DataFrame,
    config: Optional[BaseDatasetConfig] = None,
) -> pd.DataFrame:
    """
    Build the base modeling dataset from already-materialized game records.

    Steps:
        1. Validate structure (columns).
        2. Normalize dtypes, add missing market columns as NaN.
        3. Optionally filter to the configured seasons.
        4. Optionally drop unsettled games.
        5. Reject duplicate game_ids.
        6. Add settlement flags and outcome labels.
        7. Sort chronologically by gameday/season/game_id.
        8. Assign game_index = 0..N-1 in time order.
        9. Optionally save to data/processed.

    Returns:
        A pandas DataFrame with one row per game, containing identifiers,
        teams, scores, market columns, outcome labels, is_settled and
        game_index.
    """
    if config is None:
        config = BaseDatasetConfig()

    _validate_raw_games(games)
    df = _normalize_columns(games)

    if config.seasons is not None:
        df = df[df["season"].isin(config.seasons)].copy()
        if df.empty:
            raise ValueError(f"No games found for seasons {config.seasons}")

    if not config.keep_unsettled:
        df = df[df["home_score"].notna() & df["away_score"].notna()].copy()
        if df.empty:
            raise ValueError("No completed games found in input.")

    duplicates = df[df.duplicated(subset=["game_id"], keep=False)]
    if not duplicates.empty:
        raise ValueError(
            f"Found {len(duplicates)} duplicate game_ids in base dataset. "
            "Check data source for errors."
        )

    df = add_outcome_targets(df)

    df = df.sort_values(["gameday", "season", "game_id"]).reset_index(drop=True)
    df["game_index"] = df.index  # 0..N-1 in time order

    logger.debug(
        "base_dataset_built",
        games=len(df),
        settled=int(df["is_settled"].sum()),
        seasons=sorted(df["season"].unique().tolist()),
    )

    if config.save_parquet:
        DATA_CONFIG.processed_data_dir.mkdir(parents=True, exist_ok=True)
        seasons = sorted(df["season"].unique())
        filename = config.filename or f"base_games_{seasons[0]}_{seasons[-1]}.parquet"
        df.to_parquet(DATA_CONFIG.processed_data_dir / filename, index=False)

    return df


def load_base_dataset(
    path: Path,
    seasons: Optional[Iterable[int]] = None,
) -> pd.DataFrame:
    """
    Load raw games from parquet and build the base dataset from them.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required columns are missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Games file not found: {path}\n"
            "Ingest games for this sport before training."
        )

    raw = pd.read_parquet(path)
    season_list = sorted(int(s) for s in seasons) if seasons is not None else None
    return build_base_dataset(raw, BaseDatasetConfig(seasons=season_list))
