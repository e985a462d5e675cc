from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd


SPLIT_NAMES: Tuple[str, ...] = ("train", "val", "test")


def check_disjoint_seasons(**groups: Optional[Iterable[int]]) -> Dict[str, List[int]]:
    """
    Sorted season lists per named group, rejecting any season used twice.

        check_disjoint_seasons(train=[2021, 2022], test=[2023])
    """
    owner: Dict[int, str] = {}
    resolved: Dict[str, List[int]] = {}
    for name, seasons in groups.items():
        resolved[name] = sorted({int(s) for s in seasons or ()})
        for season in resolved[name]:
            if season in owner:
                raise ValueError(
                    f"Season sets must not overlap: {season} is in both "
                    f"'{owner[season]}' and '{name}'"
                )
            owner[season] = name
    return resolved


def split_by_season(
    df: pd.DataFrame,
    train_seasons: Iterable[int],
    val_seasons: Optional[Iterable[int]] = None,
    test_seasons: Optional[Iterable[int]] = None,
) -> Tuple[pd.DataFrame, Optional[pd.DataFrame], Optional[pd.DataFrame]]:
    """
    Partition a frame into disjoint season groups for walk-forward evaluation
    (train on past seasons, backtest on a later one).

    Returns (train, val, test); a group with no seasons comes back as None.
    Raises ValueError when a season is listed in two groups, no train season
    is given, or the frame has no 'season' column.
    """
    if "season" not in df.columns:
        raise ValueError("DataFrame must contain a 'season' column for split_by_season.")

    groups = check_disjoint_seasons(train=train_seasons, val=val_seasons, test=test_seasons)
    if not groups["train"]:
        raise ValueError("split_by_season needs at least one train season")

    season = df["season"].astype(int)
    train, val, test = (
        df[season.isin(groups[name])].copy() if groups[name] else None
        for name in SPLIT_NAMES
    )
    return train, val, test


def temporal_split(
    df: pd.DataFrame,
    train_fraction: float = 0.7,
    date_col: str = "gameday",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Chronological train/validation split.

    Rows are sorted by `date_col` (ties broken by game_id when present) and
    the first `train_fraction` of them become the training set, so every
    training date is <= every validation date. Never shuffles.
    """
    if date_col not in df.columns:
        raise ValueError(f"DataFrame must contain '{date_col}' for temporal_split.")
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1); got {train_fraction}")

    sort_cols = [date_col] + (["game_id"] if "game_id" in df.columns else [])
    ordered = df.sort_values(sort_cols, kind="mergesort").reset_index(drop=True)
    cut = int(len(ordered) * train_fraction)
    return ordered.iloc[:cut].copy(), ordered.iloc[cut:].copy()
