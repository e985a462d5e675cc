"""
Entry points for the command surface: train, backtest, predict, plus
walk-forward evaluation and the recency half-life sweep built on it.

Each takes a sport, seasons and markets, reads games through a
HistoricalStore and runs through a LocalArtifactStore, and returns structured
results; rendering is left to the caller.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
import structlog

from sportline.config import (
    HALF_LIFE_CANDIDATES,
    SUPPORTED_MARKETS,
    BacktestConfig,
    CalibrationConfig,
    FeatureConfig,
    backtest_config_for,
    feature_config_for,
)
from sportline.data.feature_engineering.feature_builder import (
    FeatureBuilder,
    FeatureBuilderConfig,
)
from sportline.data.store import HistoricalStore, ParquetHistoricalStore
from sportline.evaluation.backtest import BacktestResult, run_backtest
from sportline.evaluation.splits import check_disjoint_seasons, split_by_season
from sportline.exceptions import InsufficientDataError
from sportline.models.artifact_store import LocalArtifactStore, utc_now
from sportline.models.training import TrainingRun, train_market
from sportline.serving.predict import PREDICTION_COLS, predict_upcoming

logger = structlog.get_logger(__name__)

SWEEP_COLS = ["half_life_days", "bets", "roi", "ece", "brier", "ready"]


def _markets(markets: Optional[Sequence[str]]) -> List[str]:
    chosen = list(markets or SUPPORTED_MARKETS)
    unknown = [m for m in chosen if m not in SUPPORTED_MARKETS]
    if unknown:
        raise ValueError(f"Unsupported markets {unknown}. Supported: {SUPPORTED_MARKETS}")
    return chosen


def build_frame(
    store: HistoricalStore,
    sport: str,
    seasons: Iterable[int],
    feature_config: Optional[FeatureConfig] = None,
) -> pd.DataFrame:
    games = store.load_games(sport, seasons)
    builder = FeatureBuilder(FeatureBuilderConfig(sport=sport, feature_config=feature_config))
    return builder.build_features(games)


def _load_run(artifacts: LocalArtifactStore, sport: str, market: str, run_id: Optional[str]) -> TrainingRun:
    if run_id is None:
        payload = artifacts.latest_run(sport, market)
    else:
        payload = artifacts.load_run(sport, market, run_id)
    return TrainingRun.from_dict(payload)


def _frames_for_runs(
    store: HistoricalStore,
    sport: str,
    seasons: Iterable[int],
    runs: Dict[str, TrainingRun],
) -> Dict[str, pd.DataFrame]:
    """Feature frame per market, built once per distinct feature config."""
    seasons = list(seasons)
    by_config: Dict[FeatureConfig, pd.DataFrame] = {}
    frames = {}
    for market, run in runs.items():
        cfg = run.feature_config_obj()
        if cfg not in by_config:
            by_config[cfg] = build_frame(store, sport, seasons, cfg)
        frames[market] = by_config[cfg]
    return frames


def _market_config(
    market: str,
    config: Optional[BacktestConfig],
    tiers: Optional[Sequence[str]],
) -> BacktestConfig:
    """Backtest settings for a market; tier filters only bind the underdog market."""
    cfg = config or backtest_config_for(market)
    if market == "underdog" and tiers:
        cfg = replace(cfg, tiers=tuple(tiers))
    return cfg


def train(
    sport: str,
    seasons: Iterable[int],
    markets: Optional[Sequence[str]] = None,
    calibration: str = "isotonic",
    store: Optional[HistoricalStore] = None,
    artifacts: Optional[LocalArtifactStore] = None,
    feature_config: Optional[FeatureConfig] = None,
    tiers: Optional[Sequence[str]] = None,
    half_life_days: Optional[float] = None,
) -> Dict[str, TrainingRun]:
    """
    Train and persist one run per market.

    A market without enough data is skipped with a warning; the others still
    train. `tiers` restricts the underdog market's training games and is
    recorded on its run. Returns the saved runs keyed by market.
    """
    store = store or ParquetHistoricalStore()
    artifacts = artifacts or LocalArtifactStore()
    feature_config = feature_config or feature_config_for(sport)
    calibration_config = CalibrationConfig(method=calibration)
    chosen = _markets(markets)

    frame = build_frame(store, sport, seasons, feature_config)
    runs: Dict[str, TrainingRun] = {}
    for market in chosen:
        try:
            run = train_market(
                frame,
                sport,
                market,
                feature_config=feature_config,
                calibration_config=calibration_config,
                tiers=tiers if market == "underdog" else None,
                half_life_days=half_life_days,
            )
        except InsufficientDataError as exc:
            logger.warning(
                "market_skipped",
                sport=sport,
                market=market,
                stage=exc.stage,
                required=exc.required,
                available=exc.available,
            )
            continue

        run.created_at = utc_now().isoformat()
        run.run_id = artifacts.save_run(sport, market, run.to_dict())
        runs[market] = run
    return runs


def backtest(
    sport: str,
    seasons: Iterable[int],
    markets: Optional[Sequence[str]] = None,
    run_id: Optional[str] = None,
    calibrate: bool = True,
    config: Optional[BacktestConfig] = None,
    store: Optional[HistoricalStore] = None,
    artifacts: Optional[LocalArtifactStore] = None,
    save: bool = True,
    tiers: Optional[Sequence[str]] = None,
) -> Dict[str, BacktestResult]:
    """
    Backtest the latest run of each market over `seasons`. A `run_id`
    selects a specific run and is meant for single-market calls.

    Underdog wagers are limited to `tiers`, or to the tiers the run was
    trained on when none are given.

    Raises MissingArtifactError when a market has no trained run.
    """
    store = store or ParquetHistoricalStore()
    artifacts = artifacts or LocalArtifactStore()
    chosen = _markets(markets)

    runs = {m: _load_run(artifacts, sport, m, run_id) for m in chosen}
    frames = _frames_for_runs(store, sport, seasons, runs)

    results: Dict[str, BacktestResult] = {}
    for market, run in runs.items():
        cfg = _market_config(market, config, tiers or run.tiers)
        result = run_backtest(frames[market], run, cfg, calibrate)
        if save and run.run_id:
            artifacts.save_backtest(sport, market, run.run_id, result.to_dict())
        results[market] = result
    return results


def predict(
    sport: str,
    seasons: Iterable[int],
    markets: Optional[Sequence[str]] = None,
    run_id: Optional[str] = None,
    config: Optional[BacktestConfig] = None,
    store: Optional[HistoricalStore] = None,
    artifacts: Optional[LocalArtifactStore] = None,
    tiers: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Predictions for every unsettled game in `seasons`, one row per market pick.

    Raises MissingArtifactError when a market has no trained run.
    """
    store = store or ParquetHistoricalStore()
    artifacts = artifacts or LocalArtifactStore()
    chosen = _markets(markets)

    runs = {m: _load_run(artifacts, sport, m, run_id) for m in chosen}
    frames = _frames_for_runs(store, sport, seasons, runs)

    parts = [
        predict_upcoming(frames[market], run, _market_config(market, config, tiers or run.tiers))
        for market, run in runs.items()
    ]
    parts = [p for p in parts if not p.empty]
    if not parts:
        return pd.DataFrame(columns=PREDICTION_COLS)
    return pd.concat(parts, ignore_index=True)


def _held_out_frames(
    store: HistoricalStore,
    sport: str,
    train_seasons: Sequence[int],
    test_seasons: Sequence[int],
    feature_config: FeatureConfig,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    groups = check_disjoint_seasons(train=train_seasons, test=test_seasons)
    if not groups["train"] or not groups["test"]:
        raise ValueError("walk-forward evaluation needs train and test seasons")

    seasons = sorted(groups["train"] + groups["test"])
    frame = build_frame(store, sport, seasons, feature_config)
    train_df, _, test_df = split_by_season(frame, train_seasons, test_seasons=test_seasons)
    return train_df, test_df


def walk_forward(
    sport: str,
    train_seasons: Sequence[int],
    test_seasons: Sequence[int],
    market: str = "moneyline",
    calibration: str = "isotonic",
    config: Optional[BacktestConfig] = None,
    store: Optional[HistoricalStore] = None,
    feature_config: Optional[FeatureConfig] = None,
    tiers: Optional[Sequence[str]] = None,
    half_life_days: Optional[float] = None,
) -> BacktestResult:
    """
    Train on `train_seasons` and backtest on the disjoint `test_seasons`.

    Nothing is persisted. Overlapping season lists raise ValueError;
    InsufficientDataError propagates when the training seasons are too thin.
    """
    store = store or ParquetHistoricalStore()
    feature_config = feature_config or feature_config_for(sport)
    market = _markets([market])[0]
    train_df, test_df = _held_out_frames(store, sport, train_seasons, test_seasons, feature_config)

    run = train_market(
        train_df,
        sport,
        market,
        feature_config=feature_config,
        calibration_config=CalibrationConfig(method=calibration),
        tiers=tiers,
        half_life_days=half_life_days,
    )
    return run_backtest(test_df, run, _market_config(market, config, tiers))


def sweep_half_life(
    sport: str,
    train_seasons: Sequence[int],
    test_seasons: Sequence[int],
    market: str = "moneyline",
    half_lives: Sequence[float] = HALF_LIFE_CANDIDATES,
    calibration: str = "isotonic",
    config: Optional[BacktestConfig] = None,
    store: Optional[HistoricalStore] = None,
    feature_config: Optional[FeatureConfig] = None,
) -> pd.DataFrame:
    """
    Walk-forward backtest of one market per recency half-life.

    Returns one row per half-life, in the order given, with wager count,
    ROI, ECE, Brier score and the readiness verdict.
    """
    store = store or ParquetHistoricalStore()
    feature_config = feature_config or feature_config_for(sport)
    market = _markets([market])[0]
    train_df, test_df = _held_out_frames(store, sport, train_seasons, test_seasons, feature_config)
    cfg = _market_config(market, config, None)

    rows = []
    for half_life in half_lives:
        run = train_market(
            train_df,
            sport,
            market,
            feature_config=feature_config,
            calibration_config=CalibrationConfig(method=calibration),
            half_life_days=half_life,
        )
        result = run_backtest(test_df, run, cfg)
        rows.append({
            "half_life_days": float(half_life),
            "bets": result.total_bets,
            "roi": result.roi,
            "ece": result.ece,
            "brier": result.brier,
            "ready": result.readiness.ready,
        })
        logger.info(
            "half_life_evaluated",
            sport=sport,
            market=market,
            half_life_days=half_life,
            roi=round(result.roi, 2),
            ece=round(result.ece, 4),
        )
    return pd.DataFrame(rows, columns=SWEEP_COLS)
