from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Base directory for the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

SUPPORTED_SPORTS: Tuple[str, ...] = ("nfl", "nba", "nhl", "ncaaf", "ncaam")
SUPPORTED_MARKETS: Tuple[str, ...] = ("moneyline", "spread", "total", "underdog")


@dataclass(frozen=True)
class DataConfig:
    """Data storage paths and defaults."""

    raw_data_dir: Path = PROJECT_ROOT / "data" / "raw"
    processed_data_dir: Path = PROJECT_ROOT / "data" / "processed"
    features_dir: Path = PROJECT_ROOT / "data" / "features"
    games_filename: str = "{sport}_games.parquet"
    default_seasons: Optional[List[int]] = None

    def __post_init__(self):
        if self.default_seasons is None:
            # Multi-season default; training code can override
            object.__setattr__(self, "default_seasons", list(range(2018, 2025)))


@dataclass(frozen=True)
class ModelConfig:
    """Model artifact storage."""

    models_dir: Path = PROJECT_ROOT / "models"
    runs_dirname: str = "runs"
    backtests_dirname: str = "backtests"


@dataclass(frozen=True)
class LogConfig:
    """Logging and results paths."""

    logs_dir: Path = PROJECT_ROOT / "logs"
    predictions_dir: Path = PROJECT_ROOT / "results" / "predictions"
    log_level: str = "INFO"
    json_logs: bool = False


@dataclass(frozen=True)
class FeatureConfig:
    """
    Rolling feature settings.

    Attributes:
        windows: Rolling window sizes, in number of prior settled games.
        min_history_games: Settled games each side needs before a game is
            eligible for training or backtesting.
        opponent_min_games: Prior games an opponent needs before its win rate
            counts toward schedule strength.
        tight_spread: Absolute spread at or below which a game is "tight".
    """

    windows: Tuple[int, ...] = (5, 10)
    min_history_games: int = 5
    opponent_min_games: int = 5
    tight_spread: float = 3.0


@dataclass(frozen=True)
class TrainingConfig:
    """
    Gradient-descent and sample weighting settings for one market.

    Attributes:
        learning_rate, iterations, l2_lambda: Gradient descent hyperparameters.
        half_life_days: Recency half-life for sample weights.
        train_fraction: Share of date-ordered examples used for training.
        min_samples: Fewer usable examples than this skips the market.
        fit_intercept: Fit an explicit bias term alongside the weights.
        standardize: Scale features with training statistics before descent.
        class_balance: Apply minority-class oversampling weights.
    """

    learning_rate: float = 0.01
    iterations: int = 1000
    l2_lambda: float = 0.1
    half_life_days: float = 120.0
    train_fraction: float = 0.7
    min_samples: int = 10
    fit_intercept: bool = False
    standardize: bool = True
    class_balance: bool = True


@dataclass(frozen=True)
class RidgeConfig:
    """Ridge regression settings for combined-score (totals) models."""

    learning_rate: float = 0.02
    iterations: int = 2000
    l2_lambda: float = 1.0
    half_life_days: float = 120.0
    train_fraction: float = 0.7
    min_samples: int = 50
    min_sigma: float = 5.0


@dataclass(frozen=True)
class CalibrationConfig:
    """
    Probability calibration settings.

    method is "isotonic" or "none". Below min_samples validation examples the
    fit is skipped and raw probabilities pass through unchanged.
    """

    method: str = "isotonic"
    min_samples: int = 400
    clip_low: float = 0.01
    clip_high: float = 0.99

    def __post_init__(self):
        if self.method not in {"isotonic", "none"}:
            raise ValueError(
                f"Unsupported calibration method '{self.method}'. "
                "Supported: 'isotonic', 'none'"
            )


@dataclass(frozen=True)
class EnsembleConfig:
    """Fixed convex weight pair for base and market-aware models."""

    base_weight: float = 0.7
    market_weight: float = 0.3

    def __post_init__(self):
        if self.base_weight < 0 or self.market_weight < 0:
            raise ValueError("Ensemble weights must be non-negative.")
        if abs(self.base_weight + self.market_weight - 1.0) > 1e-9:
            raise ValueError(
                f"Ensemble weights must sum to 1; got "
                f"{self.base_weight} + {self.market_weight}"
            )


@dataclass(frozen=True)
class BacktestConfig:
    """
    Backtest and production-readiness settings.

    Attributes:
        stake: Fixed stake per simulated wager.
        bucket_edges: Confidence bucket boundaries over [0, 1].
        ece_bins: Equal-width bins used for expected calibration error.
        min_roi: Minimum ROI (percent) for production readiness.
        max_ece: Maximum ECE (fraction) for production readiness.
        min_bets: Minimum settled wagers for production readiness.
        min_edge: Minimum model edge over the vig-free market probability
            before a wager is placed. 0 disables the filter.
        min_odds, max_odds: Optional American odds range filter.
        tiers: Optional underdog tiers to keep (underdog market only).
    """

    stake: float = 10.0
    bucket_edges: Tuple[float, ...] = tuple(i / 10 for i in range(11))
    ece_bins: int = 10
    min_roi: float = 5.0
    max_ece: float = 0.10
    min_bets: int = 500
    min_edge: float = 0.0
    min_odds: Optional[float] = None
    max_odds: Optional[float] = None
    tiers: Optional[Tuple[str, ...]] = None


SPORT_FEATURE_DEFAULTS: Dict[str, FeatureConfig] = {
    "nfl": FeatureConfig(),
    "nba": FeatureConfig(),
    "nhl": FeatureConfig(),
    "ncaaf": FeatureConfig(),
    # College basketball has wide talent gaps early in the season
    "ncaam": FeatureConfig(min_history_games=10),
}

MARKET_TRAINING_DEFAULTS: Dict[str, TrainingConfig] = {
    "moneyline": TrainingConfig(),
    "spread": TrainingConfig(
        learning_rate=0.005, iterations=800, l2_lambda=1.0, min_samples=100
    ),
    "underdog": TrainingConfig(
        learning_rate=0.003, iterations=600, l2_lambda=3.0, min_samples=100
    ),
}

ENSEMBLE_WEIGHTS: Dict[str, EnsembleConfig] = {
    "moneyline": EnsembleConfig(0.7, 0.3),
    "total": EnsembleConfig(0.7, 0.3),
    "spread": EnsembleConfig(0.5, 0.5),
    "underdog": EnsembleConfig(0.5, 0.5),
}

# Recency half-lives compared by the walk-forward sweep
HALF_LIFE_CANDIDATES: Tuple[float, ...] = (60.0, 90.0, 120.0, 180.0)

UNDERDOG_TIER_MULTIPLIERS: Dict[str, float] = {
    "moderate": 2.0,
    "heavy": 3.0,
    "extreme": 5.0,
}

MARKET_BACKTEST_DEFAULTS: Dict[str, BacktestConfig] = {
    "moneyline": BacktestConfig(),
    "spread": BacktestConfig(),
    "total": BacktestConfig(),
    # Underdog bets need a 0.03 probability edge over the vig-free market
    "underdog": BacktestConfig(min_edge=0.03),
}


def feature_config_for(sport: str) -> FeatureConfig:
    """Feature defaults for a sport, falling back to the generic config."""
    return SPORT_FEATURE_DEFAULTS.get(sport.lower(), FeatureConfig())


def training_config_for(market: str) -> TrainingConfig:
    """Logistic settings for a market. Totals train with RidgeConfig instead."""
    if market not in SUPPORTED_MARKETS:
        raise ValueError(
            f"Unsupported market '{market}'. Supported: {SUPPORTED_MARKETS}"
        )
    return MARKET_TRAINING_DEFAULTS.get(market, TrainingConfig())


def ensemble_config_for(market: str) -> EnsembleConfig:
    return ENSEMBLE_WEIGHTS.get(market, EnsembleConfig())


def backtest_config_for(market: str) -> BacktestConfig:
    return MARKET_BACKTEST_DEFAULTS.get(market, BacktestConfig())


# Global config instances
DATA_CONFIG = DataConfig()
MODEL_CONFIG = ModelConfig()
LOG_CONFIG = LogConfig()
