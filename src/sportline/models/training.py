"""
Per-market training orchestration.

    frame -> eligible labelled examples -> temporal 70/30 split
          -> recency x class-balance weights
          -> base model + market-aware model -> ensemble
          -> validation metrics -> isotonic calibration (or recorded skip)

Everything is a pure function of the feature frame and configs; persistence
is left to the caller (see sportline.pipeline).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from sportline.config import (
    CalibrationConfig,
    EnsembleConfig,
    FeatureConfig,
    RidgeConfig,
    TrainingConfig,
    ensemble_config_for,
    training_config_for,
)
from sportline.data.feature_engineering.feature_spec import FeatureSpec, market_specs
from sportline.data.feature_engineering.market import UNDERDOG_TIERS
from sportline.evaluation.metrics import classification_metrics, mean_absolute_error
from sportline.evaluation.splits import temporal_split
from sportline.exceptions import InsufficientDataError
from sportline.models.ensemble import EnsembleModel
from sportline.models.logistic import fit_logistic
from sportline.models.ridge import fit_ridge
from sportline.models.shared.calibration import CalibrationCurve, fit_calibration
from sportline.models.weighting import sample_weights, weight_summary

logger = structlog.get_logger(__name__)

# Binary outcome each market's probability refers to
MARKET_LABELS: Dict[str, str] = {
    "moneyline": "home_win",
    "spread": "home_cover",
    "total": "total_over",
    "underdog": "underdog_win",
}


@dataclass
class TrainingRun:
    """One trained ensemble per (sport, market), with calibration and metadata."""

    sport: str
    market: str
    seasons: List[int]
    ensemble: EnsembleModel
    calibration: Optional[CalibrationCurve] = None
    calibration_skipped: Optional[str] = None
    metrics: Dict[str, float] = field(default_factory=dict)
    n_train: int = 0
    n_val: int = 0
    feature_config: Dict = field(default_factory=dict)
    tiers: Optional[List[str]] = None
    half_life_days: Optional[float] = None
    created_at: Optional[str] = None
    run_id: Optional[str] = None

    def calibrated_proba(self, frame: pd.DataFrame) -> tuple[np.ndarray, np.ndarray]:
        """(raw ensemble, calibrated) probabilities for each row."""
        raw = self.ensemble.predict_proba(frame)
        if self.calibration is None:
            return raw, raw.copy()
        out = raw.copy()
        mask = ~np.isnan(raw)
        out[mask] = self.calibration.apply(raw[mask])
        return raw, out

    def to_dict(self) -> dict:
        return {
            "sport": self.sport,
            "market": self.market,
            "seasons": list(self.seasons),
            "ensemble": self.ensemble.to_dict(),
            "calibration": None if self.calibration is None else self.calibration.to_dict(),
            "calibration_skipped": self.calibration_skipped,
            "metrics": dict(self.metrics),
            "n_train": self.n_train,
            "n_val": self.n_val,
            "feature_config": dict(self.feature_config),
            "tiers": None if self.tiers is None else list(self.tiers),
            "half_life_days": self.half_life_days,
            "created_at": self.created_at,
            "run_id": self.run_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingRun":
        calibration = data.get("calibration")
        return cls(
            sport=data["sport"],
            market=data["market"],
            seasons=[int(s) for s in data.get("seasons", [])],
            ensemble=EnsembleModel.from_dict(data["ensemble"]),
            calibration=None if calibration is None else CalibrationCurve.from_dict(calibration),
            calibration_skipped=data.get("calibration_skipped"),
            metrics=dict(data.get("metrics", {})),
            n_train=int(data.get("n_train", 0)),
            n_val=int(data.get("n_val", 0)),
            feature_config=dict(data.get("feature_config", {})),
            tiers=None if data.get("tiers") is None else list(data["tiers"]),
            half_life_days=data.get("half_life_days"),
            created_at=data.get("created_at"),
            run_id=data.get("run_id"),
        )

    def feature_config_obj(self) -> FeatureConfig:
        cfg = dict(self.feature_config)
        if "windows" in cfg:
            cfg["windows"] = tuple(cfg["windows"])
        return FeatureConfig(**cfg)


def training_examples(frame: pd.DataFrame, market: str, spec: FeatureSpec) -> pd.DataFrame:
    """Settled, eligible rows with a label and every base feature present."""
    label = MARKET_LABELS[market]
    mask = frame["is_settled"].astype(bool) & frame["eligible"].astype(bool)
    if market == "total":
        mask &= frame["total_points"].notna()
    else:
        mask &= frame[label].notna()
    subset = frame[mask]
    return subset[spec.complete_mask(subset)].copy()


def filter_tiers(examples: pd.DataFrame, market: str, tiers: Sequence[str]) -> pd.DataFrame:
    """Keep underdog examples whose underdog tier is one of `tiers`."""
    if market != "underdog":
        raise ValueError(f"Tier filters apply to the underdog market only; got '{market}'")
    unknown = sorted(set(tiers) - set(UNDERDOG_TIERS))
    if unknown:
        raise ValueError(f"Unknown underdog tiers {unknown}. Supported: {UNDERDOG_TIERS}")
    return examples[examples["underdog_tier"].isin(list(tiers))]


def _weights(df: pd.DataFrame, market: str, half_life: float, class_balance: bool) -> np.ndarray:
    if market == "total" or not class_balance:
        return sample_weights(df["gameday"], None, half_life)
    tiers = df["underdog_tier"].tolist() if market == "underdog" else None
    return sample_weights(df["gameday"], df[MARKET_LABELS[market]].to_numpy(), half_life, tiers)


def _fit(spec: FeatureSpec, df: pd.DataFrame, market: str, cfg: TrainingConfig, ridge: RidgeConfig):
    X = spec.matrix(df)
    if market == "total":
        w = _weights(df, market, ridge.half_life_days, False)
        logger.debug("sample_weights", spec=spec.name, **weight_summary(w))
        return fit_ridge(
            X,
            df["total_points"].to_numpy(dtype=float),
            sample_weight=w,
            learning_rate=ridge.learning_rate,
            iterations=ridge.iterations,
            l2_lambda=ridge.l2_lambda,
            min_sigma=ridge.min_sigma,
            feature_names=spec.feature_names,
        )
    w = _weights(df, market, cfg.half_life_days, cfg.class_balance)
    logger.debug("sample_weights", spec=spec.name, **weight_summary(w))
    return fit_logistic(
        X,
        df[MARKET_LABELS[market]].to_numpy(dtype=float),
        sample_weight=w,
        learning_rate=cfg.learning_rate,
        iterations=cfg.iterations,
        l2_lambda=cfg.l2_lambda,
        fit_intercept=cfg.fit_intercept,
        standardize=cfg.standardize,
        feature_names=spec.feature_names,
    )


def train_market(
    frame: pd.DataFrame,
    sport: str,
    market: str,
    feature_config: Optional[FeatureConfig] = None,
    training_config: Optional[TrainingConfig] = None,
    ridge_config: Optional[RidgeConfig] = None,
    calibration_config: Optional[CalibrationConfig] = None,
    ensemble_config: Optional[EnsembleConfig] = None,
    tiers: Optional[Sequence[str]] = None,
    half_life_days: Optional[float] = None,
) -> TrainingRun:
    """
    Train the base/market-aware ensemble for one market.

    Raises InsufficientDataError when fewer usable examples exist than the
    market's minimum. A market-aware model or calibration that lacks data is
    skipped (logged and recorded on the run) without failing the market.

    `tiers` restricts underdog training to games whose underdog falls in those
    tiers. `half_life_days` overrides the recency half-life of the market's
    config.
    """
    feature_config = feature_config or FeatureConfig()
    cfg = training_config or training_config_for(market)
    ridge = ridge_config or RidgeConfig()
    calibration_config = calibration_config or CalibrationConfig()
    weights = ensemble_config or ensemble_config_for(market)
    log = logger.bind(sport=sport, market=market)
    if half_life_days is not None:
        cfg = replace(cfg, half_life_days=float(half_life_days))
        ridge = replace(ridge, half_life_days=float(half_life_days))

    base_spec, market_spec = market_specs(market, feature_config)
    examples = training_examples(frame, market, base_spec)
    if tiers:
        examples = filter_tiers(examples, market, tiers)
        log.info("tier_filter", tiers=sorted(tiers), kept=len(examples))
    min_samples = ridge.min_samples if market == "total" else cfg.min_samples
    if len(examples) < min_samples:
        raise InsufficientDataError(f"{market} training", min_samples, len(examples))

    train_fraction = ridge.train_fraction if market == "total" else cfg.train_fraction
    train_df, val_df = temporal_split(examples, train_fraction)
    log.info("training_split", n_train=len(train_df), n_val=len(val_df))

    base_model = _fit(base_spec, train_df, market, cfg, ridge)

    market_model = None
    market_train = train_df[market_spec.complete_mask(train_df)]
    if len(market_train) >= min_samples:
        market_model = _fit(market_spec, market_train, market, cfg, ridge)
    else:
        log.warning(
            "market_model_skipped",
            required=min_samples,
            available=len(market_train),
        )

    ensemble = EnsembleModel(market, base_model, market_model, weights)
    run = TrainingRun(
        sport=sport,
        market=market,
        seasons=sorted(int(s) for s in examples["season"].unique()),
        ensemble=ensemble,
        n_train=len(train_df),
        n_val=len(val_df),
        feature_config=asdict(feature_config),
        tiers=sorted(tiers) if tiers else None,
        half_life_days=ridge.half_life_days if market == "total" else cfg.half_life_days,
    )

    raw_val = ensemble.predict_proba(val_df)
    labels = val_df[MARKET_LABELS[market]].to_numpy(dtype=float)
    scored = ~np.isnan(raw_val) & ~np.isnan(labels)
    run.metrics = {
        f"val_{k}": v for k, v in classification_metrics(raw_val[scored], labels[scored]).items()
    }
    if market == "total":
        run.metrics["val_mae"] = mean_absolute_error(
            base_model.predict(base_spec.matrix(val_df)), val_df["total_points"]
        )

    try:
        run.calibration = fit_calibration(raw_val[scored], labels[scored], calibration_config)
        if run.calibration is None:
            run.calibration_skipped = "calibration disabled"
    except InsufficientDataError as exc:
        run.calibration_skipped = str(exc)
        log.warning("calibration_skipped", required=exc.required, available=exc.available)

    if run.calibration is not None:
        calibrated = run.calibration.apply(raw_val[scored])
        run.metrics.update({
            f"val_calibrated_{k}": v
            for k, v in classification_metrics(calibrated, labels[scored]).items()
            if k != "n"
        })

    log.info("market_trained", **{k: round(v, 4) for k, v in run.metrics.items()})
    return run
