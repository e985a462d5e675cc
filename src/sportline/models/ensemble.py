from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd

from sportline.config import EnsembleConfig
from sportline.models.logistic import LogisticModel
from sportline.models.ridge import RidgeModel

Model = Union[LogisticModel, RidgeModel]


def model_from_dict(data: dict) -> Model:
    kind = data.get("kind", "logistic")
    if kind == "logistic":
        return LogisticModel.from_dict(data)
    if kind == "ridge":
        return RidgeModel.from_dict(data)
    raise ValueError(f"Unknown model kind '{kind}'")


def blend(p_base, p_market, config: EnsembleConfig):
    """
    Convex blend of base and market-aware probabilities.

    Where the market-aware probability is missing (NaN) the base probability
    is returned unchanged.
    """
    p_base = np.asarray(p_base, dtype=float)
    p_market = np.asarray(p_market, dtype=float)
    blended = config.base_weight * p_base + config.market_weight * p_market
    return np.where(np.isnan(p_market), p_base, blended)


def model_proba(model: Model, frame: pd.DataFrame, line_col: str = "total_line") -> np.ndarray:
    """
    Probability of the positive outcome for each row; NaN where inputs are missing.

    Ridge models score P(target > line) against `line_col`.
    """
    X = frame[model.feature_names].to_numpy(dtype=float)
    out = np.full(len(frame), np.nan)
    mask = ~np.isnan(X).any(axis=1)
    if isinstance(model, RidgeModel):
        lines = frame[line_col].to_numpy(dtype=float)
        mask &= ~np.isnan(lines)
        if mask.any():
            out[mask] = model.prob_over(X[mask], lines[mask])
    elif mask.any():
        out[mask] = model.predict_proba(X[mask])
    return out


@dataclass
class EnsembleModel:
    """Base model plus optional market-aware model with a fixed weight pair."""

    market: str
    base: Model
    market_aware: Optional[Model] = None
    weights: EnsembleConfig = EnsembleConfig()

    def component_proba(self, frame: pd.DataFrame) -> tuple[np.ndarray, np.ndarray]:
        p_base = model_proba(self.base, frame)
        if self.market_aware is None:
            return p_base, np.full(len(frame), np.nan)
        return p_base, model_proba(self.market_aware, frame)

    def predict_proba(self, frame: pd.DataFrame) -> np.ndarray:
        p_base, p_market = self.component_proba(frame)
        return blend(p_base, p_market, self.weights)

    def to_dict(self) -> dict:
        return {
            "market": self.market,
            "base": self.base.to_dict(),
            "market_aware": None if self.market_aware is None else self.market_aware.to_dict(),
            "weights": {
                "base": self.weights.base_weight,
                "market": self.weights.market_weight,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EnsembleModel":
        return cls(
            market=data["market"],
            base=model_from_dict(data["base"]),
            market_aware=None if data.get("market_aware") is None else model_from_dict(data["market_aware"]),
            weights=EnsembleConfig(data["weights"]["base"], data["weights"]["market"]),
        )
