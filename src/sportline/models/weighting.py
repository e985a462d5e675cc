"""
Per-example training weights.

Final weight = recency weight x class-balance weight. Weights are not
renormalized; trainers divide by total weight mass.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from sportline.config import UNDERDOG_TIER_MULTIPLIERS

LN2 = np.log(2.0)


def recency_weights(dates: Sequence, half_life_days: float = 120.0) -> np.ndarray:
    """
    exp(-ln2 * (max_date - date) / half_life_days), in days.

    The reference is the most recent date in `dates`, so that example gets
    exactly 1.0.
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive; got {half_life_days}")
    ts = pd.to_datetime(pd.Series(list(dates)))
    if ts.empty:
        return np.array([], dtype=float)
    age_days = (ts.max() - ts).dt.total_seconds().to_numpy() / 86400.0
    return np.exp(-LN2 * age_days / half_life_days)


def tier_multiplier(tier: Optional[str]) -> float:
    """Oversampling multiplier for an underdog tier; 1.0 when no tier applies."""
    if tier is None:
        return 1.0
    return UNDERDOG_TIER_MULTIPLIERS.get(tier, 1.0)


def class_balance_weights(
    labels: Sequence[float],
    tiers: Optional[Sequence[Optional[str]]] = None,
) -> np.ndarray:
    """
    Up-weight the minority class of a binary label.

    Minority examples get (majority_count / minority_count) x tier multiplier;
    majority examples get 1.0. Equal counts give 1.0 for both classes.
    """
    y = np.asarray(labels, dtype=float)
    n_pos = int((y == 1).sum())
    n_neg = int((y == 0).sum())
    weights = np.ones_like(y)

    mult = np.ones_like(y)
    if tiers is not None:
        mult = np.array([tier_multiplier(t) for t in tiers], dtype=float)

    if n_pos == 0 or n_neg == 0:
        return weights

    if n_pos < n_neg:
        weights[y == 1] = (n_neg / n_pos) * mult[y == 1]
    elif n_neg < n_pos:
        weights[y == 0] = (n_pos / n_neg) * mult[y == 0]
    return weights


def sample_weights(
    dates: Sequence,
    labels: Optional[Sequence[float]] = None,
    half_life_days: float = 120.0,
    tiers: Optional[Sequence[Optional[str]]] = None,
) -> np.ndarray:
    """Recency x class-balance. Continuous targets pass labels=None."""
    weights = recency_weights(dates, half_life_days)
    if labels is not None:
        weights = weights * class_balance_weights(labels, tiers)
    return weights


def weight_summary(weights: np.ndarray) -> Dict[str, float]:
    if len(weights) == 0:
        return {"count": 0, "total": 0.0, "min": 0.0, "max": 0.0}
    return {
        "count": int(len(weights)),
        "total": float(weights.sum()),
        "min": float(weights.min()),
        "max": float(weights.max()),
    }
