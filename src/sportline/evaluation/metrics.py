from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
from sklearn import metrics

_EPS = 1e-15


def _as_arrays(probs, outcomes):
    p = np.asarray(probs, dtype=float)
    y = np.asarray(outcomes, dtype=float)
    if p.shape != y.shape:
        raise ValueError(f"probs and outcomes shapes disagree: {p.shape} vs {y.shape}")
    return p, y


def bin_index(probs, n_bins: int = 10) -> np.ndarray:
    """Equal-width bin per probability: min(floor(p * n_bins), n_bins - 1)."""
    p = np.clip(np.asarray(probs, dtype=float), 0.0, 1.0)
    return np.minimum(np.floor(p * n_bins).astype(int), n_bins - 1)


def calibration_bins(probs, outcomes, n_bins: int = 10) -> List[Dict[str, float]]:
    """Per-bin count, mean prediction and outcome rate for non-empty bins."""
    p, y = _as_arrays(probs, outcomes)
    idx = bin_index(p, n_bins)
    bins = []
    for b in range(n_bins):
        mask = idx == b
        if not mask.any():
            continue
        bins.append({
            "bin": b,
            "lower": b / n_bins,
            "upper": (b + 1) / n_bins,
            "count": int(mask.sum()),
            "avg_prediction": float(p[mask].mean()),
            "outcome_rate": float(y[mask].mean()),
        })
    return bins


def expected_calibration_error(probs, outcomes, n_bins: int = 10) -> float:
    """
    Count-weighted mean |avg prediction - outcome rate| over equal-width bins.

    Always within [0, 1]; 0.0 for an empty input.
    """
    p, _ = _as_arrays(probs, outcomes)
    if p.size == 0:
        return 0.0
    bins = calibration_bins(probs, outcomes, n_bins)
    total = sum(b["count"] for b in bins)
    return float(
        sum(b["count"] * abs(b["avg_prediction"] - b["outcome_rate"]) for b in bins) / total
    )


def brier_score(probs, outcomes) -> float:
    p, y = _as_arrays(probs, outcomes)
    if p.size == 0:
        return 0.0
    return float(metrics.brier_score_loss(y.astype(int), p, pos_label=1))


def log_loss(probs, outcomes) -> float:
    p, y = _as_arrays(probs, outcomes)
    if p.size == 0:
        return 0.0
    # Both labels are declared so single-class slices still score
    return float(metrics.log_loss(y.astype(int), np.clip(p, _EPS, 1.0 - _EPS), labels=[0, 1]))


def accuracy(probs, outcomes, threshold: float = 0.5) -> float:
    p, y = _as_arrays(probs, outcomes)
    if p.size == 0:
        return 0.0
    return float(metrics.accuracy_score(y == 1, p >= threshold))


def mean_absolute_error(predicted: Sequence[float], actual: Sequence[float]) -> float:
    pred = np.asarray(predicted, dtype=float)
    act = np.asarray(actual, dtype=float)
    if pred.size == 0:
        return 0.0
    return float(metrics.mean_absolute_error(act, pred))


def classification_metrics(probs, outcomes, n_bins: int = 10) -> Dict[str, float]:
    return {
        "n": int(len(np.asarray(probs))),
        "accuracy": accuracy(probs, outcomes),
        "brier": brier_score(probs, outcomes),
        "log_loss": log_loss(probs, outcomes),
        "ece": expected_calibration_error(probs, outcomes, n_bins),
    }
