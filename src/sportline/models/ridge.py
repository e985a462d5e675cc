"""
Ridge regression for continuous targets (combined score for totals).

Features are standardized with training statistics, weights are fit by
gradient descent on weighted squared error plus an L2 penalty, and a scalar
bias is set afterward to the mean training residual. The predictive spread
is 1.4826 x MAD of training residuals, floored at `min_sigma`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from sportline.models.shared.numeric import normal_cdf, standardization_params

MAD_TO_SIGMA = 1.4826


@dataclass
class RidgeModel:
    weights: np.ndarray
    feature_names: List[str]
    means: np.ndarray
    stds: np.ndarray
    bias: float
    sigma: float
    kind: str = field(default="ridge", init=False)

    def predict(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        return ((X - self.means) / self.stds) @ self.weights + self.bias

    def prob_over(self, X: np.ndarray, lines: Sequence[float]) -> np.ndarray:
        """P(target > line) = 1 - Phi((line - prediction) / sigma)."""
        z = (np.asarray(lines, dtype=float) - self.predict(X)) / self.sigma
        return 1.0 - normal_cdf(z)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "weights": self.weights.tolist(),
            "feature_names": list(self.feature_names),
            "means": self.means.tolist(),
            "stds": self.stds.tolist(),
            "bias": float(self.bias),
            "sigma": float(self.sigma),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RidgeModel":
        return cls(
            weights=np.asarray(data["weights"], dtype=float),
            feature_names=list(data["feature_names"]),
            means=np.asarray(data["means"], dtype=float),
            stds=np.asarray(data["stds"], dtype=float),
            bias=float(data["bias"]),
            sigma=float(data["sigma"]),
        )


def residual_sigma(residuals: np.ndarray, min_sigma: float) -> float:
    """Robust spread: 1.4826 * median(|r - median(r)|), floored at min_sigma."""
    residuals = np.asarray(residuals, dtype=float)
    if residuals.size == 0:
        return float(min_sigma)
    mad = np.median(np.abs(residuals - np.median(residuals)))
    return float(max(MAD_TO_SIGMA * mad, min_sigma))


def fit_ridge(
    X: np.ndarray,
    y: np.ndarray,
    sample_weight: Optional[np.ndarray] = None,
    learning_rate: float = 0.02,
    iterations: int = 2000,
    l2_lambda: float = 1.0,
    min_sigma: float = 5.0,
    feature_names: Optional[Sequence[str]] = None,
) -> RidgeModel:
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    if X.ndim != 2 or X.shape[0] != y.shape[0]:
        raise ValueError(f"X and y shapes disagree: {X.shape} vs {y.shape}")
    if not np.isfinite(X).all() or not np.isfinite(y).all():
        raise ValueError("X and y must be finite; drop incomplete rows first.")

    n, p = X.shape
    w = np.ones(n) if sample_weight is None else np.asarray(sample_weight, dtype=float)
    total = w.sum()
    if n == 0 or not total > 0:
        raise ValueError("Cannot fit ridge regression with zero total weight.")

    means, stds = standardization_params(X)
    Z = (X - means) / stds
    target = y - np.average(y, weights=w)

    theta = np.zeros(p)
    step = learning_rate / total
    for _ in range(iterations):
        err = w * (Z @ theta - target)
        theta -= step * (Z.T @ err + l2_lambda * theta)

    residuals = y - Z @ theta
    bias = float(np.average(residuals, weights=w))
    sigma = residual_sigma(residuals - bias, min_sigma)

    names = list(feature_names) if feature_names is not None else [f"x{j}" for j in range(p)]
    return RidgeModel(
        weights=theta, feature_names=names, means=means, stds=stds, bias=bias, sigma=sigma
    )
