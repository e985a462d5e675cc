"""
Weighted logistic regression by batch gradient descent.

For feature j the update is

    theta_j -= (lr / sum(w)) * (sum_i w_i * (sigmoid(x_i . theta) - y_i) * x_ij + lambda * theta_j)

No intercept is added unless fit_intercept=True; the feature specs carry an
explicit constant `home_advantage` column instead. Training is deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from sportline.models.shared.numeric import sigmoid, standardization_params


@dataclass
class LogisticModel:
    weights: np.ndarray
    feature_names: List[str]
    means: Optional[np.ndarray] = None
    stds: Optional[np.ndarray] = None
    bias: float = 0.0
    kind: str = field(default="logistic", init=False)

    def _transform(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.shape[1] != len(self.weights):
            raise ValueError(
                f"Expected {len(self.weights)} features, got {X.shape[1]}"
            )
        if self.means is not None:
            X = (X - self.means) / self.stds
        return X

    def decision_function(self, X: np.ndarray) -> np.ndarray:
        return self._transform(X) @ self.weights + self.bias

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """P(y = 1) per row, strictly inside (0, 1)."""
        return sigmoid(self.decision_function(X))

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "weights": self.weights.tolist(),
            "feature_names": list(self.feature_names),
            "means": None if self.means is None else self.means.tolist(),
            "stds": None if self.stds is None else self.stds.tolist(),
            "bias": float(self.bias),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogisticModel":
        return cls(
            weights=np.asarray(data["weights"], dtype=float),
            feature_names=list(data["feature_names"]),
            means=None if data.get("means") is None else np.asarray(data["means"], dtype=float),
            stds=None if data.get("stds") is None else np.asarray(data["stds"], dtype=float),
            bias=float(data.get("bias", 0.0)),
        )


def fit_logistic(
    X: np.ndarray,
    y: np.ndarray,
    sample_weight: Optional[np.ndarray] = None,
    learning_rate: float = 0.01,
    iterations: int = 1000,
    l2_lambda: float = 0.1,
    fit_intercept: bool = False,
    standardize: bool = True,
    feature_names: Optional[Sequence[str]] = None,
) -> LogisticModel:
    """
    Fit a weighted, L2-penalized logistic regression.

    Parameters
    ----------
    X, y:
        Feature matrix (n, p) and binary labels (n,).
    sample_weight:
        Positive per-example weights. Gradients are normalized by their sum,
        so weights need not sum to n.
    standardize:
        Scale features with training statistics before descent; zero-variance
        columns pass through unscaled.
    fit_intercept:
        Learn an unpenalized bias alongside the weights.
    """
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
        raise ValueError("Cannot fit logistic regression with zero total weight.")

    names = list(feature_names) if feature_names is not None else [f"x{j}" for j in range(p)]
    means = stds = None
    if standardize:
        means, stds = standardization_params(X)
        X = (X - means) / stds

    theta = np.zeros(p)
    bias = 0.0
    step = learning_rate / total
    for _ in range(iterations):
        err = w * (sigmoid(X @ theta + bias) - y)
        theta -= step * (X.T @ err + l2_lambda * theta)
        if fit_intercept:
            bias -= step * err.sum()

    return LogisticModel(weights=theta, feature_names=names, means=means, stds=stds, bias=bias)
