from __future__ import annotations

import numpy as np

# Keeps sigmoid strictly inside (0, 1) in float64
_LOGIT_CLIP = 30.0

# Abramowitz & Stegun 7.1.26 coefficients (|error| < 1.5e-7)
_AS_P = 0.3275911
_AS_A = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)


def sigmoid(z):
    """Logistic function, clipped so outputs never reach exactly 0 or 1."""
    z = np.clip(np.asarray(z, dtype=float), -_LOGIT_CLIP, _LOGIT_CLIP)
    return 1.0 / (1.0 + np.exp(-z))


def erf(x):
    """Error function via the Abramowitz-Stegun rational approximation."""
    x = np.asarray(x, dtype=float)
    sign = np.sign(x)
    ax = np.abs(x)
    t = 1.0 / (1.0 + _AS_P * ax)
    a1, a2, a3, a4, a5 = _AS_A
    poly = ((((a5 * t + a4) * t + a3) * t + a2) * t + a1) * t
    return sign * (1.0 - poly * np.exp(-ax * ax))


def normal_cdf(x):
    """Standard normal CDF."""
    return 0.5 * (1.0 + erf(np.asarray(x, dtype=float) / np.sqrt(2.0)))


def standardization_params(X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Column means and standard deviations from training data.

    Zero-variance columns get mean 0 and std 1 so they pass through
    unchanged (an explicit constant column keeps acting as an intercept).
    """
    X = np.asarray(X, dtype=float)
    if X.shape[0] == 0:
        return np.zeros(X.shape[1]), np.ones(X.shape[1])
    means = X.mean(axis=0)
    stds = X.std(axis=0)
    flat = ~(stds > 0)
    means = np.where(flat, 0.0, means)
    stds = np.where(flat, 1.0, stds)
    return means, stds
