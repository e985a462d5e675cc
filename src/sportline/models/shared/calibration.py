"""
Isotonic probability calibration.

The curve is fit with the pool-adjacent-violators algorithm over an explicit
stack of (weighted label sum, weight) blocks, which is linear amortized: each
input enters the stack once and is merged at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from sportline.config import CalibrationConfig
from sportline.exceptions import InsufficientDataError


def pava(
    x: Sequence[float],
    y: Sequence[float],
    sample_weight: Optional[Sequence[float]] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Isotonic (non-decreasing) least-squares fit of y on x.

    Tied x values are pooled into one block before the pass, so the returned
    x values are unique and sorted; the returned y values are the pooled
    block means and are non-decreasing.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    w = np.ones_like(x) if sample_weight is None else np.asarray(sample_weight, dtype=float)
    if x.size == 0:
        return np.array([]), np.array([])

    order = np.argsort(x, kind="mergesort")
    x, y, w = x[order], y[order], w[order]
    ux, start = np.unique(x, return_index=True)
    sum_wy = np.add.reduceat(w * y, start)
    sum_w = np.add.reduceat(w, start)

    # Each block: [sum_wy, sum_w, n_unique_x]
    stack: list[list[float]] = []
    for wy, ww in zip(sum_wy, sum_w):
        stack.append([wy, ww, 1])
        while len(stack) > 1 and stack[-2][0] / stack[-2][1] > stack[-1][0] / stack[-1][1]:
            top = stack.pop()
            stack[-1][0] += top[0]
            stack[-1][1] += top[1]
            stack[-1][2] += top[2]

    fitted = np.concatenate([np.full(int(n), wy / ww) for wy, ww, n in stack])
    return ux, fitted


@dataclass(frozen=True)
class CalibrationCurve:
    """
    Monotone breakpoints mapping raw probabilities to calibrated ones.

    x spans [0, 1] and both coordinates are non-decreasing.
    """

    x: Tuple[float, ...]
    y: Tuple[float, ...]
    clip_low: float = 0.01
    clip_high: float = 0.99
    n_samples: int = 0

    def __post_init__(self):
        if len(self.x) != len(self.y) or len(self.x) < 2:
            raise ValueError("Calibration curve needs at least two matching breakpoints.")
        if np.any(np.diff(self.x) < 0) or np.any(np.diff(self.y) < 0):
            raise ValueError("Calibration breakpoints must be non-decreasing.")
        if self.x[0] > 0.0 or self.x[-1] < 1.0:
            raise ValueError("Calibration breakpoints must cover [0, 1].")

    def apply(self, probs):
        """Clamp to [0, 1], interpolate linearly, clamp to [clip_low, clip_high]."""
        p = np.clip(np.asarray(probs, dtype=float), 0.0, 1.0)
        out = np.interp(p, self.x, self.y)
        return np.clip(out, self.clip_low, self.clip_high)

    def to_dict(self) -> dict:
        return {
            "method": "isotonic",
            "x": list(self.x),
            "y": list(self.y),
            "clip_low": self.clip_low,
            "clip_high": self.clip_high,
            "n_samples": self.n_samples,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationCurve":
        return cls(
            x=tuple(float(v) for v in data["x"]),
            y=tuple(float(v) for v in data["y"]),
            clip_low=float(data.get("clip_low", 0.01)),
            clip_high=float(data.get("clip_high", 0.99)),
            n_samples=int(data.get("n_samples", 0)),
        )


def fit_isotonic(
    raw_probs: Sequence[float],
    labels: Sequence[float],
    clip_low: float = 0.01,
    clip_high: float = 0.99,
) -> CalibrationCurve:
    """Fit PAVA and extend the breakpoints flat to x = 0 and x = 1."""
    raw = np.clip(np.asarray(raw_probs, dtype=float), 0.0, 1.0)
    xs, ys = pava(raw, labels)
    if xs.size == 0:
        raise ValueError("Cannot fit a calibration curve without samples.")

    if xs[0] > 0.0:
        xs = np.concatenate([[0.0], xs])
        ys = np.concatenate([[ys[0]], ys])
    if xs[-1] < 1.0:
        xs = np.concatenate([xs, [1.0]])
        ys = np.concatenate([ys, [ys[-1]]])

    return CalibrationCurve(
        x=tuple(float(v) for v in xs),
        y=tuple(float(v) for v in ys),
        clip_low=clip_low,
        clip_high=clip_high,
        n_samples=int(len(raw)),
    )


def fit_calibration(
    raw_probs: Sequence[float],
    labels: Sequence[float],
    config: Optional[CalibrationConfig] = None,
) -> Optional[CalibrationCurve]:
    """
    Fit the configured calibration.

    Returns None for method "none". Raises InsufficientDataError below the
    configured minimum sample size.
    """
    config = config or CalibrationConfig()
    if config.method == "none":
        return None

    n = len(raw_probs)
    if n < config.min_samples:
        raise InsufficientDataError("calibration", config.min_samples, n)
    return fit_isotonic(raw_probs, labels, config.clip_low, config.clip_high)


def apply_calibration(curve: Optional[CalibrationCurve], probs):
    """Calibrated probabilities, or `probs` unchanged when there is no curve."""
    if curve is None:
        return np.asarray(probs, dtype=float)
    return curve.apply(probs)
