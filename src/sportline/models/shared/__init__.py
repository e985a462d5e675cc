"""
Shared model utilities.

- numeric: sigmoid, normal CDF, finite guards
- calibration: isotonic (PAVA) probability calibration curves
"""

from sportline.models.shared.calibration import CalibrationCurve, fit_isotonic
from sportline.models.shared.numeric import normal_cdf, sigmoid

__all__ = ["CalibrationCurve", "fit_isotonic", "normal_cdf", "sigmoid"]
