"""
sportline

Predictive modeling and backtesting core for team-sports betting markets.

Subpackages:
    data        - base dataset, historical store, odds utilities, features
    models      - sample weighting, regression trainers, calibration,
                  ensembling, artifact store, training orchestration
    evaluation  - temporal splits, metrics, backtest engine
    serving     - predictions for upcoming games

Top-level entry points for the command surface live in sportline.pipeline.
"""

__all__ = ["config", "exceptions", "pipeline"]
