"""
Evaluation: temporal splits, probability metrics and the backtest engine.
"""
