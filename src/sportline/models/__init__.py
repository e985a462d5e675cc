"""
Models: sample weighting, regression trainers, calibration, ensembling,
artifact storage and per-market training orchestration.
"""
