"""
Data layer: odds utilities, base dataset, historical store, features.
"""
