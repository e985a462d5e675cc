"""
Serving: predictions for upcoming (unsettled) games from stored runs.
"""
