"""
Feature engineering

Leak-free rolling features for every market, built from a base dataset:

    from sportline.data.feature_engineering import FeatureBuilder, FeatureBuilderConfig

    builder = FeatureBuilder(FeatureBuilderConfig(sport="nfl"))
    frame = builder.build_features(base_games)

    base_spec, market_spec = builder.specs("spread")
    eligible = frame[frame["eligible"] & frame["is_settled"]]
    X_base = base_spec.matrix(eligible)

Modules:
    history       - per-team settled history with strict date cutoffs
    market        - odds parsing, vig-free probabilities, underdog tiers
    feature_spec  - FeatureSpec composition and per-market specs
    feature_builder - game-level feature frame with labels
"""

from sportline.data.feature_engineering.feature_builder import (
    FeatureBuilder,
    FeatureBuilderConfig,
)
from sportline.data.feature_engineering.feature_spec import FeatureSpec, market_specs

__all__ = ["FeatureBuilder", "FeatureBuilderConfig", "FeatureSpec", "market_specs"]
