import numpy as np
import pandas as pd
import pytest

from sportline.config import FeatureConfig
from sportline.data.feature_engineering.feature_builder import (
    FeatureBuilder,
    FeatureBuilderConfig,
)
from sportline.data.feature_engineering.feature_spec import (
    FeatureColumn,
    FeatureSpec,
    core_spec,
    market_specs,
)
from sportline.data.feature_engineering.history import (
    RECENCY_WEIGHTS_5,
    HistoryIndex,
    recency_weighted_mean,
)
from sportline.data.feature_engineering.market import (
    MarketContext,
    classify_underdog_tier,
    parse_market,
)
from sportline.data.preprocessing.base_dataset import build_base_dataset
from sportline.exceptions import MalformedOddsError


# ---------------------------------------------------------------------------
# Helpers for synthetic base datasets
# ---------------------------------------------------------------------------


def _make_tiny_base_df_single_matchup() -> pd.DataFrame:
    """
    Tiny base dataset with one matchup repeated to reason about timing.

    Game setup:
        Game 1: A (home) vs B       (2023-09-10)  A wins 10-7
        Game 2: B (home) vs A       (2023-09-17)  B wins 20-14
        Game 3: A (home) vs B       (2023-09-24)  A wins 30-21
    """
    data = {
        "game_id": ["g1", "g2", "g3"],
        "season": [2023, 2023, 2023],
        "gameday": pd.to_datetime(["2023-09-10", "2023-09-17", "2023-09-24"]),
        "home_team": ["A", "B", "A"],
        "away_team": ["B", "A", "B"],
        "home_score": [10, 20, 30],
        "away_score": [7, 14, 21],
        "spread_line": [-3.5, -4.5, -6.5],
        "home_spread_odds": [-110, -110, -110],
        "away_spread_odds": [-110, -110, -110],
        "total_line": [42.5, 43.5, 44.5],
        "over_odds": [-110, -110, -110],
        "under_odds": [-110, -110, -110],
        "home_moneyline": [-160, -180, -220],
        "away_moneyline": [140, 155, 190],
    }
    return build_base_dataset(pd.DataFrame(data))


def _make_leak_check_df() -> pd.DataFrame:
    """
    Team A plays five games before 2024-03-01, then twice on 2024-03-01
    (a doubleheader) and once after, each with an extreme score that would
    be visible in the features if same-day or later games leaked in.
    """
    days = ["2024-02-01", "2024-02-05", "2024-02-10", "2024-02-15", "2024-02-20",
            "2024-03-01", "2024-03-01", "2024-03-05"]
    opponents = ["B", "C", "D", "E", "F", "B", "C", "D"]
    scores = [(20, 10)] * 5 + [(100, 0), (100, 0), (0, 100)]
    rows = []
    for i, (day, opp, (hs, as_)) in enumerate(zip(days, opponents, scores)):
        rows.append({
            "game_id": f"g{i}",
            "season": 2024,
            "gameday": pd.Timestamp(day),
            "home_team": "A",
            "away_team": opp,
            "home_score": hs,
            "away_score": as_,
        })
    return build_base_dataset(pd.DataFrame(rows))


def _build(df: pd.DataFrame, **config) -> pd.DataFrame:
    return FeatureBuilder(FeatureBuilderConfig(**config)).build_features(df)


# ---------------------------------------------------------------------------
# 1) History and anti-leakage
# ---------------------------------------------------------------------------


def test_first_game_uses_neutral_defaults():
    frame = _build(_make_tiny_base_df_single_matchup()).set_index("game_id")

    g1 = frame.loc["g1"]
    assert g1["home_win_rate_5"] == pytest.approx(0.5)
    assert g1["away_win_rate_5"] == pytest.approx(0.5)
    assert g1["home_avg_margin_5"] == pytest.approx(0.0)
    assert g1["home_points_for_5"] == pytest.approx(0.0)
    assert g1["home_opp_win_rate_5"] == pytest.approx(0.5)
    assert g1["home_history_games"] == 0
    assert not g1["eligible"]


def test_features_only_use_prior_games():
    """Game 3 sees games 1-2 only; game 2 sees game 1 only."""
    frame = _build(_make_tiny_base_df_single_matchup()).set_index("game_id")

    g2 = frame.loc["g2"]
    # B is home in g2; B lost g1 7-10
    assert g2["home_win_rate_5"] == pytest.approx(0.0)
    assert g2["home_avg_margin_5"] == pytest.approx(-3.0)
    assert g2["away_win_rate_5"] == pytest.approx(1.0)
    assert g2["home_pace_5"] == pytest.approx(17.0)

    g3 = frame.loc["g3"]
    # A: won g1 by 3, lost g2 by 6
    assert g3["home_win_rate_5"] == pytest.approx(0.5)
    assert g3["home_avg_margin_5"] == pytest.approx(-1.5)
    assert g3["home_points_for_5"] == pytest.approx(12.0)
    assert g3["home_points_against_5"] == pytest.approx(13.5)
    assert g3["home_history_games"] == 2


def test_feature_vector_for_2024_03_01_never_sees_that_date_or_later():
    frame = _build(_make_leak_check_df(), season_scoped=False).set_index("game_id")

    for game_id in ("g5", "g6"):
        row = frame.loc[game_id]
        assert row["home_history_games"] == 5
        assert row["home_win_rate_5"] == pytest.approx(1.0)
        assert row["home_avg_margin_5"] == pytest.approx(10.0)
        assert row["home_points_for_5"] == pytest.approx(20.0)


def test_kickoff_times_do_not_leak_same_day_results():
    """An earlier kickoff on the same calendar day is not history."""
    games = build_base_dataset(pd.DataFrame({
        "game_id": ["g1", "g2", "g3"],
        "season": [2024, 2024, 2024],
        "gameday": pd.to_datetime(["2024-02-20 19:00", "2024-03-01 12:00", "2024-03-01 19:00"]),
        "home_team": ["A", "D", "A"],
        "away_team": ["C", "C", "B"],
        "home_score": [20, 50, 24],
        "away_score": [10, 0, 17],
    }))
    assert (games["gameday"] == games["gameday"].dt.normalize()).all()

    frame = _build(games, feature_config=FeatureConfig(opponent_min_games=1)).set_index("game_id")
    row = frame.loc["g3"]

    # C lost to A by 10 before March; its 50-0 loss at noon on 03-01 is excluded
    assert row["home_opp_avg_margin_5"] == pytest.approx(-10.0)
    assert row["home_opp_win_rate_5"] == pytest.approx(0.0)
    assert row["home_history_games"] == 1
    assert frame.loc["g2", "away_history_games"] == 1

    index = HistoryIndex(games)
    assert index.count_before("C", 2024, pd.Timestamp("2024-03-01 23:59")) == 1
    assert len(index.history("D", 2024, pd.Timestamp("2024-03-01 20:00"))) == 0


def test_history_index_excludes_unsettled_and_cutoff_day(make_games):
    games = build_base_dataset(make_games(seasons=(2023,), unsettled_rounds=3))
    index = HistoryIndex(games)
    team = games["home_team"].iloc[0]
    last_day = games["gameday"].max() + pd.Timedelta(days=1)

    hist = index.history(team, 2023, last_day)
    assert len(hist) == 14 - 3
    assert all(g.gameday < last_day for g in hist.games)

    window = index.history(team, 2023, last_day, window=5)
    assert len(window) == 5
    assert window.games == hist.games[-5:]


def test_season_scoped_history_resets(make_games):
    games = build_base_dataset(make_games(seasons=(2022, 2023)))
    first_2023 = games[games["season"] == 2023]["gameday"].min()

    frame = _build(games)
    opening = frame[frame["gameday"] == first_2023]
    assert (opening["home_history_games"] == 0).all()

    carried = _build(games, season_scoped=False)
    opening = carried[carried["gameday"] == first_2023]
    assert (opening["home_history_games"] == 14).all()


def test_eligibility_threshold_per_sport(make_games):
    games = build_base_dataset(make_games(seasons=(2023,)))
    nfl = _build(games, sport="nfl")
    ncaam = _build(games, sport="ncaam")

    # 4 games per round; eligible from round 5 (nfl) vs round 10 (ncaam)
    assert nfl["eligible"].sum() == 4 * (14 - 5)
    assert ncaam["eligible"].sum() == 4 * (14 - 10)
    assert (nfl[nfl["eligible"]]["home_history_games"] >= 5).all()


# ---------------------------------------------------------------------------
# 2) Opponent strength
# ---------------------------------------------------------------------------


def test_opponent_strength_requires_opponent_history(make_games):
    games = build_base_dataset(make_games(seasons=(2023,)))
    frame = _build(games)

    # Before round 6 no opponent has five prior games
    early = frame[frame["home_history_games"] < 5]
    assert (early["home_opp_win_rate_5"] == 0.5).all()
    assert (early["home_off_eff_5"] == 0.0).all()

    late = frame[frame["home_history_games"] >= 8]
    assert not (late["home_opp_win_rate_5"] == 0.5).all()
    assert late["home_opp_win_rate_5"].between(0.0, 1.0).all()


# ---------------------------------------------------------------------------
# 3) Market features
# ---------------------------------------------------------------------------


def test_market_columns_only_in_market_aware_specs():
    for market in ("moneyline", "spread", "total", "underdog"):
        base, aware = market_specs(market)
        assert aware.feature_names[: len(base)] == base.feature_names
        assert len(aware) > len(base)
        for name in ("market_home_prob", "spread_line", "total_line", "market_underdog_prob"):
            assert name not in base.feature_names


def test_spread_market_features():
    frame = _build(_make_tiny_base_df_single_matchup()).set_index("game_id")
    g3 = frame.loc["g3"]
    assert g3["spread_line"] == pytest.approx(-6.5)
    assert g3["spread_size"] == pytest.approx(6.5)
    assert g3["is_tight_spread"] == 0.0
    assert g3["market_cover_prob"] == pytest.approx(0.5)
    # performance-implied line: -(-1.5 - 1.5) = 3.0
    assert g3["market_overreaction"] == pytest.approx(9.5)

    # vig-free moneyline probability
    home = 220 / 320
    away = 100 / 290
    assert g3["market_home_prob"] == pytest.approx(home / (home + away))


def test_ats_features():
    frame = _build(_make_tiny_base_df_single_matchup()).set_index("game_id")
    g3 = frame.loc["g3"]
    # A: g1 home +3 at -3.5 -> -0.5 ; g2 away -6 at +4.5 -> -1.5
    assert g3["home_ats_margin_5"] == pytest.approx(-1.0)
    assert g3["home_ats_record_5"] == pytest.approx(0.0)
    # B: g1 away -3 at +3.5 -> +0.5 ; g2 home +6 at -4.5 -> +1.5
    assert g3["away_ats_record_5"] == pytest.approx(1.0)


def test_malformed_odds_skip_market_for_that_game_only():
    df = _make_tiny_base_df_single_matchup()
    df.loc[df["game_id"] == "g2", "away_moneyline"] = np.nan
    df.loc[df["game_id"] == "g3", "home_spread_odds"] = 5.0  # not an American price

    frame = _build(df).set_index("game_id")
    assert np.isnan(frame.loc["g2", "market_home_prob"])
    assert not np.isnan(frame.loc["g2", "market_cover_prob"])
    assert np.isnan(frame.loc["g3", "spread_line"])
    assert not np.isnan(frame.loc["g3", "market_home_prob"])
    assert not np.isnan(frame.loc["g1", "market_home_prob"])


def test_parse_market_partial_record_raises():
    row = {"spread_line": -3.5, "home_spread_odds": -110, "away_spread_odds": None}
    with pytest.raises(MalformedOddsError) as exc:
        parse_market("spread", row, "g1")
    assert exc.value.missing == ["away_spread_odds"]

    assert parse_market("total", {}, "g1") is None


# ---------------------------------------------------------------------------
# 4) Underdog features
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "prob, tier",
    [(0.6, None), (0.5, None), (0.45, "moderate"), (0.33, "moderate"),
     (0.30, "heavy"), (0.25, "heavy"), (0.2, "extreme"), (None, None)],
)
def test_classify_underdog_tier(prob, tier):
    assert classify_underdog_tier(prob) == tier


def test_market_context_underdog_side():
    ctx = MarketContext.from_row({"game_id": "g", "home_moneyline": 250, "away_moneyline": -300})
    assert ctx.underdog_side == "home"
    assert ctx.underdog_odds == 250
    assert ctx.underdog_tier == "heavy"
    assert ctx.underdog_prob < 0.33


def test_recency_weighted_mean_aligns_newest():
    assert recency_weighted_mean([], RECENCY_WEIGHTS_5) == 0.0
    assert recency_weighted_mean([1.0], RECENCY_WEIGHTS_5) == pytest.approx(1.0)
    # two values use the two newest weights (0.25, 0.35)
    assert recency_weighted_mean([0.0, 1.0], RECENCY_WEIGHTS_5) == pytest.approx(0.35 / 0.6)


def test_underdog_labels_and_columns():
    frame = _build(_make_tiny_base_df_single_matchup()).set_index("game_id")
    # B is the away underdog in every game; B won only g2 (as home team)
    assert frame.loc["g1", "underdog_side"] == "away"
    assert frame.loc["g1", "underdog_win"] == 0.0
    assert frame.loc["g3", "underdog_win"] == 0.0
    assert frame.loc["g3", "home_is_underdog"] == 0.0
    assert frame.loc["g3", "away_is_underdog"] == 1.0
    assert frame.loc["g3", "home_dog_advantage"] == pytest.approx(-0.05)


# ---------------------------------------------------------------------------
# 5) FeatureSpec composition
# ---------------------------------------------------------------------------


def test_feature_spec_extend_and_duplicates():
    base = FeatureSpec("base", (FeatureColumn("a", lambda c: 1.0),))
    extended = base.extend([FeatureColumn("b", lambda c: None)], name="ext")
    assert extended.feature_names == ["a", "b"]
    assert base.feature_names == ["a"]
    values = extended.extract(None)
    assert values["a"] == 1.0
    assert np.isnan(values["b"])

    with pytest.raises(ValueError, match="Duplicate feature names"):
        base.extend([FeatureColumn("a", lambda c: 0.0)])


def test_core_spec_is_fixed_order_per_window():
    spec = core_spec((5, 10))
    names = spec.feature_names
    assert names[0] == "home_advantage"
    assert names.index("home_win_rate_5") < names.index("home_win_rate_10")
    assert len(names) == 1 + 2 * 2 * 10


def test_feature_frame_is_deterministic(synthetic_games):
    games = build_base_dataset(synthetic_games)
    a = _build(games)
    b = _build(games)
    pd.testing.assert_frame_equal(a, b)


def test_feature_matrix_shape(synthetic_games):
    builder = FeatureBuilder(FeatureBuilderConfig(feature_config=FeatureConfig()))
    frame = builder.build_features(synthetic_games)
    base, aware = builder.specs("moneyline")

    eligible = frame[frame["eligible"]]
    X = base.matrix(eligible)
    assert X.shape == (len(eligible), len(base))
    assert np.isfinite(X).all()
    assert aware.complete_mask(eligible).all()
