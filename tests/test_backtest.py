import numpy as np
import pandas as pd
import pytest

from sportline.config import BacktestConfig
from sportline.evaluation.backtest import (
    Wager,
    confidence_buckets,
    evaluate_wagers,
    odds_range,
    readiness,
    run_backtest,
    select_pick,
    settle,
    simulate_wagers,
    spread_size_bucket,
    summarize,
)
from sportline.models.ensemble import EnsembleModel
from sportline.models.logistic import LogisticModel
from sportline.models.shared.calibration import CalibrationCurve
from sportline.models.training import TrainingRun


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _wager(won: bool, odds: float = 100.0, prob: float = 0.55, push: bool = False) -> Wager:
    decimal = odds / 100 + 1 if odds > 0 else 100 / abs(odds) + 1
    outcome = "push" if push else ("win" if won else "loss")
    profit = 0.0 if push else (10 * decimal - 10 if won else -10.0)
    return Wager(
        game_id="g",
        gameday="2024-01-01",
        side="home",
        prob=prob,
        raw_prob=prob,
        market_prob=0.5,
        odds=odds,
        decimal_odds=decimal,
        stake=10.0,
        outcome=outcome,
        profit=profit,
        odds_range=odds_range(odds),
    )


def _moneyline_frame() -> pd.DataFrame:
    """Four settled games with a single feature `a` driving the model."""
    return pd.DataFrame({
        "game_id": ["g1", "g2", "g3", "g4"],
        "season": [2024] * 4,
        "gameday": pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"]),
        "is_settled": [True, True, True, True],
        "eligible": [True, True, True, False],
        "a": [2.0, -2.0, 2.0, 2.0],
        "home_moneyline": [150.0, -120.0, np.nan, 150.0],
        "away_moneyline": [-170.0, 100.0, np.nan, -170.0],
        "home_win": [1.0, 1.0, 1.0, 1.0],
        "underdog_side": ["home", "away", None, "home"],
        "underdog_tier": ["moderate", "moderate", None, "moderate"],
        "underdog_odds": [150.0, 100.0, np.nan, 150.0],
    })


def _run(calibration=None, skipped=None) -> TrainingRun:
    base = LogisticModel(weights=np.array([1.0]), feature_names=["a"])
    return TrainingRun(
        sport="nba",
        market="moneyline",
        seasons=[2023],
        ensemble=EnsembleModel("moneyline", base),
        calibration=calibration,
        calibration_skipped=skipped,
        run_id="r1",
    )


# ---------------------------------------------------------------------------
# 1) ROI arithmetic
# ---------------------------------------------------------------------------


def test_roi_one_win_one_loss_at_plus_150():
    """+150 win = +15, loss = -10, ROI over 20 staked = 25%."""
    stats = summarize([_wager(True, 150), _wager(False, 150)], "all")
    assert stats.profit == pytest.approx(5.0)
    assert stats.roi == pytest.approx(25.0)
    assert stats.win_rate == pytest.approx(0.5)


def test_six_hundred_bets_at_even_money():
    """600 bets, 55% winners at decimal 2.0: ROI 10%, ready to ship."""
    wagers = [_wager(i < 330, 100.0, prob=0.55) for i in range(600)]
    result = evaluate_wagers(wagers, BacktestConfig())

    assert result.total_bets == 600
    assert result.win_rate == pytest.approx(0.55)
    assert result.roi == pytest.approx(10.0)
    assert 0.0 <= result.ece <= 1.0
    assert result.ece == pytest.approx(0.0)
    assert result.readiness.ready
    assert result.readiness.failures == []

    again = evaluate_wagers(list(wagers), BacktestConfig())
    assert again.ece_bins == result.ece_bins


def test_pushes_refund_and_are_excluded():
    wagers = [_wager(True, 100), _wager(False, 100), _wager(False, 100, push=True)]
    result = evaluate_wagers(wagers)
    assert result.pushes == 1
    assert result.total_bets == 2
    assert result.total_staked == pytest.approx(20.0)
    assert result.roi == pytest.approx(0.0)


# ---------------------------------------------------------------------------
# 2) Readiness gate
# ---------------------------------------------------------------------------


def test_readiness_reports_each_failure_by_name():
    verdict = readiness(roi=2.0, ece=0.2, bets=100, config=BacktestConfig())
    assert not verdict.ready
    codes = [f["code"] for f in verdict.failures]
    assert codes == ["roi_below_minimum", "ece_above_maximum", "insufficient_sample"]
    assert "2.00%" in verdict.failures[0]["message"]


def test_readiness_single_failure():
    verdict = readiness(roi=12.0, ece=0.05, bets=499, config=BacktestConfig())
    assert [f["code"] for f in verdict.failures] == ["insufficient_sample"]

    assert readiness(roi=5.0, ece=0.10, bets=500, config=BacktestConfig()).ready


# ---------------------------------------------------------------------------
# 3) Buckets and breakdowns
# ---------------------------------------------------------------------------


def test_confidence_buckets():
    wagers = [_wager(True, prob=0.55), _wager(False, prob=0.58), _wager(True, prob=0.72), _wager(True, prob=1.0)]
    buckets = confidence_buckets(wagers, BacktestConfig().bucket_edges)
    labels = [b.label for b in buckets]
    assert labels == ["50%-60%", "70%-80%", "90%-100%"]
    assert buckets[0].bets == 2
    assert buckets[0].avg_prediction == pytest.approx(0.565)


@pytest.mark.parametrize(
    "line, bucket",
    [(0.0, "0-3"), (-3.0, "0-3"), (3.5, "3.5-7"), (-7.0, "3.5-7"), (-7.5, "7.5+"), (np.nan, None)],
)
def test_spread_size_bucket(line, bucket):
    assert spread_size_bucket(line) == bucket


@pytest.mark.parametrize(
    "odds, label",
    [(-250, "-200 or shorter"), (-110, "-199 to -100"), (100, "+100 to +149"),
     (175, "+150 to +199"), (240, "+200 to +249"), (299, "+250 to +299"), (450, "+300 and longer")],
)
def test_odds_range(odds, label):
    assert odds_range(odds) == label


# ---------------------------------------------------------------------------
# 4) Side selection and settlement
# ---------------------------------------------------------------------------


def test_select_pick_backs_model_side():
    row = {"home_moneyline": -150.0, "away_moneyline": 130.0}
    pick = select_pick("moneyline", row, 0.3)
    assert pick.side == "away"
    assert pick.prob == pytest.approx(0.7)
    assert pick.odds == 130.0
    assert pick.edge == pytest.approx(0.7 - (100 / 230) / (100 / 230 + 150 / 250))

    assert select_pick("moneyline", {"home_moneyline": np.nan, "away_moneyline": 130.0}, 0.7) is None


def test_settle_spread_and_total():
    row = {"home_cover": 0.0, "total_over": np.nan}
    spread_pick = select_pick("spread", {"home_spread_odds": -110.0, "away_spread_odds": -110.0}, 0.4)
    assert spread_pick.side == "away"
    assert settle("spread", row, spread_pick) == "win"

    total_pick = select_pick("total", {"over_odds": -110.0, "under_odds": -110.0}, 0.6)
    assert settle("total", row, total_pick) == "push"


def test_simulate_wagers_skips_unpriced_games_without_aborting():
    frame = _moneyline_frame()
    probs = np.array([0.8, 0.3, 0.9, np.nan])
    wagers, skipped = simulate_wagers("moneyline", frame, probs)

    assert [w.game_id for w in wagers] == ["g1", "g2"]
    assert skipped["no_odds"] == 1
    assert skipped["no_prediction"] == 1
    assert wagers[0].outcome == "win" and wagers[0].profit == pytest.approx(15.0)
    # g2: model backs away at +100, home won
    assert wagers[1].side == "away" and wagers[1].outcome == "loss"


def test_min_edge_and_odds_filters():
    frame = _moneyline_frame()
    probs = np.array([0.8, 0.3, 0.9, 0.8])

    wagers, skipped = simulate_wagers("moneyline", frame, probs, config=BacktestConfig(min_edge=0.30))
    assert [w.game_id for w in wagers] == ["g1", "g4"]
    assert skipped["filtered_edge"] == 1

    wagers, skipped = simulate_wagers("moneyline", frame, probs, config=BacktestConfig(min_odds=120))
    assert [w.game_id for w in wagers] == ["g1", "g4"]
    assert skipped["filtered_odds"] == 1


def test_underdog_market_backs_underdog_and_filters_tiers():
    frame = _moneyline_frame()
    frame["underdog_win"] = [1.0, 0.0, np.nan, 1.0]
    probs = np.array([0.45, 0.40, 0.5, 0.45])

    wagers, _ = simulate_wagers("underdog", frame, probs)
    assert [w.side for w in wagers] == ["home", "away", "home"]
    assert [w.outcome for w in wagers] == ["win", "loss", "win"]
    assert wagers[0].tier == "moderate"

    wagers, skipped = simulate_wagers("underdog", frame, probs, config=BacktestConfig(tiers=("extreme",)))
    assert wagers == []
    assert skipped["filtered_tier"] == 3


# ---------------------------------------------------------------------------
# 5) run_backtest
# ---------------------------------------------------------------------------


def test_run_backtest_reports_skipped_calibration():
    result = run_backtest(_moneyline_frame(), _run(skipped="Insufficient data for calibration"))

    assert not result.calibration_applied
    assert result.calibration_note == "Insufficient data for calibration"
    # g4 is not eligible, g3 has no odds
    assert result.total_bets == 2
    assert result.skipped["no_odds"] == 1
    assert result.run_id == "r1"
    assert not result.readiness.ready


def test_run_backtest_applies_calibration():
    curve = CalibrationCurve(x=(0.0, 1.0), y=(0.5, 0.5))
    result = run_backtest(_moneyline_frame(), _run(calibration=curve))
    assert result.calibration_applied
    # flat curve at 0.5 backs home everywhere
    assert all(b.avg_prediction == pytest.approx(0.5) for b in result.buckets)

    raw = run_backtest(_moneyline_frame(), _run(calibration=curve), calibrate=False)
    assert not raw.calibration_applied
    assert raw.calibration_note == "calibration disabled for this backtest"


def test_backtest_result_serializes():
    result = run_backtest(_moneyline_frame(), _run())
    payload = result.to_dict()
    assert payload["market"] == "moneyline"
    assert isinstance(payload["readiness"]["failures"], list)
    assert isinstance(payload["buckets"], list)
