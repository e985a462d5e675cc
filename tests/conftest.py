import math

import numpy as np
import pandas as pd
import pytest


def _prob_to_american(p: float) -> float:
    p = min(max(p, 0.02), 0.98)
    if p >= 0.5:
        return float(round(-100.0 * p / (1.0 - p)))
    return float(round(100.0 * (1.0 - p) / p))


def make_synthetic_games(
    seasons=(2022, 2023),
    n_teams: int = 8,
    rounds: int = 14,
    seed: int = 7,
    unsettled_rounds: int = 0,
) -> pd.DataFrame:
    """
    Deterministic round-robin-ish league with priced markets.

    Every team plays once per weekly round. Scores follow latent team
    strength plus noise, and moneyline/spread/total prices follow the same
    strength with a small vig, so the market is informative but not exact.
    The last `unsettled_rounds` rounds of the final season have no scores.
    """
    rng = np.random.default_rng(seed)
    teams = [f"T{i:02d}" for i in range(n_teams)]
    rows = []

    for season in seasons:
        strength = rng.normal(0.0, 6.0, n_teams)
        start = pd.Timestamp(f"{season}-09-01")
        for r in range(rounds):
            day = start + pd.Timedelta(days=7 * r)
            perm = rng.permutation(n_teams)
            for k in range(0, n_teams - 1, 2):
                h, a = int(perm[k]), int(perm[k + 1])
                expected = strength[h] - strength[a] + 2.5
                home_score = max(0, int(round(22 + expected / 2 + rng.normal(0, 7))))
                away_score = max(0, int(round(22 - expected / 2 + rng.normal(0, 7))))

                p_home = 0.5 * (1.0 + math.erf(expected / 13.5 / math.sqrt(2.0)))
                unsettled = season == seasons[-1] and r >= rounds - unsettled_rounds

                rows.append({
                    "game_id": f"{season}_{r:02d}_{teams[h]}_{teams[a]}",
                    "season": season,
                    "gameday": day,
                    "home_team": teams[h],
                    "away_team": teams[a],
                    "home_score": np.nan if unsettled else home_score,
                    "away_score": np.nan if unsettled else away_score,
                    "home_moneyline": _prob_to_american(p_home + 0.02),
                    "away_moneyline": _prob_to_american(1.0 - p_home + 0.02),
                    "spread_line": -round(expected * 2) / 2,
                    "home_spread_odds": -110.0,
                    "away_spread_odds": -110.0,
                    "total_line": 44.5,
                    "over_odds": -110.0,
                    "under_odds": -110.0,
                })

    return pd.DataFrame(rows)


@pytest.fixture
def make_games():
    """Factory fixture for synthetic leagues."""
    return make_synthetic_games


@pytest.fixture
def synthetic_games() -> pd.DataFrame:
    return make_synthetic_games()


@pytest.fixture
def mock_games_data() -> pd.DataFrame:
    """Small hand-written schedule (no network)."""
    return pd.DataFrame(
        {
            "game_id": ["2023_01_KC_DET", "2023_01_BUF_NYJ", "2023_02_DET_KC"],
            "season": [2023, 2023, 2023],
            "gameday": pd.to_datetime(["2023-09-07", "2023-09-10", "2023-09-17"]),
            "home_team": ["KC", "NYJ", "DET"],
            "away_team": ["DET", "BUF", "KC"],
            "home_score": [20, 22, 24],
            "away_score": [21, 16, 24],
            "spread_line": [-6.5, 2.5, -1.0],
            "total_line": [54.5, 45.5, 48.0],
            "home_moneyline": [-300, 120, -115],
            "away_moneyline": [250, -140, -105],
            "home_spread_odds": [-110, -110, -110],
            "away_spread_odds": [-110, -110, -110],
            "over_odds": [-110, -110, -110],
            "under_odds": [-110, -110, -110],
        }
    )
