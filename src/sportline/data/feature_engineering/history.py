"""
Per-team game history with strict as-of-date cutoffs.

HistoryIndex is built once from the base dataset and answers "the last N
settled games of team T strictly before date D". Every rolling feature is
computed from a TeamHistory returned by it, so no feature can see the game
it describes or anything later.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from sportline.data.odds import no_vig_prob

# Recency weights for underdog rolling stats, oldest game first.
RECENCY_WEIGHTS_5: Tuple[float, ...] = (0.08, 0.12, 0.2, 0.25, 0.35)
RECENCY_WEIGHTS_10: Tuple[float, ...] = (
    0.03, 0.04, 0.05, 0.06, 0.07, 0.09, 0.11, 0.14, 0.18, 0.23,
)

_ATS_PUSH = 0.5


@dataclass(frozen=True)
class TeamGame:
    """One settled game from a single team's point of view."""

    game_id: str
    gameday: pd.Timestamp
    season: int
    opponent: str
    is_home: bool
    points_for: float
    points_against: float
    spread: Optional[float] = None  # team perspective, negative = favored
    win_prob: Optional[float] = None  # vig-free moneyline probability

    @property
    def margin(self) -> float:
        return self.points_for - self.points_against

    @property
    def won(self) -> bool:
        return self.points_for > self.points_against

    @property
    def combined(self) -> float:
        return self.points_for + self.points_against

    @property
    def ats_margin(self) -> Optional[float]:
        if self.spread is None:
            return None
        return self.margin + self.spread

    @property
    def was_underdog(self) -> bool:
        return self.win_prob is not None and self.win_prob < 0.5


def recency_weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """
    Weighted mean aligning the newest value with the newest weight.

    `values` and `weights` are both ordered oldest first. With fewer values
    than weights, the trailing (most recent) weights are used.
    """
    if len(values) == 0:
        return 0.0
    w = np.asarray(weights[-len(values):], dtype=float)
    v = np.asarray(values[-len(w):], dtype=float)
    return float(np.dot(v, w) / w.sum())


@dataclass(frozen=True)
class TeamHistory:
    """
    A team's most recent settled games before a cutoff, oldest first.

    Aggregates return neutral defaults on an empty history: 0.5 for rates,
    0.0 for margins and point averages.
    """

    team: str
    cutoff: pd.Timestamp
    games: Tuple[TeamGame, ...]

    def __len__(self) -> int:
        return len(self.games)

    def last(self, n: int) -> "TeamHistory":
        return TeamHistory(self.team, self.cutoff, self.games[-n:] if n > 0 else ())

    def _mean(self, values: List[float], default: float) -> float:
        return float(np.mean(values)) if values else default

    def win_rate(self) -> float:
        return self._mean([1.0 if g.won else 0.0 for g in self.games], 0.5)

    def avg_margin(self) -> float:
        return self._mean([g.margin for g in self.games], 0.0)

    def avg_points_for(self) -> float:
        return self._mean([g.points_for for g in self.games], 0.0)

    def avg_points_against(self) -> float:
        return self._mean([g.points_against for g in self.games], 0.0)

    def pace(self) -> float:
        """Average combined score, a tempo proxy."""
        return self._mean([g.combined for g in self.games], 0.0)

    def ats_record(self) -> float:
        """Cover rate over games with a line; pushes are ignored."""
        graded = [
            g.ats_margin for g in self.games
            if g.ats_margin is not None and abs(g.ats_margin) >= _ATS_PUSH
        ]
        return self._mean([1.0 if m > 0 else 0.0 for m in graded], 0.5)

    def ats_margin(self) -> float:
        return self._mean(
            [g.ats_margin for g in self.games if g.ats_margin is not None], 0.0
        )

    def underdog_games(self) -> Tuple[TeamGame, ...]:
        return tuple(g for g in self.games if g.was_underdog)


class HistoryIndex:
    """
    Chronological per-team index over the settled games of a base dataset.

    Parameters
    ----------
    games:
        Base dataset (see build_base_dataset). Unsettled rows are ignored.
    season_scoped:
        If True, histories reset at each season boundary.
    """

    def __init__(self, games: pd.DataFrame, season_scoped: bool = True):
        self.season_scoped = season_scoped
        self._games: Dict[Hashable, List[TeamGame]] = {}
        self._dates: Dict[Hashable, List[pd.Timestamp]] = {}

        settled = games[games["home_score"].notna() & games["away_score"].notna()]
        settled = settled.sort_values(["gameday", "game_id"])

        for row in settled.itertuples(index=False):
            home_prob, away_prob = _moneyline_pair(row.home_moneyline, row.away_moneyline)
            spread = None if pd.isna(row.spread_line) else float(row.spread_line)
            day = pd.Timestamp(row.gameday).normalize()

            self._append(TeamGame(
                game_id=str(row.game_id),
                gameday=day,
                season=int(row.season),
                opponent=row.away_team,
                is_home=True,
                points_for=float(row.home_score),
                points_against=float(row.away_score),
                spread=spread,
                win_prob=home_prob,
            ), row.home_team)
            self._append(TeamGame(
                game_id=str(row.game_id),
                gameday=day,
                season=int(row.season),
                opponent=row.home_team,
                is_home=False,
                points_for=float(row.away_score),
                points_against=float(row.home_score),
                spread=None if spread is None else -spread,
                win_prob=away_prob,
            ), row.away_team)

    def _key(self, team: str, season: int) -> Hashable:
        return (team, season) if self.season_scoped else team

    def _append(self, game: TeamGame, team: str) -> None:
        key = self._key(team, game.season)
        self._games.setdefault(key, []).append(game)
        self._dates.setdefault(key, []).append(game.gameday)

    def history(
        self,
        team: str,
        season: int,
        cutoff: pd.Timestamp,
        window: Optional[int] = None,
    ) -> TeamHistory:
        """
        Settled games of `team` played on a calendar day before `cutoff`.

        If `window` is given, only the most recent `window` games are kept.
        """
        key = self._key(team, season)
        cutoff = pd.Timestamp(cutoff).normalize()
        games = self._games.get(key, [])
        end = bisect_left(self._dates.get(key, []), cutoff)
        start = 0 if window is None else max(0, end - window)
        return TeamHistory(team, cutoff, tuple(games[start:end]))

    def count_before(self, team: str, season: int, cutoff: pd.Timestamp) -> int:
        return bisect_left(
            self._dates.get(self._key(team, season), []), pd.Timestamp(cutoff).normalize()
        )


def _moneyline_pair(home_ml, away_ml) -> Tuple[Optional[float], Optional[float]]:
    home = no_vig_prob(home_ml, away_ml)
    if home is None:
        return None, None
    return home, 1.0 - home
