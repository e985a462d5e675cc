from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Iterable, List, Optional

import pandas as pd


@dataclass(frozen=True)
class GameRecord:
    """
    One game as stored by ingestion.

    Scores are None until the game is settled. Market fields are None when
    no price was recorded; spread_line is from the home side (negative means
    the home team is favored).
    """

    game_id: str
    season: int
    gameday: date
    home_team: str
    away_team: str
    home_score: Optional[float] = None
    away_score: Optional[float] = None
    home_moneyline: Optional[float] = None
    away_moneyline: Optional[float] = None
    spread_line: Optional[float] = None
    home_spread_odds: Optional[float] = None
    away_spread_odds: Optional[float] = None
    total_line: Optional[float] = None
    over_odds: Optional[float] = None
    under_odds: Optional[float] = None

    def __post_init__(self):
        if self.home_team == self.away_team:
            raise ValueError(f"Game {self.game_id} has the same team on both sides")
        if (self.home_score is None) != (self.away_score is None):
            raise ValueError(f"Game {self.game_id} has only one final score")

    @property
    def is_settled(self) -> bool:
        return self.home_score is not None and self.away_score is not None


def records_to_frame(records: Iterable[GameRecord]) -> pd.DataFrame:
    """Raw games frame suitable for build_base_dataset."""
    columns = [f.name for f in fields(GameRecord)]
    df = pd.DataFrame([asdict(r) for r in records], columns=columns)
    df["gameday"] = pd.to_datetime(df["gameday"])
    return df


def frame_to_records(df: pd.DataFrame) -> List[GameRecord]:
    names = [f.name for f in fields(GameRecord)]
    out = []
    for row in df.to_dict("records"):
        values = {n: row.get(n) for n in names}
        for key, value in values.items():
            if not isinstance(value, str) and pd.isna(value):
                values[key] = None
        values["gameday"] = pd.Timestamp(values["gameday"]).date()
        values["season"] = int(values["season"])
        values["game_id"] = str(values["game_id"])
        out.append(GameRecord(**values))
    return out
