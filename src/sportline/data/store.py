"""
Read-only access to historical game records.

The pipeline consumes games through the HistoricalStore protocol and never
writes back. Ingestion from a remote provider is a separate concern; the
store only reads what has already been materialized.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

import pandas as pd

from sportline.config import DATA_CONFIG
from sportline.data.preprocessing.base_dataset import (
    BaseDatasetConfig,
    build_base_dataset,
    load_base_dataset,
)


class HistoricalStore(Protocol):
    def load_games(self, sport: str, seasons: Iterable[int]) -> pd.DataFrame:
        """Return the base dataset for `sport` restricted to `seasons`."""
        ...


class ParquetHistoricalStore:
    """Reads `{sport}_games.parquet` files from the processed data directory."""

    def __init__(self, processed_dir: Optional[Path] = None):
        self.processed_dir = Path(processed_dir or DATA_CONFIG.processed_data_dir)

    def path_for(self, sport: str) -> Path:
        return self.processed_dir / DATA_CONFIG.games_filename.format(sport=sport.lower())

    def load_games(self, sport: str, seasons: Iterable[int]) -> pd.DataFrame:
        return load_base_dataset(self.path_for(sport), seasons)


class FrameHistoricalStore:
    """In-memory store over raw game frames keyed by sport."""

    def __init__(self, frames: Dict[str, pd.DataFrame]):
        self._frames = {sport.lower(): df for sport, df in frames.items()}

    def load_games(self, sport: str, seasons: Iterable[int]) -> pd.DataFrame:
        key = sport.lower()
        if key not in self._frames:
            raise KeyError(f"No games registered for sport '{sport}'")
        return build_base_dataset(
            self._frames[key], BaseDatasetConfig(seasons=sorted(int(s) for s in seasons))
        )
