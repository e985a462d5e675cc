"""
Exception hierarchy for the modeling and backtesting pipeline.

InsufficientDataError and MalformedOddsError are non-fatal: batch callers
catch them, log a warning, and continue with what remains.
MissingArtifactError is fatal to the requesting operation only.
"""

from __future__ import annotations

from typing import Sequence


class SportlineError(Exception):
    """Base class for all pipeline errors."""


class InsufficientDataError(SportlineError):
    """A stage received fewer examples than its minimum."""

    def __init__(self, stage: str, required: int, available: int):
        self.stage = stage
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {stage}: need at least {required} examples, "
            f"got {available}"
        )


class MissingArtifactError(SportlineError):
    """No trained model exists for the requested sport and market."""

    def __init__(self, sport: str, market: str, run_id: str | None = None):
        self.sport = sport
        self.market = market
        self.run_id = run_id
        target = f"run '{run_id}'" if run_id else "any trained run"
        super().__init__(
            f"No artifact found for {sport}/{market} ({target}). Run train first."
        )


class MalformedOddsError(SportlineError):
    """An odds record lacks a side required to price a market."""

    def __init__(self, market: str, game_id: str | None, missing: Sequence[str]):
        self.market = market
        self.game_id = game_id
        self.missing = list(missing)
        super().__init__(
            f"Malformed {market} odds for game {game_id}: missing {self.missing}"
        )
