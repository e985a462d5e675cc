"""
Local artifact store for training runs and backtest results.

Layout::

    <root>/<sport>/<market>/<run_id>/run.json
    <root>/<sport>/<market>/<run_id>/backtest.json

Ordering is by the `created_at` timestamp embedded in run.json (then run id),
never by directory name. A run directory is assembled under a hidden temporary
name and renamed into place once complete, so readers never observe a
partially written run.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import structlog

from sportline.config import MODEL_CONFIG
from sportline.exceptions import MissingArtifactError

logger = structlog.get_logger(__name__)

RUN_FILE = "run.json"
BACKTEST_FILE = "backtest.json"
_TMP_PREFIX = ".tmp-"


def new_run_id(created_at: datetime) -> str:
    return f"{created_at.strftime('%Y%m%dT%H%M%S%fZ')}-{uuid.uuid4().hex[:8]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _write_json_atomic(path: Path, payload: dict) -> None:
    """Write to a sibling temp file, then os.replace onto `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=path.parent, suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True, default=str)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class LocalArtifactStore:
    """Filesystem key space addressed by (sport, market, run_id)."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or MODEL_CONFIG.models_dir / MODEL_CONFIG.runs_dirname)

    def _market_dir(self, sport: str, market: str) -> Path:
        return self.root / sport.lower() / market

    def _run_dir(self, sport: str, market: str, run_id: str) -> Path:
        return self._market_dir(sport, market) / run_id

    # ------------------------------------------------------------------ #
    # Runs
    # ------------------------------------------------------------------ #
    def save_run(self, sport: str, market: str, payload: dict) -> str:
        """
        Persist one training run and return its run id.

        `payload` may carry `created_at` (ISO string) and `run_id`; both are
        filled in when absent.
        """
        payload = dict(payload)
        created_at = payload.get("created_at") or utc_now().isoformat()
        payload["created_at"] = created_at
        run_id = payload.get("run_id") or new_run_id(datetime.fromisoformat(created_at))
        payload["run_id"] = run_id

        market_dir = self._market_dir(sport, market)
        market_dir.mkdir(parents=True, exist_ok=True)
        final_dir = market_dir / run_id
        if final_dir.exists():
            raise FileExistsError(f"Run already exists: {final_dir}")

        tmp_dir = Path(tempfile.mkdtemp(prefix=_TMP_PREFIX, dir=market_dir))
        try:
            with open(tmp_dir / RUN_FILE, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True, default=str)
            os.replace(tmp_dir, final_dir)
        except BaseException:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise

        logger.info("run_saved", sport=sport, market=market, run_id=run_id)
        return run_id

    def _read_run(self, run_dir: Path) -> Optional[dict]:
        path = run_dir / RUN_FILE
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)

    def list_runs(self, sport: str, market: str) -> List[Tuple[str, str]]:
        """(created_at, run_id) pairs, oldest first."""
        market_dir = self._market_dir(sport, market)
        if not market_dir.exists():
            return []
        entries = []
        for child in market_dir.iterdir():
            if not child.is_dir() or child.name.startswith("."):
                continue
            payload = self._read_run(child)
            if payload is None:
                continue
            created = datetime.fromisoformat(payload["created_at"])
            entries.append((created, payload.get("run_id", child.name)))
        entries.sort()
        return [(created.isoformat(), run_id) for created, run_id in entries]

    def load_run(self, sport: str, market: str, run_id: str) -> dict:
        payload = self._read_run(self._run_dir(sport, market, run_id))
        if payload is None:
            raise MissingArtifactError(sport, market, run_id)
        return payload

    def latest_run(self, sport: str, market: str) -> dict:
        """Most recently created run; MissingArtifactError when none exists."""
        runs = self.list_runs(sport, market)
        if not runs:
            raise MissingArtifactError(sport, market)
        return self.load_run(sport, market, runs[-1][1])

    # ------------------------------------------------------------------ #
    # Backtests
    # ------------------------------------------------------------------ #
    def save_backtest(self, sport: str, market: str, run_id: str, payload: dict) -> Path:
        run_dir = self._run_dir(sport, market, run_id)
        if not (run_dir / RUN_FILE).exists():
            raise MissingArtifactError(sport, market, run_id)
        path = run_dir / BACKTEST_FILE
        _write_json_atomic(path, payload)
        logger.info("backtest_saved", sport=sport, market=market, run_id=run_id)
        return path

    def load_backtest(self, sport: str, market: str, run_id: str) -> Optional[dict]:
        path = self._run_dir(sport, market, run_id) / BACKTEST_FILE
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)

    def best_backtest(self, sport: str, market: str) -> Optional[dict]:
        """Saved backtest with the highest ROI, ties broken by lower ECE."""
        best = None
        for _, run_id in self.list_runs(sport, market):
            result = self.load_backtest(sport, market, run_id)
            if result is None:
                continue
            key = (result["roi"], -result["ece"])
            if best is None or key > best[0]:
                best = (key, result)
        return None if best is None else best[1]
