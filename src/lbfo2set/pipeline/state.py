"""Snapshot and run record persistence.

A switch snapshot is written before its first destructive stage, so an
operator can rebuild by hand when switch creation fails. Files:

    {state_dir}/snapshots/{switch_name}.json
    {state_dir}/runs/{run_id}.json
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from lbfo2set.pipeline.snapshot import SwitchSnapshot
from lbfo2set.utils.logging import get_logger

logger = get_logger(__name__)


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "switch"


class SnapshotStore:
    """Persists SwitchSnapshots as JSON files."""

    def __init__(self, state_dir: Path | str):
        self.snapshot_dir = Path(state_dir) / "snapshots"
        self.run_dir = Path(state_dir) / "runs"

    def _snapshot_path(self, switch_name: str) -> Path:
        return self.snapshot_dir / f"{_safe_name(switch_name)}.json"

    def save(self, snapshot: SwitchSnapshot) -> Path:
        """Save a snapshot, replacing any earlier one for the same switch."""
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        path = self._snapshot_path(snapshot.switch_name)
        data = {"captured_at": datetime.now().isoformat(), "snapshot": snapshot.to_dict()}
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        logger.info(f"Snapshot of '{snapshot.switch_name}' saved to {path}")
        return path

    def load(self, switch_name: str) -> Optional[SwitchSnapshot]:
        path = self._snapshot_path(switch_name)
        if not path.exists():
            return None
        with open(path) as f:
            data = json.load(f)
        return SwitchSnapshot.from_dict(data["snapshot"])

    def list_all(self) -> list[tuple[str, SwitchSnapshot]]:
        """List saved snapshots as (captured_at, snapshot), newest first."""
        entries = []
        if not self.snapshot_dir.exists():
            return entries
        for path in self.snapshot_dir.glob("*.json"):
            try:
                with open(path) as f:
                    data = json.load(f)
                entries.append((data.get("captured_at", ""), SwitchSnapshot.from_dict(data["snapshot"])))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Ignoring unreadable snapshot {path.name}: {e}")
        return sorted(entries, key=lambda e: e[0], reverse=True)

    def delete(self, switch_name: str) -> None:
        path = self._snapshot_path(switch_name)
        if path.exists():
            path.unlink()

    def save_run(self, run_id: str, data: dict) -> Path:
        """Write the structured result of a run."""
        self.run_dir.mkdir(parents=True, exist_ok=True)
        path = self.run_dir / f"{run_id}.json"
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        return path
