"""
Storage for the synthesis pipeline.

Tables:
  - runs:           one synthesis request (source vs target organization), status and generation
  - research_notes: per-slot documents written by the note producer (read-only to synthesis)
  - artifacts:      append-only stage outputs; the newest row per (run, phase, type) wins
  - run_events:     countable diagnostics (malformed records, schema mismatches, rejections)

Storage: SQLite in WAL mode so readers see either nothing or a complete artifact row.
"""

import os as _os
from pathlib import Path

from .schema import init_schema
from .runs import Runs
from .notes import Notes
from .artifacts import Artifacts
from .events import RunEvents
from .compat import ArtifactCompat
from .errors import ArtifactCorruptionError, StoreError


def default_db_path() -> Path:
    root = Path(_os.environ.get("SYNTHESIS_ROOT", str(Path.home() / "synthesis")))
    return root / "db" / "synthesis.db"


class Store:
    def __init__(self, db_path: Path | str | None = None):
        self._path = Path(db_path) if db_path else default_db_path()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        import sqlite3
        self._conn = sqlite3.connect(str(self._path), timeout=10)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        init_schema(self._conn)

        self._runs = Runs(self._conn)
        self._notes = Notes(self._conn)
        self._artifacts = Artifacts(self._conn)
        self._events = RunEvents(self._conn)
        self._compat = ArtifactCompat(self._artifacts, self._events)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_dir(self) -> Path:
        return self._path.parent / "locks"

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def create_run(self, run_id: str, source_id: str, target_id: str | None = None) -> dict:
        return self._runs.create(run_id, source_id, target_id)

    def get_run(self, run_id: str) -> dict | None:
        return self._runs.get(run_id)

    def set_run_status(self, run_id: str, status: str, error: str | None = None, rerun: bool = False) -> dict:
        return self._runs.set_status(run_id, status, error, rerun)

    def bump_generation(self, run_id: str) -> int:
        return self._runs.bump_generation(run_id)

    # ------------------------------------------------------------------
    # Research notes
    # ------------------------------------------------------------------
    def put_note(self, run_id: str, slot_id: str, fields=None, citations=None, status: str = "completed", tokens_used: int = 0, duration_ms: int = 0) -> str:
        return self._notes.put(run_id, slot_id, fields, citations, status, tokens_used, duration_ms)

    def get_notes(self, run_id: str) -> list[dict]:
        return self._notes.for_run(run_id)

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------
    def save_artifact(self, run_id: str, phase: str, artifact_type: str, payload, generation: int = 0) -> int:
        return self._compat.save(run_id, phase, artifact_type, payload, generation)

    def load_artifact(self, run_id: str, phase: str, artifact_type: str, min_generation: int = 0) -> dict | None:
        return self._compat.load(run_id, phase, artifact_type, min_generation)

    def load_final_bundle(self, run_id: str, min_generation: int = 0) -> dict | None:
        return self._compat.load(run_id, "synthesis", "final_bundle", min_generation)

    def count_artifacts(self, run_id: str, phase: str | None = None, artifact_type: str | None = None) -> int:
        return self._artifacts.count(run_id, phase, artifact_type)

    def list_artifacts(self, run_id: str) -> list[dict]:
        return self._artifacts.list_for_run(run_id)

    def artifact_stats(self, run_id: str) -> dict:
        return self._artifacts.stats(run_id)

    def cleanup_artifacts(self, days: int = 30, now=None) -> int:
        return self._artifacts.cleanup(days, now)

    # ------------------------------------------------------------------
    # Run events
    # ------------------------------------------------------------------
    def record_event(self, run_id: str, kind: str, phase: str | None = None, detail: dict | None = None) -> str:
        return self._events.record(run_id, kind, phase, detail)

    def count_events(self, run_id: str, kind: str | None = None) -> int:
        return self._events.count(run_id, kind)

    def event_counts(self, run_id: str, generation: int | None = None) -> dict[str, int]:
        return self._events.counts(run_id, generation)

    def recent_events(self, run_id: str, limit: int = 50, kind: str | None = None) -> list[dict]:
        return self._events.recent(run_id, limit, kind)

    def close(self):
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
