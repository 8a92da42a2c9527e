"""Runs domain: one synthesis request comparing a source and a target organization."""
import sqlite3

from .common import utcnow, db_retry

STATUSES = ("pending", "running", "completed", "failed")

# Re-entering running from a terminal status is only allowed as an explicit re-run.
TRANSITIONS = {
    "pending": {"running", "failed"},
    "running": {"completed", "failed"},
    "completed": set(),
    "failed": set(),
}
RERUN_FROM = {"completed", "failed"}


class Runs:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    @db_retry()
    def create(self, run_id: str, source_id: str, target_id: str | None = None) -> dict:
        now = utcnow()
        self._conn.execute(
            "INSERT OR IGNORE INTO runs (id, source_id, target_id, status, created_at, updated_at) VALUES (?,?,?,?,?,?)",
            (run_id, source_id, target_id, "pending", now, now),
        )
        self._conn.commit()
        return self.get(run_id)

    def get(self, run_id: str) -> dict | None:
        row = self._conn.execute("SELECT * FROM runs WHERE id=?", (run_id,)).fetchone()
        return dict(row) if row else None

    @db_retry()
    def set_status(self, run_id: str, status: str, error: str | None = None, rerun: bool = False) -> dict:
        if status not in STATUSES:
            raise ValueError(f"Unknown run status: {status}")
        run = self.get(run_id)
        if run is None:
            raise ValueError(f"Unknown run: {run_id}")
        current = run["status"]
        allowed = TRANSITIONS.get(current, set())
        if status != current and status not in allowed:
            if not (rerun and current in RERUN_FROM and status == "running"):
                raise ValueError(f"Invalid run transition {current} -> {status} for {run_id}")
        now = utcnow()
        sets = ["status=?", "updated_at=?"]
        params: list = [status, now]
        if status == "running":
            sets += ["started_at=?", "completed_at=NULL", "error=NULL"]
            params.append(now)
        elif status in ("completed", "failed"):
            sets += ["completed_at=?", "error=?"]
            params += [now, error]
        params.append(run_id)
        self._conn.execute(f"UPDATE runs SET {', '.join(sets)} WHERE id=?", params)
        self._conn.commit()
        return self.get(run_id)

    @db_retry()
    def bump_generation(self, run_id: str) -> int:
        self._conn.execute(
            "UPDATE runs SET generation = generation + 1, updated_at=? WHERE id=?",
            (utcnow(), run_id),
        )
        self._conn.commit()
        row = self._conn.execute("SELECT generation FROM runs WHERE id=?", (run_id,)).fetchone()
        if row is None:
            raise ValueError(f"Unknown run: {run_id}")
        return int(row["generation"])
