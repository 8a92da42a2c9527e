"""Artifacts: append-only stage outputs. The newest row of a (run, phase, type) is authoritative."""
import sqlite3
from datetime import datetime, timedelta, timezone

from .common import utcnow, dumps, parse_ts, db_retry


class Artifacts:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    @db_retry()
    def save(self, run_id: str, phase: str, artifact_type: str, payload, generation: int = 0) -> int:
        """Insert a new artifact row and return its id. Strings are stored as already-serialized payloads."""
        text = payload if isinstance(payload, str) else dumps(payload)
        cur = self._conn.execute(
            "INSERT INTO artifacts (run_id, phase, artifact_type, payload, generation, created_at) VALUES (?,?,?,?,?,?)",
            (run_id, phase, artifact_type, text, int(generation), utcnow()),
        )
        self._conn.commit()
        return int(cur.lastrowid)

    def rows(self, run_id: str, phases, types, min_generation: int = 0) -> list[dict]:
        """All rows matching any of the phase/type names, newest first."""
        phases = list(phases)
        types = list(types)
        if not phases or not types:
            return []
        sql = (
            "SELECT * FROM artifacts WHERE run_id=? "
            f"AND phase IN ({','.join('?' * len(phases))}) "
            f"AND artifact_type IN ({','.join('?' * len(types))}) "
            "AND generation >= ? ORDER BY id DESC"
        )
        rows = self._conn.execute(sql, [run_id, *phases, *types, int(min_generation)]).fetchall()
        return [dict(r) for r in rows]

    def count(self, run_id: str, phase: str | None = None, artifact_type: str | None = None) -> int:
        sql = "SELECT COUNT(*) AS n FROM artifacts WHERE run_id=?"
        params: list = [run_id]
        if phase:
            sql += " AND phase=?"
            params.append(phase)
        if artifact_type:
            sql += " AND artifact_type=?"
            params.append(artifact_type)
        return int(self._conn.execute(sql, params).fetchone()["n"])

    def list_for_run(self, run_id: str) -> list[dict]:
        rows = self._conn.execute(
            "SELECT id, run_id, phase, artifact_type, generation, created_at, LENGTH(payload) AS size "
            "FROM artifacts WHERE run_id=? ORDER BY id",
            (run_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def stats(self, run_id: str) -> dict:
        """Counts per phase and type, total payload size and the time span covered."""
        items = self.list_for_run(run_id)
        by_phase: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for a in items:
            by_phase[a["phase"]] = by_phase.get(a["phase"], 0) + 1
            by_type[a["artifact_type"]] = by_type.get(a["artifact_type"], 0) + 1
        first = items[0]["created_at"] if items else None
        last = items[-1]["created_at"] if items else None
        span_s = 0.0
        if first and last:
            a, b = parse_ts(first), parse_ts(last)
            if a and b:
                span_s = round((b - a).total_seconds(), 1)
        return {
            "total_artifacts": len(items),
            "by_phase": by_phase,
            "by_type": by_type,
            "total_size": sum(int(a["size"] or 0) for a in items),
            "first_created_at": first,
            "last_created_at": last,
            "time_span_s": span_s,
        }

    @db_retry()
    def cleanup(self, days: int = 30, now: datetime | None = None) -> int:
        """Delete artifacts older than `days`, keeping the newest row of every (run, phase, type)."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")
        cur = self._conn.execute(
            "DELETE FROM artifacts WHERE created_at < ? AND id NOT IN "
            "(SELECT MAX(id) FROM artifacts GROUP BY run_id, phase, artifact_type)",
            (cutoff,),
        )
        self._conn.commit()
        return cur.rowcount
