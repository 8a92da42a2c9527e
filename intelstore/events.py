"""Run events: the countable diagnostic trail for each synthesis run."""
import json
import time
import sqlite3

from .common import utcnow, hash_id, db_retry


class RunEvents:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    @db_retry()
    def record(self, run_id: str, kind: str, phase: str | None = None, detail: dict | None = None) -> str:
        """Append an event tagged with the run's current generation (0 for unknown runs)."""
        eid = hash_id(f"{run_id}:{kind}:{time.time_ns()}")
        self._conn.execute(
            """INSERT INTO run_events (id, run_id, ts, kind, phase, detail, generation)
               VALUES (?,?,?,?,?,?, COALESCE((SELECT generation FROM runs WHERE id=?), 0))""",
            (eid, run_id, utcnow(), kind, phase, json.dumps(detail or {}, ensure_ascii=False, default=str), run_id),
        )
        self._conn.commit()
        return eid

    def count(self, run_id: str, kind: str | None = None) -> int:
        if kind:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM run_events WHERE run_id=? AND kind=?", (run_id, kind)
            ).fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM run_events WHERE run_id=?", (run_id,)
            ).fetchone()
        return int(row["n"])

    def counts(self, run_id: str, generation: int | None = None) -> dict[str, int]:
        if generation is None:
            rows = self._conn.execute(
                "SELECT kind, COUNT(*) AS n FROM run_events WHERE run_id=? GROUP BY kind", (run_id,)
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT kind, COUNT(*) AS n FROM run_events WHERE run_id=? AND generation=? GROUP BY kind",
                (run_id, generation),
            ).fetchall()
        return {r["kind"]: int(r["n"]) for r in rows}

    def recent(self, run_id: str, limit: int = 50, kind: str | None = None) -> list[dict]:
        if kind:
            rows = self._conn.execute(
                "SELECT * FROM run_events WHERE run_id=? AND kind=? ORDER BY ts DESC, rowid DESC LIMIT ?",
                (run_id, kind, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM run_events WHERE run_id=? ORDER BY ts DESC, rowid DESC LIMIT ?",
                (run_id, limit),
            ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            try:
                d["detail"] = json.loads(d.get("detail") or "{}")
            except json.JSONDecodeError:
                d["detail"] = {}
            out.append(d)
        return out
