"""Research notes: per-slot documents written by the note producer, read-only to synthesis."""
import json
import time
import sqlite3

from .common import utcnow, hash_id, db_retry


def _raw(value) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class Notes:
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    @db_retry()
    def put(
        self,
        run_id: str,
        slot_id: str,
        fields=None,
        citations=None,
        status: str = "completed",
        tokens_used: int = 0,
        duration_ms: int = 0,
    ) -> str:
        """Store one note. fields/citations are kept as raw text exactly as given (strings pass through)."""
        nid = hash_id(f"{run_id}:{slot_id}:{time.time_ns()}")
        self._conn.execute(
            "INSERT OR REPLACE INTO research_notes (id, run_id, slot_id, status, fields_json, citations_json, tokens_used, duration_ms, created_at) "
            "VALUES (?,?,?,?,?,?,?,?,?)",
            (nid, run_id, slot_id, status, _raw(fields), _raw(citations), int(tokens_used or 0), int(duration_ms or 0), utcnow()),
        )
        self._conn.commit()
        return nid

    def for_run(self, run_id: str) -> list[dict]:
        rows = self._conn.execute(
            "SELECT slot_id, status, fields_json, citations_json, tokens_used, duration_ms FROM research_notes "
            "WHERE run_id=? ORDER BY created_at, rowid",
            (run_id,),
        ).fetchall()
        return [
            {
                "slot_id": r["slot_id"],
                "status": r["status"],
                "fields": r["fields_json"],
                "citations": r["citations_json"],
                "tokens_used": r["tokens_used"] or 0,
                "duration_ms": r["duration_ms"] or 0,
            }
            for r in rows
        ]
