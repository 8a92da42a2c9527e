"""Unit tests for intelstore/schema.py: init_schema, migrations."""
import sqlite3

from intelstore.schema import init_schema

EXPECTED_TABLES = ["runs", "research_notes", "artifacts", "run_events"]


def _conn(tmp_path):
    conn = sqlite3.connect(str(tmp_path / "s.db"))
    conn.row_factory = sqlite3.Row
    return conn


def test_init_schema_creates_all_tables(tmp_path):
    """init_schema(conn) on fresh DB: all tables present."""
    conn = _conn(tmp_path)
    init_schema(conn)
    for name in EXPECTED_TABLES:
        row = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)).fetchone()
        assert row is not None, f"Table {name} missing"
    conn.close()


def test_init_schema_idempotent(tmp_path):
    """init_schema twice: no error, generation columns present once."""
    conn = _conn(tmp_path)
    init_schema(conn)
    init_schema(conn)
    cols = [row[1] for row in conn.execute("PRAGMA table_info(artifacts)").fetchall()]
    assert cols.count("generation") == 1
    conn.close()


def test_migrate_adds_generation_to_old_tables(tmp_path):
    """Tables created before generation existed get the column with default 0."""
    conn = _conn(tmp_path)
    conn.executescript("""
        CREATE TABLE runs (id TEXT PRIMARY KEY, source_id TEXT NOT NULL, target_id TEXT,
            status TEXT NOT NULL DEFAULT 'pending', error TEXT, created_at TEXT NOT NULL,
            started_at TEXT, completed_at TEXT, updated_at TEXT NOT NULL);
        CREATE TABLE artifacts (id INTEGER PRIMARY KEY AUTOINCREMENT, run_id TEXT NOT NULL,
            phase TEXT NOT NULL, artifact_type TEXT NOT NULL, payload TEXT NOT NULL, created_at TEXT NOT NULL);
        INSERT INTO artifacts (run_id, phase, artifact_type, payload, created_at)
            VALUES ('r', 'synthesis', 'synthesis_bundle', '{}', '2024-01-01T00:00:00Z');
    """)
    init_schema(conn)
    row = conn.execute("SELECT generation FROM artifacts").fetchone()
    assert row["generation"] == 0
    cols = {row[1] for row in conn.execute("PRAGMA table_info(runs)").fetchall()}
    assert "generation" in cols
    conn.close()


def test_migrate_adds_generation_to_old_events(tmp_path):
    """An events table from before generations gets the column; old rows read as generation 0."""
    conn = _conn(tmp_path)
    conn.executescript("""
        CREATE TABLE run_events (id TEXT PRIMARY KEY, run_id TEXT NOT NULL, ts TEXT NOT NULL,
            kind TEXT NOT NULL, phase TEXT, detail TEXT DEFAULT '{}');
        INSERT INTO run_events (id, run_id, ts, kind) VALUES ('e1', 'r', '2024-01-01T00:00:00Z', 'schema_mismatch');
    """)
    init_schema(conn)
    init_schema(conn)
    assert conn.execute("SELECT generation FROM run_events").fetchone()["generation"] == 0
    cols = [row[1] for row in conn.execute("PRAGMA table_info(run_events)").fetchall()]
    assert cols.count("generation") == 1
    conn.close()
