"""Schema creation and migrations for the synthesis DB."""
import sqlite3


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS runs (
        id           TEXT PRIMARY KEY,
        source_id    TEXT NOT NULL,
        target_id    TEXT,
        status       TEXT NOT NULL DEFAULT 'pending',
        error        TEXT,
        created_at   TEXT NOT NULL,
        started_at   TEXT,
        completed_at TEXT,
        updated_at   TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS research_notes (
        id             TEXT PRIMARY KEY,
        run_id         TEXT NOT NULL,
        slot_id        TEXT NOT NULL,
        status         TEXT NOT NULL DEFAULT 'completed',
        fields_json    TEXT,
        citations_json TEXT,
        tokens_used    INTEGER DEFAULT 0,
        duration_ms    INTEGER DEFAULT 0,
        created_at     TEXT NOT NULL,
        UNIQUE(run_id, slot_id)
    );

    CREATE TABLE IF NOT EXISTS artifacts (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id        TEXT NOT NULL,
        phase         TEXT NOT NULL,
        artifact_type TEXT NOT NULL,
        payload       TEXT NOT NULL,
        created_at    TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS run_events (
        id      TEXT PRIMARY KEY,
        run_id  TEXT NOT NULL,
        ts      TEXT NOT NULL,
        kind    TEXT NOT NULL,
        phase   TEXT,
        detail  TEXT DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_notes_run ON research_notes(run_id);
    CREATE INDEX IF NOT EXISTS idx_artifacts_lookup ON artifacts(run_id, phase, artifact_type, id DESC);
    CREATE INDEX IF NOT EXISTS idx_artifacts_created ON artifacts(created_at);
    CREATE INDEX IF NOT EXISTS idx_run_events_run ON run_events(run_id, kind);
"""


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    migrate_runs_generation(conn)
    migrate_artifacts_generation(conn)
    migrate_run_events_generation(conn)


def migrate_runs_generation(conn: sqlite3.Connection) -> None:
    """Add generation to runs (force rebuild counter) if missing."""
    cur = conn.execute("PRAGMA table_info(runs)")
    existing = {row[1] for row in cur.fetchall()}
    if "generation" not in existing:
        conn.execute("ALTER TABLE runs ADD COLUMN generation INTEGER NOT NULL DEFAULT 0")
    conn.commit()


def migrate_artifacts_generation(conn: sqlite3.Connection) -> None:
    """Add generation to artifacts; rows written before it existed belong to generation 0."""
    cur = conn.execute("PRAGMA table_info(artifacts)")
    existing = {row[1] for row in cur.fetchall()}
    if "generation" not in existing:
        conn.execute("ALTER TABLE artifacts ADD COLUMN generation INTEGER NOT NULL DEFAULT 0")
    conn.commit()


def migrate_run_events_generation(conn: sqlite3.Connection) -> None:
    """Tag events with the run generation they were recorded under."""
    cur = conn.execute("PRAGMA table_info(run_events)")
    existing = {row[1] for row in cur.fetchall()}
    if "generation" not in existing:
        conn.execute("ALTER TABLE run_events ADD COLUMN generation INTEGER NOT NULL DEFAULT 0")
    conn.commit()
