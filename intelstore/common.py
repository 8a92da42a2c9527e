"""Shared helpers for store modules."""
import hashlib
import json
import re
import sqlite3
from datetime import datetime, timezone


def utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_ts(ts: str) -> datetime | None:
    if not ts:
        return None
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None


def hash_id(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()[:16]


def dumps(payload) -> str:
    """Stable JSON text: sorted keys so identical payloads serialize identically."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def slot_key(raw) -> str:
    """Canonical slot id: NB1, NB-1, nb_1 and Nb01 all become NB1."""
    text = str(raw or "").strip()
    if not text:
        return ""
    m = re.search(r"(\d+)", text)
    if m:
        return f"NB{int(m.group(1))}"
    return re.sub(r"[^A-Z0-9]", "", text.upper())


_URL_RE = re.compile(r"^(?:[a-z][a-z0-9+.\-]*://)?([^/?#]*)([^#]*)", re.I)


def citation_key(url: str) -> str:
    """Identity of a citation URL. Scheme, leading www., fragment and trailing slashes are ignored.
    Only the host is case-folded."""
    m = _URL_RE.match((url or "").strip())
    host, rest = m.group(1).lower(), m.group(2)
    if host.startswith("www."):
        host = host[4:]
    return (host + rest).rstrip("/")


def _is_locked(exc) -> bool:
    """Return True for transient SQLite contention (another writer holds the lock)."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def db_retry():
    """Decorator factory for writes: 5 attempts, exponential backoff 0.05-1s on lock contention."""
    from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception
    return retry(
        retry=retry_if_exception(_is_locked),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
        reraise=True,
    )
