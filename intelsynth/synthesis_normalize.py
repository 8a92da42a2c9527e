#!/usr/bin/env python3
"""
Normalize raw research notes: canonical slot ids, parsed payloads, recovered citations.
Usage: synthesis_normalize.py <run_id>
"""
import json
import sys

from intelsynth.synthesis_common import (
    audit_log,
    citation_key,
    domain_of,
    slot_key,
    title_from_url,
    warn,
)
from intelsynth.synthesis_errors import MalformedRecordWarning, MissingRequiredInputError

PHASE = "normalization"
FAILED_NOTE_STATUSES = ("failed", "error", "missing", "timeout")

_URL_KEYS = ("url", "link", "href", "uri")
_TITLE_KEYS = ("title", "name", "headline")
_SOURCE_KEYS = ("source", "publisher", "site")
_DATE_KEYS = ("published", "published_at", "publishedat", "date")


def _parse(raw, expected: type):
    """Return (value, ok). Empty input is valid and yields the empty value."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return expected(), True
    value = raw
    if isinstance(raw, (str, bytes)):
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return expected(), False
    if not isinstance(value, expected):
        return expected(), False
    return value, True


def normalize_citation(entry) -> dict | None:
    """Citation as {title, url, source} plus published when given; None when no URL can be found."""
    published = ""
    if isinstance(entry, str):
        url, title, source = entry.strip(), "", ""
    elif isinstance(entry, dict):
        url = next((str(entry[k]).strip() for k in _URL_KEYS if entry.get(k)), "")
        title = next((str(entry[k]).strip() for k in _TITLE_KEYS if entry.get(k)), "")
        source = next((str(entry[k]).strip() for k in _SOURCE_KEYS if entry.get(k)), "")
        published = next((str(entry[k]).strip() for k in _DATE_KEYS if entry.get(k)), "")
    else:
        return None
    if not url:
        return None
    citation = {
        "title": title or title_from_url(url),
        "url": url,
        "source": source or domain_of(url),
    }
    if published:
        citation["published"] = published
    return citation


def _collect(entries, seen: set, out: list) -> tuple[int, int]:
    added = dropped = 0
    for e in entries:
        c = normalize_citation(e)
        if c is None:
            dropped += 1
            continue
        key = citation_key(c["url"])
        if key in seen:
            continue
        seen.add(key)
        out.append(c)
        added += 1
    return added, dropped


def _malformed(store, run_id: str, slot_id: str, column: str) -> None:
    err = MalformedRecordWarning(f"{slot_id}: unparseable {column}")
    warn(f"{run_id}: {err}")
    audit_log(store, run_id, err.code, {"slot_id": slot_id, "column": column}, PHASE)


def normalize_note(note: dict, store=None, run_id: str = "") -> dict:
    raw_slot = note.get("slot_id") or ""
    malformed = 0

    fields, ok = _parse(note.get("fields"), dict)
    if not ok:
        malformed += 1
        _malformed(store, run_id, raw_slot, "fields")
    fields = dict(fields)

    payload_cites = fields.pop("citations", None)
    if isinstance(payload_cites, str):
        payload_cites, ok = _parse(payload_cites, list)
        if not ok:
            malformed += 1
            _malformed(store, run_id, raw_slot, "fields.citations")
    elif payload_cites is not None and not isinstance(payload_cites, list):
        malformed += 1
        _malformed(store, run_id, raw_slot, "fields.citations")
        payload_cites = []

    column_cites, ok = _parse(note.get("citations"), list)
    if not ok:
        malformed += 1
        _malformed(store, run_id, raw_slot, "citations")

    citations: list[dict] = []
    seen: set = set()
    from_payload, dropped_a = _collect(payload_cites or [], seen, citations)
    from_column, dropped_b = _collect(column_cites, seen, citations)
    if from_payload and from_column:
        origin = "both"
    elif from_payload:
        origin = "payload"
    elif from_column:
        origin = "column"
    else:
        origin = "none"

    note_status = (note.get("status") or "completed").lower()
    return {
        "slot": slot_key(raw_slot),
        "source_slot_id": raw_slot,
        "status": "failed" if note_status in FAILED_NOTE_STATUSES else "present",
        "note_status": note_status,
        "fields": fields,
        "citations": citations,
        "citation_origin": origin,
        "tokens_used": int(note.get("tokens_used") or 0),
        "duration_ms": int(note.get("duration_ms") or 0),
        "_malformed": malformed,
        "_dropped": dropped_a + dropped_b,
    }


def normalize_notes(notes: list[dict], store=None, run_id: str = "") -> dict:
    """Pure normalization of already-loaded notes. Duplicate spellings of a slot keep the richer note."""
    slots: dict[str, dict] = {}
    duplicates = malformed = dropped = 0
    for note in notes:
        entry = normalize_note(note, store, run_id)
        malformed += entry.pop("_malformed")
        dropped += entry.pop("_dropped")
        key = entry["slot"]
        if not key:
            malformed += 1
            _malformed(store, run_id, str(note.get("slot_id")), "slot_id")
            continue
        existing = slots.get(key)
        if existing is None:
            slots[key] = entry
            continue
        duplicates += 1
        keep_new = not existing["fields"] and bool(entry["fields"])
        kept, discarded = (entry, existing) if keep_new else (existing, entry)
        slots[key] = kept
        warn(f"{run_id}: duplicate notes for {key} ({kept['source_slot_id']!r} kept, {discarded['source_slot_id']!r} ignored)")
        audit_log(store, run_id, "duplicate_slot", {
            "slot": key,
            "kept": kept["source_slot_id"],
            "ignored": discarded["source_slot_id"],
        }, PHASE)

    return {
        "run_id": run_id,
        "slots": slots,
        "stats": {
            "notes": len(notes),
            "slots": len(slots),
            "duplicate_slots": duplicates,
            "malformed_records": malformed,
            "dropped_citations": dropped,
            "citations": sum(len(s["citations"]) for s in slots.values()),
        },
    }


def normalize_run(store, run_id: str, persist: bool = True, generation: int = 0) -> dict:
    notes = store.get_notes(run_id)
    if not notes:
        err = MissingRequiredInputError(f"run {run_id} has no research notes", [], 0.0)
        audit_log(store, run_id, err.code, {"reason": "no_notes"}, PHASE)
        raise err
    normalized = normalize_notes(notes, store, run_id)
    if persist:
        store.save_artifact(run_id, PHASE, "normalized_inputs", normalized, generation)
    return normalized


def main() -> None:
    if len(sys.argv) != 2:
        print("Usage: synthesis_normalize.py <run_id>", file=sys.stderr)
        sys.exit(2)
    from intelstore import Store
    with Store() as store:
        out = normalize_run(store, sys.argv[1])
    print(json.dumps(out["stats"], indent=2))


if __name__ == "__main__":
    main()
