"""
Artifact compatibility adapter.

Older pipeline versions stored the same artifacts under different phase/type
names and field layouts. Saves always use the current names; loads search every
alias, rename legacy fields, validate structure and inject defaults so callers
only ever see the current shape.
"""
import copy
import json
import sys

from jsonschema import Draft202012Validator

from .common import citation_key, slot_key
from .errors import ArtifactCorruptionError

ARTIFACT_TYPE_ALIASES = {
    "normalized_inputs": ("normalized_inputs", "normalized_inputs_v16", "synthesis_inputs"),
    "canonical_dataset": ("canonical_dataset", "canonical_nb_dataset"),
    "drafted_sections": ("drafted_sections", "assembled_sections", "content_sections"),
    "final_bundle": ("final_bundle", "synthesis_bundle"),
}

PHASE_ALIASES = {
    "normalization": ("normalization", "citation_normalization"),
    "canonicalization": ("canonicalization", "canonical"),
    "drafting": ("drafting", "assembler"),
    "synthesis": ("synthesis",),
}

# Types an older pipeline also wrote under another phase.
EXTRA_TYPE_PHASES = {
    "canonical_dataset": ("synthesis",),
}

# Legacy field -> current field, applied only when the current field is absent.
FIELD_RENAMES = {
    "normalized_inputs": {"nb_data": "slots", "normalized": "slots"},
    "canonical_dataset": {
        "nb_data": "slots",
        "citations": "aggregated_citations",
        "diversity": "diversity_metrics",
    },
    "drafted_sections": {"assembled": "sections", "content_sections": "sections"},
    "final_bundle": {
        "citations": "aggregated_citations",
        "diversity": "diversity_metrics",
        "qa_report": "qa",
    },
}

SCHEMA_DEFAULTS = {
    "normalized_inputs": {"slots": {}, "stats": {}},
    "canonical_dataset": {
        "slots": {},
        "aggregated_citations": [],
        "diversity_metrics": {"unique_domains": 0, "score": 0.0, "domain_frequency": {}},
        "citation_density": {"total": 0, "average": 0.0, "meets_target": False},
        "stats": {},
    },
    "drafted_sections": {
        "sections": {},
        "patterns": {},
        "pattern_diagnostics": {"schema_mismatches": [], "empty_types": [], "counts": {}},
        "voice": {},
        "rejections": [],
    },
    "final_bundle": {
        "metadata": {},
        "diversity_metrics": {"unique_domains": 0, "score": 0.0},
        "qa": {"phantom_citations": [], "unused_citations": []},
    },
}

_CITATION_SCHEMA = {
    "type": "object",
    "required": ["id", "url"],
    "properties": {
        "id": {"type": "integer", "minimum": 1},
        "url": {"type": "string"},
        "title": {"type": "string"},
        "source": {"type": "string"},
    },
}

SCHEMAS = {
    "normalized_inputs": {
        "type": "object",
        "required": ["slots"],
        "properties": {"slots": {"type": "object"}, "stats": {"type": "object"}},
    },
    "canonical_dataset": {
        "type": "object",
        "required": ["slots", "aggregated_citations"],
        "properties": {
            "slots": {"type": "object"},
            "aggregated_citations": {"type": "array", "items": _CITATION_SCHEMA},
            "diversity_metrics": {"type": "object"},
        },
    },
    "drafted_sections": {
        "type": "object",
        "required": ["sections"],
        "properties": {"sections": {"type": "object"}},
    },
    "final_bundle": {
        "type": "object",
        "required": ["metadata", "sections", "aggregated_citations"],
        "properties": {
            "metadata": {"type": "object"},
            "sections": {
                "type": "object",
                "additionalProperties": {
                    "type": "object",
                    "required": ["content", "citations_used"],
                    "properties": {
                        "content": {"type": "string"},
                        "citations_used": {"type": "array", "items": {"type": "integer"}},
                    },
                },
            },
            "aggregated_citations": {"type": "array", "items": _CITATION_SCHEMA},
            "diversity_metrics": {"type": "object"},
            "qa": {"type": "object"},
        },
    },
}

_VALIDATORS = {name: Draft202012Validator(schema) for name, schema in SCHEMAS.items()}


def _reverse(groups: dict) -> dict:
    out = {}
    for current, names in groups.items():
        for n in names:
            out[n] = current
    return out


_TYPE_BY_ALIAS = _reverse(ARTIFACT_TYPE_ALIASES)
_PHASE_BY_ALIAS = _reverse(PHASE_ALIASES)


def canonical_type(name: str) -> str:
    return _TYPE_BY_ALIAS.get(name, name)


def canonical_phase(name: str) -> str:
    return _PHASE_BY_ALIAS.get(name, name)


def type_aliases(name: str) -> tuple:
    return ARTIFACT_TYPE_ALIASES.get(canonical_type(name), (name,))


def phase_aliases(name: str, artifact_type: str | None = None) -> tuple:
    phases = PHASE_ALIASES.get(canonical_phase(name), (name,))
    if artifact_type:
        phases += EXTRA_TYPE_PHASES.get(canonical_type(artifact_type), ())
    return phases


def inject_defaults(payload: dict, defaults: dict) -> dict:
    """Fill missing keys from defaults, recursing into nested objects. Never overwrites."""
    for key, default in defaults.items():
        if key not in payload:
            payload[key] = copy.deepcopy(default)
        elif isinstance(default, dict) and isinstance(payload[key], dict):
            inject_defaults(payload[key], default)
    return payload


# Stored slot status -> current status. Unknown statuses count as present when the slot has data.
LEGACY_SLOT_STATUS = {
    "present": "present",
    "completed": "present",
    "complete": "present",
    "success": "present",
    "ok": "present",
    "failed": "failed",
    "error": "failed",
    "timeout": "failed",
    "missing": "missing",
}

_LEGACY_URL_KEYS = ("url", "link", "href", "uri")


def _legacy_citation(entry) -> dict | None:
    if isinstance(entry, str):
        entry = {"url": entry}
    if not isinstance(entry, dict):
        return None
    url = next((str(entry[k]).strip() for k in _LEGACY_URL_KEYS if entry.get(k)), "")
    if not url:
        return None
    out = {"url": url, "title": str(entry.get("title") or entry.get("name") or url)}
    source = entry.get("source") or entry.get("publisher")
    if source:
        out["source"] = str(source)
    published = entry.get("published") or entry.get("publishedat")
    if published:
        out["published"] = str(published)
    return out


def _needs_slot_upgrade(payload: dict) -> bool:
    slots = payload.get("slots")
    if not isinstance(slots, dict):
        return False
    if any(not isinstance(s, dict) or "fields" not in s or "citation_ids" not in s for s in slots.values()):
        return True
    cites = payload.get("aggregated_citations")
    return isinstance(cites, list) and any(not isinstance(c, dict) or "id" not in c for c in cites)


def _slot_citations(entry: dict, fields: dict) -> list:
    cites = []
    if isinstance(fields.get("citations"), list):
        cites.extend(fields.pop("citations"))
    if isinstance(entry.get("citations"), list):
        cites.extend(entry["citations"])
    return cites


def upgrade_canonical_slots(payload: dict, artifact_id: int | None = None) -> dict:
    """Rewrite a dataset stored in the old slot layout (data, status "completed", per-slot
    citations without ids) into the current one. Raises ArtifactCorruptionError when a slot
    cannot be read or no slot is present."""
    if not _needs_slot_upgrade(payload):
        return payload

    aggregated: list[dict] = []
    ids: dict[str, int] = {}

    def add(entry) -> int | None:
        c = _legacy_citation(entry)
        if c is None:
            return None
        key = citation_key(c["url"])
        if key not in ids:
            c["id"] = len(aggregated) + 1
            ids[key] = c["id"]
            aggregated.append(c)
        return ids[key]

    old_ids: dict[int, int] = {}
    legacy_list = payload.get("aggregated_citations")
    for entry in legacy_list if isinstance(legacy_list, list) else []:
        cid = add(entry)
        if cid is not None and isinstance(entry, dict) and isinstance(entry.get("id"), int):
            old_ids[entry["id"]] = cid

    slots: dict[str, dict] = {}
    raw_citations = 0
    for raw_key, entry in payload["slots"].items():
        if not isinstance(entry, dict):
            raise ArtifactCorruptionError(f"canonical_dataset slot {raw_key!r} is not an object", artifact_id)
        key = slot_key(entry.get("slot") or entry.get("nbcode") or raw_key)
        if not key:
            raise ArtifactCorruptionError(f"canonical_dataset slot {raw_key!r} has no slot id", artifact_id)
        fields = entry["fields"] if "fields" in entry else entry.get("data")
        if fields is None or fields == []:
            fields = {}
        if not isinstance(fields, dict):
            raise ArtifactCorruptionError(
                f"canonical_dataset slot {raw_key!r}: fields are {type(fields).__name__}", artifact_id
            )
        fields = dict(fields)
        cites = _slot_citations(entry, fields)

        status = LEGACY_SLOT_STATUS.get(str(entry.get("status") or "").strip().lower())
        if status is None:
            status = "present" if fields else "missing"
        if key in slots and slots[key]["status"] == "present":
            continue

        slot = {
            "slot": key,
            "topic": entry.get("topic") or key,
            "status": status,
            "source_slot_id": entry.get("source_slot_id") or raw_key,
            "fields": {},
            "citation_ids": [],
            "citation_count": 0,
            "tokens_used": int(entry.get("tokens_used") or 0),
            "duration_ms": int(entry.get("duration_ms") or 0),
        }
        if status == "present":
            citation_ids = [old_ids[i] for i in entry.get("citation_ids") or [] if i in old_ids]
            for c in cites:
                cid = add(c)
                if cid is not None and cid not in citation_ids:
                    citation_ids.append(cid)
            slot.update({"fields": fields, "citation_ids": citation_ids, "citation_count": len(cites)})
            raw_citations += len(cites)
        slots[key] = slot

    present = [k for k, s in slots.items() if s["status"] == "present"]
    if not present:
        raise ArtifactCorruptionError("canonical_dataset has no present slots after upgrade", artifact_id)
    stats = dict(payload.get("stats") or payload.get("processing_stats") or {})
    stats.update({
        "expected_slots": list(slots),
        "present_slots": present,
        "missing_slots": [k for k, s in slots.items() if s["status"] == "missing"],
        "failed_slots": [k for k, s in slots.items() if s["status"] == "failed"],
        "completion_rate": round(len(present) / len(slots), 4),
        "raw_citations": raw_citations,
        "unique_citations": len(aggregated),
        "duplicate_citations": max(0, raw_citations - len(aggregated)),
    })
    payload["slots"] = slots
    payload["aggregated_citations"] = aggregated
    payload["stats"] = stats
    # Diversity and density describe the old citation list; readers recompute them.
    payload.pop("diversity_metrics", None)
    payload.pop("citation_density", None)
    return payload


def upgrade_payload(artifact_type: str, raw, artifact_id: int | None = None) -> dict:
    """Parse, rename, validate and fill defaults. Raises ArtifactCorruptionError."""
    current = canonical_type(artifact_type)
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ArtifactCorruptionError(f"unparseable {current} payload: {e}", artifact_id) from e
    else:
        payload = copy.deepcopy(raw)
    if not isinstance(payload, dict):
        raise ArtifactCorruptionError(f"{current} payload is {type(payload).__name__}, expected object", artifact_id)

    for old, new in FIELD_RENAMES.get(current, {}).items():
        if old in payload and new not in payload:
            payload[new] = payload.pop(old)
    if current == "canonical_dataset":
        payload = upgrade_canonical_slots(payload, artifact_id)

    validator = _VALIDATORS.get(current)
    if validator is not None:
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
        if errors:
            e = errors[0]
            path = ".".join(map(str, e.path)) if e.path else "<root>"
            raise ArtifactCorruptionError(f"{current} failed validation at {path}: {e.message}", artifact_id)

    return inject_defaults(payload, SCHEMA_DEFAULTS.get(current, {}))


class ArtifactCompat:
    def __init__(self, artifacts, events):
        self._artifacts = artifacts
        self._events = events

    def save(self, run_id: str, phase: str, artifact_type: str, payload, generation: int = 0) -> int:
        return self._artifacts.save(run_id, canonical_phase(phase), canonical_type(artifact_type), payload, generation)

    def load(self, run_id: str, phase: str, artifact_type: str, min_generation: int = 0) -> dict | None:
        """Newest valid artifact across all aliases, or None. Corrupt rows are recorded and skipped."""
        rows = self._artifacts.rows(run_id, phase_aliases(phase, artifact_type), type_aliases(artifact_type), min_generation)
        for row in rows:
            try:
                return upgrade_payload(row["artifact_type"], row["payload"], row["id"])
            except ArtifactCorruptionError as e:
                sys.stderr.write(f"WARN: artifact {row['id']} ({row['phase']}/{row['artifact_type']}) unusable: {e}\n")
                self._events.record(
                    run_id,
                    e.code,
                    canonical_phase(row["phase"]),
                    {"artifact_id": row["id"], "artifact_type": row["artifact_type"], "reason": str(e)},
                )
        return None
