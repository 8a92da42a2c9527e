#!/usr/bin/env python3
"""
Pattern detection over the canonical dataset.

Which slot and which payload fields feed each pattern type is data, not code:
PATTERN_FIELDS lists (pattern_type, slot, candidate fields) rows consulted in
order, and the first non-empty candidate of a row wins. Note producers rename
fields between versions; add the new name to the candidate tuple and bump
PATTERN_FIELDS_VERSION.
"""
import re

from intelsynth.synthesis_common import audit_log, slot_key, warn
from intelsynth.synthesis_errors import SchemaMismatchWarning

PHASE = "drafting"
PATTERN_FIELDS_VERSION = 3

PATTERN_FIELDS = (
    ("pressure_theme", "NB1", ("financial_pressures", "pressures", "challenges", "executive_pressures")),
    ("margin_pressure", "NB5", ("margin_pressures", "cost_pressures", "margin_analysis", "cost_drivers")),
    ("capability_lever", "NB13", ("innovation_capabilities", "capabilities", "innovation_levers")),
    ("capability_lever", "NB7", ("operational_strengths", "capabilities", "efficiency_levers")),
    ("capability_lever", "NB6", ("digital_capabilities", "technology_capabilities", "capabilities")),
    ("timing_signal", "NB15", ("inflection_points", "timing_signals", "strategic_inflections")),
    ("timing_signal", "NB2", ("market_timing", "timing_signals", "environment_shifts")),
    ("executive", "NB11", ("leadership_team", "executives", "leaders")),
    ("executive", "NB12", ("key_stakeholders", "stakeholders", "decision_makers")),
    ("numeric_proof", "NB3", ("financial_metrics", "metrics", "key_figures")),
    ("numeric_proof", "NB5", ("cost_metrics", "metrics")),
    ("strategic_priority", "NB4", ("strategic_priorities", "priorities", "strategic_goals")),
    ("strategic_priority", "NB14", ("synthesis_themes", "strategic_themes", "key_themes")),
    ("growth_lever", "NB9", ("growth_drivers", "expansion_plans", "growth_opportunities")),
    ("risk_signal", "NB10", ("risk_factors", "risks", "vulnerabilities")),
    ("operating_context", "NB2", ("market_conditions", "operating_environment", "environment")),
    ("operating_context", "NB8", ("competitive_position", "competitors", "market_position")),
    ("buying_signal", "NB12", ("buying_behavior", "procurement_patterns", "purchase_drivers")),
    ("initiative", "NB6", ("technology_initiatives", "digital_initiatives", "initiatives")),
    ("initiative", "NB4", ("current_initiatives", "initiatives", "programs")),
)

PATTERN_TYPES = tuple(dict.fromkeys(row[0] for row in PATTERN_FIELDS))

PATTERN_LIMITS = {
    "executive": 6,
    "numeric_proof": 6,
}
DEFAULT_PATTERN_LIMIT = 8

_TEXT_KEYS = ("text", "description", "summary", "detail", "insight", "statement", "finding", "name", "title", "label")
_LABEL_KEYS = ("metric", "label", "name", "title")


def slot_sources(pattern_types) -> list[str]:
    """Slots that can feed any of the given pattern types, in table order."""
    out = []
    for ptype, slot, _ in PATTERN_FIELDS:
        if ptype in pattern_types and slot not in out:
            out.append(slot)
    return out


def _clean(text) -> str:
    return re.sub(r"\s+", " ", str(text)).strip()


def _dedupe_key(text: str) -> str:
    return re.sub(r"[\s.;:,!]+$", "", text.lower())


def _render_executive(d: dict) -> dict | None:
    name = _clean(d.get("name") or "")
    title = _clean(d.get("title") or d.get("role") or "")
    focus = _clean(d.get("focus") or d.get("priority") or d.get("priorities") or "")
    if not (name or title):
        return None
    who = ", ".join(p for p in (name, title) if p)
    return {"text": f"{who}: {focus}" if focus else who, "name": name, "title": title, "focus": focus}


def _render_metric(d: dict) -> dict | None:
    label = next((_clean(d[k]) for k in _LABEL_KEYS if d.get(k)), "")
    value = d.get("value")
    if value is None or value == "":
        text = next((_clean(d[k]) for k in _TEXT_KEYS if d.get(k)), "")
        return {"text": text} if text else None
    value = _clean(value)
    return {"text": f"{label}: {value}" if label else value, "label": label, "value": value}


def _render_generic(d: dict) -> dict | None:
    text = next((_clean(d[k]) for k in _TEXT_KEYS if d.get(k)), "")
    return {"text": text} if text else None


def _items(value, ptype: str) -> list[dict]:
    """Flatten a field value (string, list, object) into pattern payloads."""
    if value is None:
        return []
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [{"text": str(value)}]
    if isinstance(value, str):
        lines = [re.sub(r"^\s*(?:[-*•]|\d+[.)])\s+", "", ln) for ln in value.splitlines()]
        return [{"text": _clean(ln)} for ln in lines if _clean(ln)]
    if isinstance(value, list):
        out = []
        for v in value:
            out.extend(_items(v, ptype))
        return out
    if isinstance(value, dict):
        if ptype == "executive":
            r = _render_executive(value)
        elif ptype == "numeric_proof":
            r = _render_metric(value)
        else:
            r = _render_generic(value)
        if r is not None:
            return [r]
        out = []
        for k, v in value.items():
            if isinstance(v, (str, int, float)) and not isinstance(v, bool) and _clean(v):
                out.append({"text": f"{k.replace('_', ' ').capitalize()}: {_clean(v)}", "label": k, "value": _clean(v)})
            elif isinstance(v, (list, dict)):
                out.extend(_items(v, ptype))
        return out
    return []


def _is_empty(value) -> bool:
    return value is None or value == "" or value == [] or value == {}


def detect_patterns(dataset: dict, store=None, run_id: str = "") -> dict:
    slots = {slot_key(k): v for k, v in (dataset.get("slots") or {}).items()}
    patterns: dict[str, list[dict]] = {t: [] for t in PATTERN_TYPES}
    seen: dict[str, set] = {t: set() for t in PATTERN_TYPES}
    mismatches: list[dict] = []
    slot_missing: list[dict] = []

    for ptype, slot, candidates in PATTERN_FIELDS:
        entry = slots.get(slot)
        if not entry or entry.get("status") != "present":
            slot_missing.append({"pattern_type": ptype, "slot": slot})
            continue
        fields = entry.get("fields") or {}
        chosen = None
        for name in candidates:
            if name in fields and not _is_empty(fields[name]):
                chosen = name
                break
        if chosen is None:
            if not any(name in fields for name in candidates):
                err = SchemaMismatchWarning(f"{slot} has none of {', '.join(candidates)} for {ptype}")
                info = {
                    "slot": slot,
                    "pattern_type": ptype,
                    "candidates": list(candidates),
                    "fields_present": sorted(fields),
                }
                mismatches.append(info)
                warn(f"{run_id}: {err}")
                audit_log(store, run_id, err.code, info, PHASE)
            continue

        limit = PATTERN_LIMITS.get(ptype, DEFAULT_PATTERN_LIMIT)
        for item in _items(fields[chosen], ptype):
            if len(patterns[ptype]) >= limit:
                break
            key = _dedupe_key(item["text"])
            if not key or key in seen[ptype]:
                continue
            seen[ptype].add(key)
            patterns[ptype].append({"type": ptype, "slot": slot, "field": chosen, **item})

    return {
        "version": PATTERN_FIELDS_VERSION,
        "patterns": patterns,
        "diagnostics": {
            "schema_mismatches": mismatches,
            "slot_missing": slot_missing,
            "empty_types": [t for t in PATTERN_TYPES if not patterns[t]],
            "counts": {t: len(patterns[t]) for t in PATTERN_TYPES},
        },
    }
