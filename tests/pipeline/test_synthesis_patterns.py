"""Unit tests for intelsynth/synthesis_patterns.py."""
from intelsynth.synthesis_patterns import PATTERN_FIELDS, PATTERN_TYPES, detect_patterns, slot_sources


def _dataset(slots: dict) -> dict:
    return {"slots": {k: {"status": "present", "fields": v, "citation_ids": []} for k, v in slots.items()}}


def test_pressures_fallback_field():
    """NB1 with `pressures` (no financial_pressures) still yields pressure themes."""
    out = detect_patterns(_dataset({"NB1": {"pressures": ["Rates up", "Wage inflation"]}}))
    themes = out["patterns"]["pressure_theme"]
    assert [p["text"] for p in themes] == ["Rates up", "Wage inflation"]
    assert themes[0]["field"] == "pressures"
    assert themes[0]["slot"] == "NB1"


def test_first_non_empty_candidate_wins():
    """An empty preferred field falls through to the next candidate."""
    out = detect_patterns(_dataset({"NB1": {"financial_pressures": [], "pressures": ["B"], "challenges": ["C"]}}))
    assert [p["text"] for p in out["patterns"]["pressure_theme"]] == ["B"]


def test_schema_mismatch_recorded(store):
    """A present slot with none of the candidates: schema_mismatch event and diagnostic."""
    out = detect_patterns(_dataset({"NB10": {"threat_list": ["x"]}}), store, "r1")
    mism = [m for m in out["diagnostics"]["schema_mismatches"] if m["slot"] == "NB10"]
    assert mism and mism[0]["pattern_type"] == "risk_signal"
    assert mism[0]["fields_present"] == ["threat_list"]
    assert store.count_events("r1", "schema_mismatch") == 1


def test_empty_candidate_is_not_a_mismatch():
    """Field present but empty: no patterns, no mismatch."""
    out = detect_patterns(_dataset({"NB10": {"risks": []}}))
    assert out["diagnostics"]["schema_mismatches"] == []
    assert out["patterns"]["risk_signal"] == []


def test_missing_slot_counted_separately():
    """Absent slots are slot_missing, not schema mismatches."""
    out = detect_patterns(_dataset({}))
    assert out["diagnostics"]["schema_mismatches"] == []
    assert len(out["diagnostics"]["slot_missing"]) == len(PATTERN_FIELDS)
    assert set(out["diagnostics"]["empty_types"]) == set(PATTERN_TYPES)


def test_structured_items_flattened():
    """Executives render name/title/focus; metrics keep label and value."""
    out = detect_patterns(_dataset({
        "NB11": {"leadership_team": [{"name": "Dana Reyes", "title": "CFO", "focus": "Cost takeout"}]},
        "NB3": {"financial_metrics": {"revenue": "$4.2B", "ebitda_margin": "7%"}},
    }))
    exe = out["patterns"]["executive"][0]
    assert exe["text"] == "Dana Reyes, CFO: Cost takeout"
    metrics = out["patterns"]["numeric_proof"]
    assert [m["text"] for m in metrics] == ["Revenue: $4.2B", "Ebitda margin: 7%"]


def test_string_bullets_split_and_deduped():
    """Bulleted strings split into items; repeated text kept once."""
    out = detect_patterns(_dataset({"NB9": {"growth_drivers": "- New markets\n- New markets.\n* Acquisitions"}}))
    assert [p["text"] for p in out["patterns"]["growth_lever"]] == ["New markets", "Acquisitions"]


def test_slot_spelling_in_dataset():
    """Dataset slots keyed NB-5 still feed margin patterns."""
    ds = {"slots": {"NB-5": {"status": "present", "fields": {"margin_pressures": ["Freight costs"]}}}}
    assert detect_patterns(ds)["patterns"]["margin_pressure"][0]["text"] == "Freight costs"


def test_slot_sources():
    """slot_sources lists feeding slots in table order."""
    assert slot_sources(("margin_pressure",)) == ["NB5"]
    assert slot_sources(("numeric_proof",)) == ["NB3", "NB5"]
