"""Unit tests for intelstore/events.py."""


def test_record_and_count(store):
    """Events are counted per run and kind."""
    store.record_event("r1", "malformed_record", "normalization", {"slot_id": "NB3"})
    store.record_event("r1", "malformed_record", "normalization")
    store.record_event("r1", "schema_mismatch", "drafting")
    store.record_event("r2", "malformed_record")
    assert store.count_events("r1", "malformed_record") == 2
    assert store.count_events("r1") == 3
    assert store.event_counts("r1") == {"malformed_record": 2, "schema_mismatch": 1}


def test_recent_parses_detail(store):
    """recent_events returns decoded detail dicts."""
    store.record_event("r1", "duplicate_slot", "normalization", {"slot": "NB1"})
    ev = store.recent_events("r1")[0]
    assert ev["kind"] == "duplicate_slot"
    assert ev["detail"] == {"slot": "NB1"}
    assert ev["phase"] == "normalization"


def test_events_tagged_with_run_generation(store):
    """Events carry the generation current when recorded; counts can filter on it."""
    store.create_run("r1", "acme", "globex")
    store.record_event("r1", "schema_mismatch", "drafting")
    store.bump_generation("r1")
    store.record_event("r1", "schema_mismatch", "drafting")
    store.record_event("r1", "validation_rejection", "drafting")
    assert store.event_counts("r1") == {"schema_mismatch": 2, "validation_rejection": 1}
    assert store.event_counts("r1", 0) == {"schema_mismatch": 1}
    assert store.event_counts("r1", 1) == {"schema_mismatch": 1, "validation_rejection": 1}


def test_events_for_unknown_run_use_generation_zero(store):
    """An event for a run with no row is recorded under generation 0."""
    store.record_event("ghost", "malformed_record")
    assert store.event_counts("ghost", 0) == {"malformed_record": 1}
