"""Unit tests for intelsynth/synthesis_compose.py."""
import pytest
from bs4 import BeautifulSoup

from intelsynth import synthesis_compose
from intelsynth.synthesis_canonical import build_canonical_dataset
from intelsynth.synthesis_common import DEFAULT_EXPECTED_SLOTS
from intelsynth.synthesis_compose import (
    EMITTED_CLASSES,
    SECTION_CODES,
    compose_sections,
    draft,
    placeholder,
)
from intelsynth.synthesis_markup import ALLOWED_CLASSES, validate_section_html
from intelsynth.synthesis_normalize import normalize_run
from intelsynth.synthesis_patterns import detect_patterns


def _classes(markup: str) -> set:
    soup = BeautifulSoup(markup, "html.parser")
    return {c for el in soup.find_all(True) for c in (el.get("class") or [])}


@pytest.fixture
def dataset(seeded_run, store):
    return build_canonical_dataset(normalize_run(store, seeded_run, persist=False), DEFAULT_EXPECTED_SLOTS)


def test_emitted_classes_equal_allow_list():
    """Composer emission set and markup allow-list are the same set."""
    assert EMITTED_CLASSES == ALLOWED_CLASSES


def test_all_sections_drafted_and_valid(dataset):
    """Nine sections, all allow-listed, none rejected or placeholder."""
    out = compose_sections(detect_patterns(dataset)["patterns"], dataset)
    assert list(out["sections"]) == list(SECTION_CODES)
    assert out["rejections"] == []
    assert out["placeholders"] == []
    for code, section in out["sections"].items():
        validate_section_html(section["content"])
        assert section["citations_used"] == []


def test_every_emitted_class_is_exercised(dataset):
    """Full draft plus placeholder use exactly the emission set."""
    out = compose_sections(detect_patterns(dataset)["patterns"], dataset)
    seen = set()
    for section in out["sections"].values():
        seen |= _classes(section["content"])
    seen |= _classes(placeholder("margin_pressures"))
    assert seen == EMITTED_CLASSES


def test_citation_markers_from_home_slot(dataset):
    """Pressure themes cite NB1's canonical citations in order."""
    out = compose_sections(detect_patterns(dataset)["patterns"], dataset)
    content = out["sections"]["executive_insight"]["content"]
    assert "Cost of capital rose 200 basis points in 2024 [1]." in content
    assert "[2]." in content


def test_missing_optional_slot_only_degrades_its_section(dataset):
    """Without NB5, margin_pressures is a placeholder and other sections are not."""
    dataset["slots"]["NB5"] = {"slot": "NB5", "status": "missing", "fields": {}, "citation_ids": []}
    out = compose_sections(detect_patterns(dataset)["patterns"], dataset)
    assert out["placeholders"] == ["margin_pressures"]
    assert 'class="placeholder"' in out["sections"]["margin_pressures"]["content"]
    assert "Margin &amp; Cost Analysis (NB5)" in out["sections"]["margin_pressures"]["content"]
    assert "Key figures" in out["sections"]["financial_trajectory"]["content"]


def test_rejected_section_falls_back(monkeypatch, store):
    """Disallowed class in drafted markup: plain-text fallback and a rejection event."""
    monkeypatch.setattr(synthesis_compose, "placeholder", lambda section: f'<p class="banner">{section} pending</p>')
    out = compose_sections({}, {"slots": {}}, store=store, run_id="r1")
    assert out["sections"]["risk_signals"]["content"] == "<p>risk_signals pending</p>"
    assert len(out["rejections"]) == len(SECTION_CODES)
    assert out["rejections"][0]["classes"] == ["banner"]
    assert store.count_events("r1", "validation_rejection") == len(SECTION_CODES)


def test_failing_section_does_not_abort(monkeypatch, dataset, store):
    """An exception drafting one section yields its placeholder; others are drafted."""
    real = synthesis_compose.draft_section

    def flaky(section, *a, **kw):
        if section == "risk_signals":
            raise ValueError("bad pattern payload")
        return real(section, *a, **kw)

    monkeypatch.setattr(synthesis_compose, "draft_section", flaky)
    out = compose_sections(detect_patterns(dataset)["patterns"], dataset, store=store, run_id="r1")
    assert out["failures"] == ["risk_signals"]
    assert 'class="placeholder"' in out["sections"]["risk_signals"]["content"]
    assert len(out["sections"]) == len(SECTION_CODES)
    assert store.count_events("r1", "section_failed") == 1


def test_voice_applied_to_pattern_text():
    """Consultant-speak in note fields is rewritten in the drafted section."""
    ds = {"slots": {"NB10": {"status": "present", "fields": {"risk_factors": ["Frankly, the roadmap is at risk"]}, "citation_ids": [7]}}}
    out = compose_sections(detect_patterns(ds)["patterns"], ds)
    content = out["sections"]["risk_signals"]["content"]
    assert "The plan is at risk [7]." in content
    assert out["voice"]["risk_signals"]["score"] < 100


def test_draft_persists_with_patterns(seeded_run, store, config, dataset):
    """draft() stores drafting/drafted_sections including pattern diagnostics."""
    drafted = draft(store, seeded_run, dataset, config)
    assert store.count_artifacts(seeded_run, "drafting", "drafted_sections") == 1
    assert drafted["pattern_diagnostics"]["schema_mismatches"] == []
    assert drafted["patterns"]["pressure_theme"]


def test_item_emptied_by_voice_is_skipped():
    """An item that is only an aside renders nothing and does not use a citation."""
    ds = {"slots": {"NB10": {"status": "present", "fields": {"risk_factors": ["Honestly", "Covenant headroom is narrowing"]}, "citation_ids": [7, 8]}}}
    out = compose_sections(detect_patterns(ds)["patterns"], ds)
    content = out["sections"]["risk_signals"]["content"]
    assert "<p>Covenant headroom is narrowing [7].</p>" in content
    assert "[8]" not in content
    assert "<p> [" not in content


def test_section_emptied_by_voice_is_placeholder():
    """A section whose every item voices away falls back to its placeholder."""
    ds = {"slots": {"NB10": {"status": "present", "fields": {"risk_factors": ["Honestly."]}, "citation_ids": [7]}}}
    out = compose_sections(detect_patterns(ds)["patterns"], ds)
    assert "[7]" not in out["sections"]["risk_signals"]["content"]
    assert "risk_signals" in out["placeholders"]
