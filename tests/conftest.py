"""Shared pytest fixtures: temp SYNTHESIS_ROOT, store, seeded research notes."""
import os
import pytest

from intelstore import Store
from intelsynth.synthesis_common import SynthesisConfig

SLOT_FIELDS = {
    "NB1": {"financial_pressures": [
        "Cost of capital rose 200 basis points in 2024",
        "Payer mix is shifting toward lower-reimbursement plans",
    ]},
    "NB2": {
        "market_timing": ["Regulatory review window closes in Q3 2025"],
        "market_conditions": ["Regional consolidation is reducing independent operators"],
    },
    "NB3": {"financial_metrics": [
        {"metric": "Revenue", "value": "$4.2B"},
        {"metric": "Operating margin", "value": "3.1%"},
    ]},
    "NB4": {
        "strategic_priorities": ["Consolidate procurement across the network"],
        "current_initiatives": ["ERP replacement program launched in 2024"],
    },
    "NB5": {
        "margin_pressures": ["Labor costs rose 9% year over year"],
        "cost_metrics": [{"metric": "Labor cost growth", "value": "9%"}],
    },
    "NB6": {
        "digital_capabilities": ["Cloud data platform is in production"],
        "technology_initiatives": ["Patient portal rebuild"],
    },
    "NB7": {"operational_strengths": ["Shared services center handles 60% of back-office volume"]},
    "NB8": {"competitive_position": ["Second largest operator in the region"]},
    "NB9": {"growth_drivers": ["Ambulatory site expansion in three new markets"]},
    "NB10": {"risk_factors": ["Covenant headroom is narrowing"]},
    "NB11": {"leadership_team": [{"name": "Dana Reyes", "title": "CFO", "focus": "Cost takeout"}]},
    "NB12": {
        "key_stakeholders": [{"name": "Sam Ortiz", "title": "VP Supply Chain", "focus": "Vendor consolidation"}],
        "buying_behavior": ["Committee-led purchasing with CFO sign-off"],
    },
    "NB13": {"innovation_capabilities": ["In-house analytics team of 40"]},
    "NB14": {"synthesis_themes": ["Margin recovery depends on procurement scale"]},
    "NB15": {"inflection_points": ["Contract renewals cluster in early 2026"]},
}


def slot_citations(slot: str) -> list[dict]:
    """Two slot-specific sources plus one report every slot cites."""
    n = slot[2:]
    return [
        {"title": f"Annual filing part {n}", "url": f"https://www.filings{n}.example.com/report-{n}", "source": "Filings"},
        {"title": f"Trade press {n}", "url": f"https://news{n}.example.org/story-{n}"},
        {"title": "Sector outlook", "url": "https://www.outlook.example.net/sector-outlook"},
    ]


def seed_notes(store: Store, run_id: str, slots=None, spelling=lambda s: s, source_id: str = "acme", target_id: str = "globex") -> None:
    store.create_run(run_id, source_id, target_id)
    for slot in slots or SLOT_FIELDS:
        store.put_note(
            run_id,
            spelling(slot),
            fields={**SLOT_FIELDS[slot], "citations": slot_citations(slot)[:2]},
            citations=slot_citations(slot)[2:],
            tokens_used=1200,
            duration_ms=3400,
        )


@pytest.fixture
def synthesis_root(tmp_path, monkeypatch):
    """Point SYNTHESIS_ROOT at a temp directory and clear SYNTHESIS_* overrides."""
    root = tmp_path / "synthesis_root"
    (root / "conf").mkdir(parents=True)
    (root / "db").mkdir()
    for k in list(os.environ):
        if k.startswith("SYNTHESIS_"):
            monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("SYNTHESIS_ROOT", str(root))
    return root


@pytest.fixture
def store(synthesis_root):
    s = Store(synthesis_root / "db" / "synthesis.db")
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def config():
    return SynthesisConfig()


@pytest.fixture
def seeded_run(store):
    """run-1 with all fifteen slots written under canonical ids."""
    seed_notes(store, "run-1")
    return "run-1"


@pytest.fixture
def seed(store):
    """Factory: seed(run_id, slots=None, spelling=fn) writes notes for a new run."""
    def _seed(run_id, **kw):
        seed_notes(store, run_id, **kw)
        return run_id
    return _seed
