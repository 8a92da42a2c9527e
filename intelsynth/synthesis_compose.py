#!/usr/bin/env python3
"""
Section drafting: patterns -> voiced, cited, allow-listed HTML for the nine report sections.
"""
import html

from intelsynth.synthesis_common import SLOT_TOPICS, audit_log, warn
from intelsynth.synthesis_errors import ValidationRejection
from intelsynth.synthesis_markup import plain_text_fallback, validate_section_html
from intelsynth.synthesis_patterns import detect_patterns, slot_sources
from intelsynth.synthesis_voice import enforce_voice

PHASE = "drafting"

SECTION_CODES = (
    "executive_insight",
    "customer_fundamentals",
    "financial_trajectory",
    "margin_pressures",
    "strategic_priorities",
    "growth_levers",
    "buying_behavior",
    "current_initiatives",
    "risk_signals",
)

SECTION_SOURCES = {
    "executive_insight": ("pressure_theme", "timing_signal", "executive"),
    "customer_fundamentals": ("operating_context", "executive"),
    "financial_trajectory": ("numeric_proof",),
    "margin_pressures": ("margin_pressure",),
    "strategic_priorities": ("strategic_priority",),
    "growth_levers": ("growth_lever", "capability_lever"),
    "buying_behavior": ("buying_signal",),
    "current_initiatives": ("initiative",),
    "risk_signals": ("risk_signal", "timing_signal"),
}

SECTION_TITLES = {
    "executive_insight": "Executive insight",
    "customer_fundamentals": "Customer fundamentals",
    "financial_trajectory": "Financial trajectory",
    "margin_pressures": "Margin pressures",
    "strategic_priorities": "Strategic priorities",
    "growth_levers": "Growth levers",
    "buying_behavior": "Buying behavior",
    "current_initiatives": "Current initiatives",
    "risk_signals": "Risk signals",
}

BLOCK_TITLES = {
    "pressure_theme": "Pressure themes",
    "margin_pressure": "Where margin is leaking",
    "capability_lever": "Capabilities to build on",
    "timing_signal": "Timing",
    "executive": "Who owns it",
    "numeric_proof": "Key figures",
    "strategic_priority": "Stated priorities",
    "growth_lever": "Growth drivers",
    "risk_signal": "Risks",
    "operating_context": "Operating context",
    "buying_signal": "How they buy",
    "initiative": "Initiatives under way",
}

# Every class the renderers below can emit. Must stay equal to the markup allow-list.
EMITTED_CLASSES = frozenset({
    "highlight",
    "fact-grid",
    "fact",
    "subsection-header",
    "perf-gap",
    "timeline",
    "accountability",
    "placeholder",
})


class _Drafter:
    """Renders one section; collects voice reports along the way."""

    def __init__(self, dataset: dict, voice_enabled: bool = True):
        self._slots = dataset.get("slots") or {}
        self._voice = voice_enabled
        self._cursor: dict[str, int] = {}
        self.voice_scores: list[int] = []
        self.rewrites: set = set()

    def _marker(self, slot: str) -> str:
        ids = (self._slots.get(slot) or {}).get("citation_ids") or []
        if not ids:
            return ""
        i = self._cursor.get(slot, 0)
        self._cursor[slot] = i + 1
        return f" [{ids[i % len(ids)]}]"

    def sentence(self, text: str, slot: str) -> str:
        """Voiced, escaped sentence with its citation marker before the closing punctuation.
        Empty when nothing is left after voicing."""
        text = (text or "").strip()
        if self._voice:
            text, report = enforce_voice(text)
            self.voice_scores.append(report["score"])
            self.rewrites.update(report["rewrites_applied"])
        text = text.strip()
        if not text.rstrip(".!?:"):
            return ""
        end = ""
        if text[-1] in ".!?":
            text, end = text[:-1], text[-1]
        elif not text.endswith(":"):
            end = "."
        return html.escape(text, quote=False) + self._marker(slot) + end

    def _sentences(self, items: list[dict]) -> list[str]:
        return [s for s in (self.sentence(i["text"], i["slot"]) for i in items) if s]

    def _body(self, ptype: str, items: list[dict]) -> str:
        if ptype == "pressure_theme":
            lines = self._sentences(items)
            if not lines:
                return ""
            return f'<div class="highlight"><p>{lines[0]}</p></div>' + "".join(f"<p>{s}</p>" for s in lines[1:])
        if ptype == "numeric_proof":
            facts = []
            for i in items:
                if i.get("label") and i.get("value"):
                    label = html.escape(i["label"], quote=False)
                    value = html.escape(i["value"], quote=False)
                    facts.append(f'<div class="fact"><strong>{label}</strong> <span>{value}</span>{self._marker(i["slot"])}</div>')
                else:
                    s = self.sentence(i["text"], i["slot"])
                    if s:
                        facts.append(f'<div class="fact">{s}</div>')
            return f'<div class="fact-grid">{"".join(facts)}</div>' if facts else ""
        if ptype == "margin_pressure":
            return "".join(f'<p class="perf-gap">{s}</p>' for s in self._sentences(items))
        if ptype == "timing_signal":
            lis = "".join(f"<li>{s}</li>" for s in self._sentences(items))
            return f'<ul class="timeline">{lis}</ul>' if lis else ""
        if ptype == "executive":
            lis = []
            for i in items:
                who = ", ".join(p for p in (i.get("name"), i.get("title")) if p)
                if who and i.get("focus"):
                    focus = self.sentence(i["focus"], i["slot"])
                    who = f"<strong>{html.escape(who, quote=False)}</strong>"
                    lis.append(f"<li>{who}: {focus}</li>" if focus else f"<li>{who}</li>")
                else:
                    s = self.sentence(i["text"], i["slot"])
                    if s:
                        lis.append(f"<li>{s}</li>")
            return f'<ul class="accountability">{"".join(lis)}</ul>' if lis else ""
        lines = self._sentences(items)
        if len(lines) == 1:
            return f"<p>{lines[0]}</p>"
        return f"<ul>{''.join(f'<li>{s}</li>' for s in lines)}</ul>" if lines else ""

    def block(self, ptype: str, items: list[dict]) -> str:
        """Subsection for one pattern type; empty when every item voiced away."""
        body = self._body(ptype, items)
        if not body:
            return ""
        return f'<h4 class="subsection-header">{html.escape(BLOCK_TITLES.get(ptype, ptype))}</h4>' + body


def placeholder(section: str) -> str:
    topics = [f"{SLOT_TOPICS.get(s, s)} ({s})" for s in slot_sources(SECTION_SOURCES[section])]
    text = f"{SECTION_TITLES[section]} pending: research on {', '.join(topics)} was not available for this run."
    return f'<p class="placeholder">{html.escape(text, quote=False)}</p>'


def draft_section(section: str, patterns: dict, dataset: dict, voice_enabled: bool = True) -> tuple[str, dict]:
    drafter = _Drafter(dataset, voice_enabled)
    blocks = []
    for ptype in SECTION_SOURCES[section]:
        items = patterns.get(ptype) or []
        block = drafter.block(ptype, items) if items else ""
        if block:
            blocks.append(block)
    scores = drafter.voice_scores
    voice = {
        "score": round(sum(scores) / len(scores)) if scores else 100,
        "rewrites_applied": sorted(drafter.rewrites),
    }
    if not blocks:
        return placeholder(section), {**voice, "placeholder": True}
    return "".join(blocks), {**voice, "placeholder": False}


def compose_sections(patterns: dict, dataset: dict, voice_enabled: bool = True, store=None, run_id: str = "") -> dict:
    """Draft every section code. One failing section falls back; the set of sections never changes."""
    sections, voice, rejections, placeholders, failures = {}, {}, [], [], []
    for code in SECTION_CODES:
        try:
            content, report = draft_section(code, patterns, dataset, voice_enabled)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            warn(f"{run_id}: drafting {code} failed: {e}")
            audit_log(store, run_id, "section_failed", {"section": code, "error": str(e)}, PHASE)
            content, report = placeholder(code), {"score": 100, "rewrites_applied": [], "placeholder": True}
            failures.append(code)
        try:
            validate_section_html(content)
        except ValidationRejection as e:
            warn(f"{run_id}: {code} markup rejected: {e}")
            info = {"section": code, "tags": e.tags, "classes": e.classes}
            audit_log(store, run_id, e.code, info, PHASE)
            rejections.append(info)
            content = plain_text_fallback(content)
        if report.get("placeholder"):
            placeholders.append(code)
        sections[code] = {"content": content, "citations_used": []}
        voice[code] = {"score": report["score"], "rewrites_applied": report["rewrites_applied"]}
    return {
        "sections": sections,
        "voice": voice,
        "rejections": rejections,
        "placeholders": placeholders,
        "failures": failures,
    }


def draft(store, run_id: str, dataset: dict, config, persist: bool = True, generation: int = 0) -> dict:
    detected = detect_patterns(dataset, store, run_id)
    composed = compose_sections(detected["patterns"], dataset, config.voice_enabled, store, run_id)
    drafted = {
        "run_id": run_id,
        "pattern_version": detected["version"],
        "patterns": detected["patterns"],
        "pattern_diagnostics": detected["diagnostics"],
        **composed,
    }
    if persist:
        store.save_artifact(run_id, PHASE, "drafted_sections", drafted, generation)
    return drafted
