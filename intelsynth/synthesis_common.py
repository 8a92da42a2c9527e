#!/usr/bin/env python3
"""
Shared helpers for synthesis phases: configuration, slot and citation identity, diagnostics.
"""
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

from intelstore.common import citation_key, slot_key  # noqa: F401  re-exported

SLOT_TOPICS = {
    "NB1": "Executive Pressure Profile",
    "NB2": "Operating Environment",
    "NB3": "Financial Health & Trajectory",
    "NB4": "Strategic Priorities",
    "NB5": "Margin & Cost Analysis",
    "NB6": "Technology & Digital Maturity",
    "NB7": "Operational Excellence",
    "NB8": "Competitive Positioning",
    "NB9": "Growth & Expansion",
    "NB10": "Risk & Resilience",
    "NB11": "Leadership & Culture",
    "NB12": "Stakeholder Dynamics",
    "NB13": "Innovation Capacity",
    "NB14": "Strategic Synthesis",
    "NB15": "Strategic Inflection Analysis",
}

DEFAULT_EXPECTED_SLOTS = tuple(SLOT_TOPICS)
DEFAULT_CORE_SLOTS = ("NB1", "NB2", "NB3", "NB4", "NB7", "NB12", "NB14", "NB15")
DEFAULT_OPTIONAL_SLOTS = ("NB5", "NB6", "NB8", "NB9", "NB10", "NB11", "NB13")


@dataclass
class SynthesisConfig:
    expected_slots: tuple = DEFAULT_EXPECTED_SLOTS
    core_slots: tuple = DEFAULT_CORE_SLOTS
    optional_slots: tuple = DEFAULT_OPTIONAL_SLOTS
    completeness_threshold: float = 0.8
    persist_intermediate: bool = True
    voice_enabled: bool = True
    citation_density_target: float = 10.0
    artifact_retention_days: int = 30


def synthesis_root() -> Path:
    return Path(os.environ.get("SYNTHESIS_ROOT", Path.home() / "synthesis"))


def _read_env_file(path: Path) -> dict:
    values = {}
    if path.exists():
        for line in path.read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                k, v = line.split("=", 1)
                values[k.strip()] = v.strip().strip('"\'')
    return values


def _slots(value: str) -> tuple:
    out = []
    for part in re.split(r"[,\s]+", value or ""):
        key = slot_key(part)
        if key and key not in out:
            out.append(key)
    return tuple(out)


def _as_bool(value: str, default: bool) -> bool:
    v = (value or "").strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return default


def _as_number(value: str, default, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


def load_config(root: Path | None = None) -> SynthesisConfig:
    """conf/synthesis.env under the synthesis root, then SYNTHESIS_* environment overrides."""
    root = Path(root) if root else synthesis_root()
    values = _read_env_file(root / "conf" / "synthesis.env")
    for k, v in os.environ.items():
        if k.startswith("SYNTHESIS_"):
            values[k] = v

    cfg = SynthesisConfig()
    if values.get("SYNTHESIS_EXPECTED_SLOTS"):
        cfg.expected_slots = _slots(values["SYNTHESIS_EXPECTED_SLOTS"]) or cfg.expected_slots
    if values.get("SYNTHESIS_CORE_SLOTS"):
        cfg.core_slots = _slots(values["SYNTHESIS_CORE_SLOTS"]) or cfg.core_slots
    if values.get("SYNTHESIS_OPTIONAL_SLOTS"):
        cfg.optional_slots = _slots(values["SYNTHESIS_OPTIONAL_SLOTS"]) or cfg.optional_slots
    if "SYNTHESIS_COMPLETENESS_THRESHOLD" in values:
        t = _as_number(values["SYNTHESIS_COMPLETENESS_THRESHOLD"], cfg.completeness_threshold)
        cfg.completeness_threshold = max(0.0, min(1.0, t))
    if "SYNTHESIS_PERSIST_INTERMEDIATE" in values:
        cfg.persist_intermediate = _as_bool(values["SYNTHESIS_PERSIST_INTERMEDIATE"], cfg.persist_intermediate)
    if "SYNTHESIS_VOICE" in values:
        cfg.voice_enabled = _as_bool(values["SYNTHESIS_VOICE"], cfg.voice_enabled)
    if "SYNTHESIS_CITATION_DENSITY_TARGET" in values:
        cfg.citation_density_target = _as_number(values["SYNTHESIS_CITATION_DENSITY_TARGET"], cfg.citation_density_target)
    if "SYNTHESIS_ARTIFACT_RETENTION_DAYS" in values:
        cfg.artifact_retention_days = _as_number(values["SYNTHESIS_ARTIFACT_RETENTION_DAYS"], cfg.artifact_retention_days, int)
    return cfg


# ------------------------------------------------------------------
# Slot identity
# ------------------------------------------------------------------
def slot_matches(a, b) -> bool:
    ka = slot_key(a)
    return bool(ka) and ka == slot_key(b)


# ------------------------------------------------------------------
# Citation identity
# ------------------------------------------------------------------
def domain_of(url: str) -> str:
    u = (url or "").strip()
    if not u:
        return "unknown"
    if "://" not in u:
        u = "//" + u
    try:
        host = urlsplit(u).hostname or ""
    except ValueError:
        host = ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"


def title_from_url(url: str) -> str:
    """Readable fallback title from the last path segment, else the domain."""
    u = (url or "").strip()
    if "://" not in u:
        u = "//" + u
    try:
        path = urlsplit(u).path
    except ValueError:
        path = ""
    slug = path.rstrip("/").rsplit("/", 1)[-1] if path else ""
    slug = re.sub(r"\.[a-z0-9]{2,5}$", "", slug, flags=re.I)
    slug = re.sub(r"[-_+]+", " ", slug).strip()
    if slug and not slug.isdigit():
        return slug.title()
    return domain_of(url)


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------
def warn(message: str) -> None:
    sys.stderr.write(f"WARN: {message}\n")


def audit_log(store, run_id: str, event: str, detail: dict | None = None, phase: str | None = None) -> None:
    """Record a run event. Phases called without a store (pure use, tests) skip it."""
    if store is not None and run_id:
        store.record_event(run_id, event, phase, detail)
