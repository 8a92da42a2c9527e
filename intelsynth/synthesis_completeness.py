#!/usr/bin/env python3
"""Decide whether a run has enough research to synthesize, and which sections will be thin."""
from intelsynth.synthesis_common import audit_log, slot_key, warn
from intelsynth.synthesis_errors import MissingRequiredInputError

PHASE = "completeness"


def check_completeness(present_slots, config, section_slots: dict | None = None) -> dict:
    present = {slot_key(s) for s in present_slots if slot_key(s)}
    expected = [slot_key(s) for s in config.expected_slots]
    core = [slot_key(s) for s in config.core_slots]
    optional = [slot_key(s) for s in config.optional_slots]

    missing_core = [s for s in core if s not in present]
    missing_optional = [s for s in optional if s not in present]
    covered = [s for s in expected if s in present]
    coverage = round(len(covered) / len(expected), 4) if expected else 0.0

    degraded = []
    for section, slots in (section_slots or {}).items():
        keys = [slot_key(s) for s in slots]
        if keys and not any(k in present for k in keys):
            degraded.append(section)

    return {
        "ok": not missing_core and coverage >= config.completeness_threshold,
        "coverage": coverage,
        "threshold": config.completeness_threshold,
        "present_slots": covered,
        "missing_core": missing_core,
        "missing_optional": missing_optional,
        "degraded_sections": degraded,
    }


def enforce_completeness(present_slots, config, section_slots: dict | None = None, store=None, run_id: str = "") -> dict:
    """Return the completeness report, or raise MissingRequiredInputError naming what is missing."""
    report = check_completeness(present_slots, config, section_slots)
    if report["ok"]:
        if report["missing_optional"]:
            warn(f"{run_id}: optional slots missing: {', '.join(report['missing_optional'])}")
        return report
    parts = []
    if report["missing_core"]:
        parts.append(f"missing core slots: {', '.join(report['missing_core'])}")
    if report["coverage"] < report["threshold"]:
        parts.append(f"coverage {report['coverage']:.2f} below threshold {report['threshold']:.2f}")
    err = MissingRequiredInputError(f"run {run_id}: " + "; ".join(parts), report["missing_core"], report["coverage"])
    audit_log(store, run_id, err.code, {
        "missing_core": report["missing_core"],
        "coverage": report["coverage"],
        "threshold": report["threshold"],
    }, PHASE)
    raise err
