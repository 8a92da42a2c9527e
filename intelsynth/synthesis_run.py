#!/usr/bin/env python3
"""
Run the synthesis pipeline for one run: normalize -> canonicalize -> completeness ->
patterns/drafting -> citation resolution -> final bundle.

A finished bundle is cached; later calls return it unchanged. Each stage resumes
from the newest valid artifact of the run's current generation, so a crashed run
picks up where it stopped. --force starts a new generation.

Usage: synthesis_run.py <run_id> [--force] [--no-intermediate]
       synthesis_run.py --cleanup [days]
"""
import fcntl
import json
import sys
import time
from contextlib import contextmanager
from pathlib import Path

from intelstore import Store
from intelstore.common import dumps, utcnow
from intelstore.compat import upgrade_payload
from intelsynth.synthesis_canonical import canonicalize, refresh_citation_metrics
from intelsynth.synthesis_citations import resolve_citations
from intelsynth.synthesis_common import audit_log, load_config, warn
from intelsynth.synthesis_completeness import enforce_completeness
from intelsynth.synthesis_compose import SECTION_CODES, SECTION_SOURCES, draft
from intelsynth.synthesis_errors import MissingRequiredInputError
from intelsynth.synthesis_normalize import normalize_run
from intelsynth.synthesis_patterns import slot_sources
from intelsynth.synthesis_scoring import citation_balance

DIAGNOSTIC_EVENTS = (
    "malformed_record",
    "duplicate_slot",
    "schema_mismatch",
    "validation_rejection",
    "section_failed",
    "artifact_corruption",
)


@contextmanager
def run_lock(lock_dir: Path, run_id: str):
    """Hold an exclusive lock on the run so only one caller builds it at a time."""
    lock_file = Path(lock_dir) / f"run_{run_id}.lock"
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    f = open(lock_file, "a")
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        finally:
            f.close()


@contextmanager
def phase_timer(store, run_id: str, phase: str, timings: dict):
    started = time.monotonic()
    audit_log(store, run_id, "phase_started", None, phase)
    try:
        yield
    except Exception as e:
        ms = int((time.monotonic() - started) * 1000)
        audit_log(store, run_id, "phase_failed", {"duration_ms": ms, "error": str(e)}, phase)
        raise
    ms = int((time.monotonic() - started) * 1000)
    timings[phase] = ms
    audit_log(store, run_id, "phase_completed", {"duration_ms": ms}, phase)


def _mark_running(store, run: dict) -> None:
    status = run["status"]
    if status == "running":
        return
    store.set_run_status(run["id"], "running", rerun=status in ("completed", "failed"))


def _section_slots() -> dict:
    return {code: slot_sources(SECTION_SOURCES[code]) for code in SECTION_CODES}


def _build(store, run: dict, generation: int, config, persist: bool) -> dict:
    run_id = run["id"]
    timings: dict[str, int] = {}
    _mark_running(store, run)
    try:
        dataset = store.load_artifact(run_id, "canonicalization", "canonical_dataset", generation)
        resumed_from = "canonicalization" if dataset is not None else None
        if dataset is not None:
            dataset = refresh_citation_metrics(dataset, config.citation_density_target)
        else:
            normalized = store.load_artifact(run_id, "normalization", "normalized_inputs", generation)
            resumed_from = "normalization" if normalized is not None else None
            if normalized is None:
                with phase_timer(store, run_id, "normalization", timings):
                    normalized = normalize_run(store, run_id, persist, generation)
            with phase_timer(store, run_id, "canonicalization", timings):
                dataset = canonicalize(store, run_id, normalized, config, persist, generation)

        with phase_timer(store, run_id, "completeness", timings):
            present = dataset["stats"].get("present_slots") or [
                k for k, v in dataset["slots"].items() if v.get("status") == "present"
            ]
            completeness = enforce_completeness(present, config, _section_slots(), store, run_id)

        drafted = None
        if resumed_from == "canonicalization":
            drafted = store.load_artifact(run_id, "drafting", "drafted_sections", generation)
            if drafted is not None:
                resumed_from = "drafting"
        if drafted is None:
            with phase_timer(store, run_id, "drafting", timings):
                drafted = draft(store, run_id, dataset, config, persist, generation)

        with phase_timer(store, run_id, "citations", timings):
            resolved = resolve_citations(drafted["sections"], dataset["aggregated_citations"])

        with phase_timer(store, run_id, "synthesis", timings):
            bundle = _assemble(store, run, generation, dataset, drafted, resolved, completeness, timings, resumed_from)
            text = dumps(bundle)
            store.save_artifact(run_id, "synthesis", "final_bundle", text, generation)
    except MissingRequiredInputError as e:
        warn(f"{run_id}: {e}")
        store.set_run_status(run_id, "failed", error=str(e))
        raise
    except Exception as e:
        store.set_run_status(run_id, "failed", error=f"{type(e).__name__}: {e}")
        raise
    store.set_run_status(run_id, "completed")
    return upgrade_payload("final_bundle", text)


def _assemble(store, run, generation, dataset, drafted, resolved, completeness, timings, resumed_from) -> dict:
    run_id = run["id"]
    stats = dataset.get("stats") or {}
    events = store.event_counts(run_id, generation)
    diagnostics = drafted.get("pattern_diagnostics") or {}
    return {
        "metadata": {
            "run_id": run_id,
            "source_id": run["source_id"],
            "target_id": run.get("target_id"),
            "created_at": utcnow(),
            "generation": generation,
            "section_codes": list(SECTION_CODES),
            "pattern_version": drafted.get("pattern_version"),
            "completeness": completeness,
            "slots_present": stats.get("present_slots", []),
            "slots_missing": stats.get("missing_slots", []),
            "completion_rate": stats.get("completion_rate", 0.0),
            "resumed_from": resumed_from,
            "phase_timings_ms": dict(timings),
        },
        "sections": {code: resolved["sections"][code] for code in SECTION_CODES if code in resolved["sections"]},
        "aggregated_citations": dataset["aggregated_citations"],
        "diversity_metrics": dataset["diversity_metrics"],
        "qa": {
            **resolved["qa"],
            "citation_density": dataset.get("citation_density") or {},
            "citation_balance": citation_balance(dataset["diversity_metrics"].get("source_type_distribution") or {}),
            "schema_mismatches": len(diagnostics.get("schema_mismatches") or []),
            "empty_pattern_types": diagnostics.get("empty_types") or [],
            "placeholders": drafted.get("placeholders") or [],
            "validation_rejections": drafted.get("rejections") or [],
            "voice": drafted.get("voice") or {},
            "diagnostics": {k: events.get(k, 0) for k in DIAGNOSTIC_EVENTS},
        },
    }


def synthesize(run_id: str, force: bool = False, persist_intermediate: bool | None = None, store=None, config=None) -> dict:
    """Return the final bundle for run_id, building it only when no valid cached bundle exists."""
    config = config or load_config()
    persist = config.persist_intermediate if persist_intermediate is None else bool(persist_intermediate)
    own_store = store is None
    store = store or Store()
    try:
        run = store.get_run(run_id)
        if run is None:
            raise ValueError(f"Unknown run: {run_id}")
        observed = int(run["generation"])

        if not force:
            cached = store.load_final_bundle(run_id, observed)
            if cached is not None:
                audit_log(store, run_id, "cache_hit", {"generation": observed}, "synthesis")
                return cached

        with run_lock(store.lock_dir, run_id):
            run = store.get_run(run_id)
            generation = int(run["generation"])
            if force and generation == observed:
                generation = store.bump_generation(run_id)
                audit_log(store, run_id, "force_rebuild", {"generation": generation}, "synthesis")
            else:
                # Another caller finished (or forced) while we waited for the lock.
                cached = store.load_final_bundle(run_id, generation)
                if cached is not None:
                    audit_log(store, run_id, "cache_hit", {"generation": generation, "after_lock": True}, "synthesis")
                    return cached
            run = store.get_run(run_id)
            return _build(store, run, generation, config, persist)
    finally:
        if own_store:
            store.close()


def main() -> None:
    args = sys.argv[1:]
    if not args:
        print("Usage: synthesis_run.py <run_id> [--force] [--no-intermediate] | --cleanup [days]", file=sys.stderr)
        sys.exit(2)
    config = load_config()
    if args[0] == "--cleanup":
        days = int(args[1]) if len(args) > 1 else config.artifact_retention_days
        with Store() as store:
            removed = store.cleanup_artifacts(days)
        print(json.dumps({"removed": removed, "days": days}))
        return
    run_id = args[0]
    force = "--force" in args
    persist = False if "--no-intermediate" in args else None
    try:
        bundle = synthesize(run_id, force=force, persist_intermediate=persist, config=config)
    except (MissingRequiredInputError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    qa = bundle.get("qa", {})
    print(json.dumps({
        "run_id": run_id,
        "generation": bundle["metadata"].get("generation"),
        "sections": len(bundle["sections"]),
        "citations": len(bundle["aggregated_citations"]),
        "diversity": bundle["diversity_metrics"].get("score"),
        "phantom_citations": qa.get("phantom_citations", []),
        "unused_citations": len(qa.get("unused_citations", [])),
    }, indent=2))


if __name__ == "__main__":
    main()
