#!/usr/bin/env python3
"""
Canonical dataset: one entry per expected slot, cross-slot citation dedup, citation scoring
and source diversity.
"""
from datetime import datetime

from intelsynth.synthesis_common import (
    DEFAULT_EXPECTED_SLOTS,
    SLOT_TOPICS,
    citation_key,
    domain_of,
    slot_key,
)
from intelsynth.synthesis_scoring import average_confidence, score_citations, source_type_distribution

PHASE = "canonicalization"


def diversity_metrics(citations: list[dict]) -> dict:
    """Simpson diversity over citation domains: 1 - sum(p_i^2), 0 for no citations."""
    freq: dict[str, int] = {}
    for c in citations:
        d = domain_of(c.get("url", ""))
        freq[d] = freq.get(d, 0) + 1
    total = sum(freq.values())
    if total == 0:
        score = 0.0
    else:
        score = 1.0 - sum((n / total) ** 2 for n in freq.values())
        score = max(0.0, min(1.0, round(score, 4)))
    ordered = dict(sorted(freq.items(), key=lambda kv: (-kv[1], kv[0])))
    return {
        "unique_domains": len(freq),
        "score": score,
        "domain_frequency": ordered,
        "total_citations": total,
        "source_type_distribution": source_type_distribution(citations),
        "average_confidence": average_confidence(citations),
    }


def citation_density(raw_total: int, present: int, target: float = 10.0) -> dict:
    average = round(raw_total / present, 2) if present else 0.0
    return {"total": raw_total, "average": average, "target": target, "meets_target": average >= target}


def build_canonical_dataset(normalized: dict, expected_slots=DEFAULT_EXPECTED_SLOTS, run_id: str | None = None, density_target: float = 10.0, as_of: datetime | None = None) -> dict:
    """Pure transform from normalized inputs. Slot keys on either side may use any spelling.
    as_of anchors citation recency (default now)."""
    by_key: dict[str, dict] = {}
    for raw_key, entry in (normalized.get("slots") or {}).items():
        key = slot_key(entry.get("slot") or raw_key) if isinstance(entry, dict) else ""
        if key and key not in by_key:
            by_key[key] = entry

    expected = []
    for s in expected_slots:
        k = slot_key(s)
        if k and k not in expected:
            expected.append(k)

    slots: dict[str, dict] = {}
    aggregated: list[dict] = []
    index: dict[str, int] = {}
    raw_citations = 0
    tokens = duration = 0
    present, missing, failed = [], [], []

    for key in expected:
        entry = by_key.get(key)
        slot = {
            "slot": key,
            "topic": SLOT_TOPICS.get(key, key),
            "status": "missing",
            "source_slot_id": None,
            "fields": {},
            "citation_ids": [],
            "citation_count": 0,
            "tokens_used": 0,
            "duration_ms": 0,
        }
        if entry is None:
            missing.append(key)
            slots[key] = slot
            continue
        slot["source_slot_id"] = entry.get("source_slot_id")
        slot["tokens_used"] = int(entry.get("tokens_used") or 0)
        slot["duration_ms"] = int(entry.get("duration_ms") or 0)
        if entry.get("status", "present") != "present":
            slot["status"] = "failed"
            failed.append(key)
            slots[key] = slot
            continue
        slot["status"] = "present"
        slot["fields"] = entry.get("fields") or {}
        present.append(key)
        tokens += slot["tokens_used"]
        duration += slot["duration_ms"]

        cites = entry.get("citations") or []
        raw_citations += len(cites)
        slot["citation_count"] = len(cites)
        for c in cites:
            url = (c.get("url") or "").strip()
            if not url:
                continue
            ck = citation_key(url)
            cid = index.get(ck)
            if cid is None:
                cid = len(aggregated) + 1
                index[ck] = cid
                citation = {
                    "id": cid,
                    "title": c.get("title") or url,
                    "url": url,
                    "source": c.get("source") or domain_of(url),
                }
                if c.get("published"):
                    citation["published"] = c["published"]
                aggregated.append(citation)
            if cid not in slot["citation_ids"]:
                slot["citation_ids"].append(cid)
        slots[key] = slot

    n_expected = len(expected)
    score_citations(aggregated, _cited_by(slots), as_of)
    return {
        "run_id": run_id or normalized.get("run_id"),
        "slots": slots,
        "aggregated_citations": aggregated,
        "diversity_metrics": diversity_metrics(aggregated),
        "citation_density": citation_density(raw_citations, len(present), density_target),
        "stats": {
            "expected_slots": expected,
            "present_slots": present,
            "missing_slots": missing,
            "failed_slots": failed,
            "unexpected_slots": sorted(k for k in by_key if k not in expected),
            "completion_rate": round(len(present) / n_expected, 4) if n_expected else 0.0,
            "raw_citations": raw_citations,
            "unique_citations": len(aggregated),
            "duplicate_citations": raw_citations - len(aggregated),
            "total_tokens": tokens,
            "avg_tokens_per_slot": round(tokens / len(present)) if present else 0,
            "total_duration_ms": duration,
        },
    }


def _cited_by(slots: dict) -> dict[int, int]:
    counts: dict[int, int] = {}
    for slot in slots.values():
        for cid in slot.get("citation_ids") or []:
            counts[cid] = counts.get(cid, 0) + 1
    return counts


def refresh_citation_metrics(dataset: dict, density_target: float = 10.0, as_of: datetime | None = None) -> dict:
    """Score citations that carry no confidence yet and recompute diversity and density.
    Used when resuming from a stored dataset, which may predate scoring."""
    cites = dataset.get("aggregated_citations") or []
    unscored = [c for c in cites if "confidence" not in c or "source_type" not in c]
    if unscored:
        score_citations(unscored, _cited_by(dataset.get("slots") or {}), as_of)
    for c in cites:
        if not c.get("source"):
            c["source"] = domain_of(c.get("url", ""))
    dataset["diversity_metrics"] = diversity_metrics(cites)
    stats = dataset.get("stats") or {}
    raw = stats.get("raw_citations")
    if raw is None:
        raw = sum(int(s.get("citation_count") or 0) for s in (dataset.get("slots") or {}).values())
    dataset["citation_density"] = citation_density(raw, len(stats.get("present_slots") or []), density_target)
    return dataset


def canonicalize(store, run_id: str, normalized: dict, config, persist: bool = True, generation: int = 0) -> dict:
    dataset = build_canonical_dataset(normalized, config.expected_slots, run_id, config.citation_density_target)
    if persist:
        store.save_artifact(run_id, PHASE, "canonical_dataset", dataset, generation)
    return dataset
