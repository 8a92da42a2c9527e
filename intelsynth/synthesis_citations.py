#!/usr/bin/env python3
"""Resolve [n] markers in drafted sections against the aggregated citation list."""
import re

MARKER_RE = re.compile(r"\[(\d+(?:\s*,\s*\d+)*)\]")


def extract_markers(content: str) -> list[int]:
    out = []
    for m in MARKER_RE.finditer(content or ""):
        out.extend(int(n) for n in re.split(r"\s*,\s*", m.group(1)))
    return out


def resolve_citations(sections: dict, aggregated_citations: list[dict]) -> dict:
    """
    Classify every marker: valid (1..N), phantom (outside the list). Valid ids never
    referenced anywhere are unused. Returns sections with citations_used filled in
    plus the QA report; never raises on bad markers.
    """
    total = len(aggregated_citations)
    resolved: dict[str, dict] = {}
    per_section: dict[str, dict] = {}
    used: set = set()
    phantom: set = set()
    markers = 0

    for code, section in sections.items():
        content = section.get("content", "")
        found = extract_markers(content)
        markers += len(found)
        valid = sorted({n for n in found if 1 <= n <= total})
        bad = sorted({n for n in found if not 1 <= n <= total})
        used.update(valid)
        phantom.update(bad)
        resolved[code] = {"content": content, "citations_used": valid}
        per_section[code] = {"markers": len(found), "valid": valid, "phantom": bad}

    unused = [i for i in range(1, total + 1) if i not in used]
    qa = {
        "phantom_citations": sorted(phantom),
        "unused_citations": unused,
        "valid_citations": sorted(used),
        "counts": {
            "markers": markers,
            "valid": len(used),
            "phantom": len(phantom),
            "unused": len(unused),
            "total": total,
        },
        "coverage": round(len(used) / total, 4) if total else 0.0,
        "per_section": per_section,
    }
    return {"sections": resolved, "qa": qa}
