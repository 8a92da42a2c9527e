#!/usr/bin/env python3
"""
Citation scoring: source type, confidence and source-type balance.

confidence = 0.5 * authority + 0.2 * recency + 0.3 * corroboration, each in [0, 1].
Authority comes from a domain table, recency from the citation's published date
(0.5 when there is none), corroboration from how many slots cite the same source.
"""
from datetime import datetime, timezone

from intelstore.common import parse_ts
from intelsynth.synthesis_common import domain_of

DOMAIN_AUTHORITY = {
    "sec.gov": 1.0,
    "fda.gov": 1.0,
    "nih.gov": 0.98,
    "investor.gov": 0.95,
    "bloomberg.com": 0.95,
    "reuters.com": 0.95,
    "wsj.com": 0.95,
    "ft.com": 0.9,
    "nejm.org": 0.9,
    "jamanetwork.com": 0.9,
    "forbes.com": 0.85,
    "fortune.com": 0.85,
    "businesswire.com": 0.8,
    "prnewswire.com": 0.8,
    "medscape.com": 0.8,
    "techcrunch.com": 0.75,
    "crunchbase.com": 0.75,
    "linkedin.com": 0.7,
    "glassdoor.com": 0.65,
}
DEFAULT_AUTHORITY = 0.4
INVESTOR_AUTHORITY = 0.75

# First match wins. "x." matches a host prefix, ".x" a suffix, "a.b" the domain or a subdomain,
# anything else a substring.
SOURCE_TYPE_PATTERNS = (
    ("regulatory", ("sec.gov", "investor.gov", "fdic.gov", "occ.gov", "fda.gov", "nih.gov")),
    ("news", ("bloomberg", "reuters", "wsj", "ft.com", "forbes", "fortune", "cnbc", "marketwatch")),
    ("analyst", ("gartner", "forrester", "idc.com", "mckinsey", "deloitte", "pwc", "bcg.com")),
    ("company", ("investor.", "ir.", "investors.", "about.", "newsroom.")),
    ("academic", (".edu", ".ac.uk", "university", "college", "research")),
    ("healthcare", ("pharma", "medscape", "nejm", "jama", "healthcare", "health")),
    ("industry", ("trade", "association", "institute", "society", "foundation")),
)
OTHER_SOURCE_TYPE = "other"

# Share of citations per source type considered balanced: (min, max).
BALANCE_RANGES = {
    "company": (0.15, 0.35),
    "news": (0.15, 0.35),
    "regulatory": (0.10, 0.25),
    "industry": (0.05, 0.20),
}

_RECENCY_TIERS = ((30, 1.0), (90, 0.85), (180, 0.7), (365, 0.55))


def _match(domain: str, pattern: str) -> bool:
    if pattern.endswith("."):
        return domain.startswith(pattern)
    if pattern.startswith("."):
        return domain.endswith(pattern)
    if "." in pattern:
        return domain == pattern or domain.endswith("." + pattern)
    return pattern in domain


def source_type(domain: str) -> str:
    d = (domain or "").lower()
    for kind, patterns in SOURCE_TYPE_PATTERNS:
        if any(_match(d, p) for p in patterns):
            return kind
    return OTHER_SOURCE_TYPE


def authority(domain: str) -> float:
    d = (domain or "").lower()
    if d in DOMAIN_AUTHORITY:
        return DOMAIN_AUTHORITY[d]
    for known, score in DOMAIN_AUTHORITY.items():
        if d.endswith("." + known):
            return round(score * 0.95, 4)
    if d.startswith(("investor.", "investors.", "ir.")):
        return INVESTOR_AUTHORITY
    return DEFAULT_AUTHORITY


def recency(published: str | None, as_of: datetime) -> float:
    ts = parse_ts(published or "")
    if ts is None:
        return 0.5
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    days = (as_of - ts).days
    for limit, score in _RECENCY_TIERS:
        if days <= limit:
            return score
    return 0.4


def corroboration(slot_count: int) -> float:
    if slot_count >= 3:
        return 1.0
    if slot_count == 2:
        return 0.75
    return 0.5


def score_citations(citations: list[dict], cited_by: dict[int, int] | None = None, as_of: datetime | None = None) -> list[dict]:
    """Set source_type and confidence on each citation in place. cited_by maps id -> number of citing slots."""
    as_of = as_of or datetime.now(timezone.utc)
    cited_by = cited_by or {}
    for c in citations:
        domain = domain_of(c.get("url", ""))
        c["source_type"] = source_type(domain)
        c["confidence"] = round(
            0.5 * authority(domain)
            + 0.2 * recency(c.get("published"), as_of)
            + 0.3 * corroboration(cited_by.get(c.get("id"), 1)),
            2,
        )
    return citations


def source_type_distribution(citations: list[dict]) -> dict[str, float]:
    counts: dict[str, int] = {}
    for c in citations:
        kind = c.get("source_type") or source_type(domain_of(c.get("url", "")))
        counts[kind] = counts.get(kind, 0) + 1
    total = sum(counts.values())
    return {k: round(n / total, 4) for k, n in sorted(counts.items())} if total else {}


def citation_balance(distribution: dict[str, float]) -> dict:
    """Compare the source-type mix with BALANCE_RANGES. Never blocks synthesis."""
    warnings = []
    score = 1.0
    for kind, (low, high) in BALANCE_RANGES.items():
        share = distribution.get(kind, 0.0)
        if share < low:
            warnings.append(f"{kind} sources underrepresented: {share:.0%} (min {low:.0%})")
            score -= 0.10
        elif share > high:
            warnings.append(f"{kind} sources overrepresented: {share:.0%} (max {high:.0%})")
            score -= 0.05
    return {"score": round(max(0.0, score), 2), "warnings": warnings}


def average_confidence(citations: list[dict]) -> float:
    scores = [c["confidence"] for c in citations if isinstance(c.get("confidence"), (int, float))]
    return round(sum(scores) / len(scores), 4) if scores else 0.0
