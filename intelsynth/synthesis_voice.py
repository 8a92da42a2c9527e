#!/usr/bin/env python3
"""
House voice for drafted prose. Pure and deterministic: same text in, same text and report out.

Each check runs on the text as rewritten by the checks before it. Citation markers
such as [3] pass through untouched.
"""
import re

MAX_AVG_SENTENCE_WORDS = 25
MAX_SENTENCE_WORDS = 25
MIN_SPLIT_WORDS = 6

CASUAL_ASIDES = (
    "to be honest", "let me be clear", "frankly", "honestly", "look",
    "basically", "actually", "really", "clearly", "obviously", "essentially", "literally",
)
# Only stripped as sentence openers ("Look, ..."); elsewhere they carry meaning.
_OPENER_ONLY = ("look", "clearly", "obviously")

HEDGES = (
    "it could be argued that", "it seems that", "it appears that", "we believe that",
    "in our opinion,", "arguably,", "to some extent,",
)

CONSULTANT_SPEAK = {
    "strategic alignment": "coordination",
    "best practices": "proven methods",
    "low-hanging fruit": "easy wins",
    "circle back": "follow up",
    "touch base": "connect",
    "deep dive": "detailed analysis",
    "drill down": "examine",
    "move the needle": "make progress",
    "paradigm shift": "major change",
    "game-changer": "significant advantage",
    "game changer": "significant advantage",
    "thought leadership": "expertise",
    "actionable insights": "useful findings",
    "scalable solutions": "adaptable approaches",
    "synergies": "collaboration",
    "synergy": "collaboration",
    "leveraging": "using",
    "leveraged": "used",
    "leverages": "uses",
    "leverage": "use",
    "roadmaps": "plans",
    "roadmap": "plan",
    "workstreams": "projects",
    "workstream": "project",
    "disruptive": "innovative",
}

EXECUTION_TERMS = {
    "cold calls": "direct contact",
    "cold call": "direct contact",
    "direct messages": "messages",
    "direct message": "message",
    "outreach": "engagement",
    "cadences": "frequency",
    "cadence": "frequency",
    "linkedin": "professional network",
}

_SPLITS = ((" and ", ". "), (" but ", ". However, "), (" while ", ". Meanwhile, "))
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_TRUNCATION_RE = re.compile(r"\s*(?:\[\.\.\.\]|\[truncated\]|\(cont(?:inued)?\.?\))", re.I)


def _phrase_re(phrases) -> re.Pattern:
    alts = sorted(phrases, key=len, reverse=True)
    return re.compile(r"\b(" + "|".join(re.escape(p) for p in alts) + r")\b", re.I)


_ASIDE_OPENER_RE = re.compile(
    r"(^|(?<=[.!?])\s+)(" + "|".join(re.escape(a) for a in sorted(CASUAL_ASIDES, key=len, reverse=True)) + r"),\s*",
    re.I,
)
_ASIDE_WORD_RE = _phrase_re([a for a in CASUAL_ASIDES if a not in _OPENER_ONLY and " " not in a])
_HEDGE_RE = re.compile(r"\b(" + "|".join(re.escape(h) for h in HEDGES) + r")\s*", re.I)
_BAN_RE = _phrase_re(CONSULTANT_SPEAK)
_EXEC_RE = _phrase_re(EXECUTION_TERMS)


def _replace(pattern: re.Pattern, table: dict, text: str) -> str:
    # Sentence starts are re-capitalized by _tidy.
    return pattern.sub(lambda m: table[m.group(0).lower()], text)


def split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_RE.split(text.strip()) if s.strip()]


def _words(sentence: str) -> int:
    return len([w for w in sentence.split() if not re.fullmatch(r"\[\d+(?:,\s*\d+)*\]", w)])


def _split_long(sentence: str) -> str:
    if _words(sentence) <= MAX_SENTENCE_WORDS:
        return sentence
    for needle, joiner in _SPLITS:
        idx = sentence.find(needle)
        while idx != -1:
            head, tail = sentence[:idx], sentence[idx + len(needle):]
            if _words(head) >= MIN_SPLIT_WORDS and _words(tail) >= MIN_SPLIT_WORDS:
                head = head.rstrip(" ,;")
                tail = tail[:1].upper() + tail[1:] if joiner == ". " else tail
                return head + joiner + _split_long(tail)
            idx = sentence.find(needle, idx + 1)
    return sentence


def clean_ellipses(text: str) -> str:
    """Drop truncation markers and ellipses left by upstream generation."""
    text = _TRUNCATION_RE.sub("", text)
    text = re.sub(r"\s*(?:\.{3,}|…)+\s*$", ".", text)
    text = re.sub(r"\s*(?:\.{3,}|…)+\s*(?=[A-Z\[])", ". ", text)
    text = re.sub(r"\s*(?:\.{3,}|…)+\s*", " ", text)
    return text


def _tidy(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\s+([,.;:!?])", r"\1", text)
    text = re.sub(r",\s*,", ",", text)
    text = re.sub(r"([.!?])\s*,\s*", r"\1 ", text)
    text = re.sub(r"\.{2}(?!\.)", ".", text)
    text = text.strip().lstrip(",;: ")
    return re.sub(r"(^|[.!?]\s+)([a-z])", lambda m: m.group(1) + m.group(2).upper(), text)


def _breath(text: str) -> dict:
    sentences = split_sentences(text)
    counts = [_words(s) for s in sentences]
    avg = round(sum(counts) / len(counts), 1) if counts else 0.0
    longest = max(counts) if counts else 0
    return {
        "passed": avg <= MAX_AVG_SENTENCE_WORDS and longest <= MAX_SENTENCE_WORDS,
        "avg_words": avg,
        "longest": longest,
    }


def enforce_voice(text: str) -> tuple[str, dict]:
    """Return (rewritten text, report). Report: checks, score (0-100), rewrites_applied."""
    text = text or ""
    checks = {}
    rewrites = []

    asides = len(_ASIDE_OPENER_RE.findall(text)) + len(_ASIDE_WORD_RE.findall(text))
    checks["casual_asides"] = {"passed": asides == 0, "found": asides}
    if asides:
        text = _ASIDE_OPENER_RE.sub(lambda m: m.group(1), text)
        text = _ASIDE_WORD_RE.sub("", text)
        rewrites.append("Removed casual asides")

    hedges = len(_HEDGE_RE.findall(text))
    checks["hedges"] = {"passed": hedges == 0, "found": hedges}
    if hedges:
        text = _HEDGE_RE.sub("", text)
        rewrites.append("Removed hedging")

    banned = sorted({m.lower() for m in _BAN_RE.findall(text)})
    checks["ban_list"] = {"passed": not banned, "found_terms": banned}
    if banned:
        text = _replace(_BAN_RE, CONSULTANT_SPEAK, text)
        rewrites.append("Removed consultant-speak terms")

    execution = sorted({m.lower() for m in _EXEC_RE.findall(text)})
    checks["execution_details"] = {"passed": not execution, "found_terms": execution}
    if execution:
        text = _replace(_EXEC_RE, EXECUTION_TERMS, text)
        rewrites.append("Removed execution details")

    ellipses = len(re.findall(r"\.{3,}|…", text)) + len(_TRUNCATION_RE.findall(text))
    checks["ellipsis"] = {"passed": ellipses == 0, "found": ellipses}
    if ellipses:
        text = clean_ellipses(text)
        rewrites.append("Removed ellipses and truncation markers")

    text = _tidy(text)

    breath = _breath(text)
    checks["sentence_breath"] = breath
    if not breath["passed"]:
        text = " ".join(_split_long(s) for s in split_sentences(text))
        text = _tidy(text)
        rewrites.append("Fixed sentence length")

    passed = sum(1 for c in checks.values() if c["passed"])
    return text, {
        "checks": checks,
        "score": round(passed / len(checks) * 100),
        "rewrites_applied": rewrites,
    }
