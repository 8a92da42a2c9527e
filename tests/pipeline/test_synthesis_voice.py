"""Unit tests for intelsynth/synthesis_voice.py."""
from intelsynth.synthesis_voice import clean_ellipses, enforce_voice, split_sentences


def test_asides_and_consultant_speak_rewritten():
    """Opening aside removed, banned terms replaced, sentence re-capitalized."""
    text, report = enforce_voice("Frankly, we need to leverage synergy across the roadmap.")
    assert text == "We need to use collaboration across the plan."
    assert "Removed casual asides" in report["rewrites_applied"]
    assert "Removed consultant-speak terms" in report["rewrites_applied"]
    assert report["checks"]["ban_list"]["found_terms"] == ["leverage", "roadmap", "synergy"]
    assert report["score"] == 67


def test_clean_text_scores_100():
    """Compliant text passes through unchanged with score 100."""
    text, report = enforce_voice("Operating margin fell to 3.1% in 2024.")
    assert text == "Operating margin fell to 3.1% in 2024."
    assert report["score"] == 100
    assert report["rewrites_applied"] == []


def test_deterministic():
    """Same input, same output and report."""
    s = "Basically, the deep dive shows costs are really rising..."
    assert enforce_voice(s) == enforce_voice(s)


def test_citation_markers_preserved():
    """[n] markers survive rewriting."""
    text, _ = enforce_voice("Honestly, labor costs rose 9% [4].")
    assert text == "Labor costs rose 9% [4]."


def test_hedges_removed():
    """Hedging openers are dropped."""
    text, report = enforce_voice("It seems that demand is softening.")
    assert text == "Demand is softening."
    assert report["checks"]["hedges"]["found"] == 1


def test_execution_terms_replaced():
    """Outreach/LinkedIn style execution language is neutralized."""
    text, _ = enforce_voice("Their outreach runs through LinkedIn.")
    assert text == "Their engagement runs through professional network."


def test_long_sentence_split():
    """Sentences over 25 words are split at a conjunction."""
    long = (
        "The health system expanded ambulatory capacity across three regional markets during the last fiscal year "
        "and the finance team now expects the new sites to reach breakeven within eighteen months of opening."
    )
    text, report = enforce_voice(long)
    sentences = split_sentences(text)
    assert len(sentences) == 2
    assert sentences[1].startswith("The finance team")
    assert "Fixed sentence length" in report["rewrites_applied"]


def test_ellipses_cleaned():
    """Trailing and mid-text ellipses and truncation markers removed."""
    assert clean_ellipses("Costs rose... Margins fell...") == "Costs rose. Margins fell."
    assert clean_ellipses("Revenue [truncated]") == "Revenue"
    text, _ = enforce_voice("Growth slowed…")
    assert text == "Growth slowed."


def test_empty_text():
    """Empty input returns empty text and a full report."""
    text, report = enforce_voice("")
    assert text == ""
    assert set(report) == {"checks", "score", "rewrites_applied"}
