#!/usr/bin/env python3
"""Allow-list validation for drafted section markup."""
import html

from bs4 import BeautifulSoup

from intelsynth.synthesis_errors import ValidationRejection

ALLOWED_TAGS = frozenset({"div", "p", "h4", "ul", "li", "strong", "em", "span"})
ALLOWED_CLASSES = frozenset({
    "highlight",
    "fact-grid",
    "fact",
    "subsection-header",
    "perf-gap",
    "timeline",
    "accountability",
    "placeholder",
})
ALLOWED_ATTRIBUTES = frozenset({"class"})


def validate_section_html(markup: str, allowed_classes=ALLOWED_CLASSES, allowed_tags=ALLOWED_TAGS) -> str:
    """Return markup unchanged if every tag, attribute and class is allowed; raise ValidationRejection otherwise."""
    soup = BeautifulSoup(markup or "", "html.parser")
    bad_tags, bad_classes, bad_attrs = set(), set(), set()
    for el in soup.find_all(True):
        if el.name not in allowed_tags:
            bad_tags.add(el.name)
        for attr in el.attrs:
            if attr not in ALLOWED_ATTRIBUTES:
                bad_attrs.add(attr)
        for cls in el.get("class") or []:
            if cls not in allowed_classes:
                bad_classes.add(cls)
    if bad_tags or bad_classes or bad_attrs:
        parts = []
        if bad_tags:
            parts.append(f"tags {sorted(bad_tags)}")
        if bad_classes:
            parts.append(f"classes {sorted(bad_classes)}")
        if bad_attrs:
            parts.append(f"attributes {sorted(bad_attrs)}")
        raise ValidationRejection("disallowed " + ", ".join(parts), sorted(bad_tags | bad_attrs), sorted(bad_classes))
    return markup


def plain_text_fallback(markup: str) -> str:
    """Strip all markup and return the text as one escaped paragraph."""
    text = BeautifulSoup(markup or "", "html.parser").get_text(" ", strip=True)
    text = " ".join(text.split())
    return f"<p>{html.escape(text, quote=False)}</p>"
