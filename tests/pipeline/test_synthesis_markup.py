"""Unit tests for intelsynth/synthesis_markup.py."""
import pytest

from intelsynth.synthesis_errors import ValidationRejection
from intelsynth.synthesis_markup import ALLOWED_CLASSES, plain_text_fallback, validate_section_html

SECTION = '<h4 class="subsection-header">Pressure themes</h4><div class="highlight"><p>Rates rose [1].</p></div>'


def test_allowed_markup_passes():
    """Allow-listed tags and classes are returned unchanged."""
    assert validate_section_html(SECTION) == SECTION


def test_subsection_header_rejected_when_not_allowed():
    """Same markup fails once subsection-header leaves the allow-list."""
    with pytest.raises(ValidationRejection) as exc:
        validate_section_html(SECTION, allowed_classes=ALLOWED_CLASSES - {"subsection-header"})
    assert exc.value.classes == ["subsection-header"]


def test_disallowed_tag_and_attribute():
    """script tags and style attributes are rejected."""
    with pytest.raises(ValidationRejection) as exc:
        validate_section_html('<p style="color:red">x</p><script>alert(1)</script>')
    assert "script" in exc.value.tags
    assert "style" in exc.value.tags


def test_plain_text_fallback_escapes():
    """Fallback keeps the text only, escaped, in one paragraph."""
    out = plain_text_fallback('<h4 class="bogus">Title</h4><p>a &lt; b</p>')
    assert out == "<p>Title a &lt; b</p>"
    validate_section_html(out)
