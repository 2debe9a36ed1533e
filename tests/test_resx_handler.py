#!/usr/bin/env python3
"""
Tests for ResxHandler.

Tests verify:
1. String <data> elements become entries with their comments
2. Non-string resources are left alone
3. Rewriting keeps resheaders and other non-data content
4. New files get the standard resheaders
"""

from pathlib import Path

import pytest

from lrm.exceptions import ResourceParseError
from lrm.format_handlers.resx import ResxHandler
from lrm.models import LanguageInfo, ResourceEntry, ResourceFile


TEST_RESX = """<?xml version="1.0" encoding="utf-8"?>
<root>
  <!-- generated by the designer -->
  <resheader name="resmimetype">
    <value>text/microsoft-resx</value>
  </resheader>
  <resheader name="version">
    <value>2.0</value>
  </resheader>
  <data name="Welcome" xml:space="preserve">
    <value>Welcome!</value>
    <comment>Home page title</comment>
  </data>
  <data name="Logo" type="System.Resources.ResXFileRef, System.Windows.Forms">
    <value>logo.png;System.Drawing.Bitmap</value>
  </data>
  <data name="Empty" xml:space="preserve">
    <value />
  </data>
</root>
"""


@pytest.fixture
def handler():
    return ResxHandler()


def _language(path: Path, code: str = "") -> LanguageInfo:
    return LanguageInfo(base_name="Resources", code=code, file_path=path)


def test_parse_string_resources(handler):
    """Test that only string data elements become entries."""
    entries = handler.parse(TEST_RESX)
    assert [(e.key, e.value, e.comment) for e in entries] == [
        ("Welcome", "Welcome!", "Home page title"),
        ("Empty", "", None),
    ]


def test_rewrite_preserves_document(tmp_path, handler):
    """Test that resheaders, comments and file resources survive a rewrite."""
    path = tmp_path / "Resources.resx"
    path.write_text(TEST_RESX, encoding="utf-8")

    resource_file = handler.read(path)
    resource_file.add_entry(ResourceEntry(key="Goodbye", value="Bye", comment="Footer"))
    handler.write(resource_file)

    output = path.read_text(encoding="utf-8")
    assert output.startswith('<?xml version="1.0" encoding="utf-8"?>')
    assert "generated by the designer" in output
    assert '<resheader name="resmimetype">' in output
    assert 'name="Logo"' in output
    assert [e.key for e in handler.read(path).entries] == ["Welcome", "Empty", "Goodbye"]
    assert handler.read(path).get("Goodbye").comment == "Footer"


def test_new_file_gets_resheaders(tmp_path, handler):
    """Test that a new file carries the standard resheaders."""
    path = tmp_path / "Resources.fr.resx"
    handler.write(ResourceFile(language=_language(path, "fr"), entries=[ResourceEntry(key="A", value="B")]))

    output = path.read_text(encoding="utf-8")
    for name in ("resmimetype", "version", "reader", "writer"):
        assert f'<resheader name="{name}">' in output
    assert '<data name="A" xml:space="preserve">' in output
    assert "<value>B</value>" in output


def test_round_trip_is_stable(tmp_path, handler):
    """Test that a second write changes nothing."""
    path = tmp_path / "Resources.resx"
    path.write_text(TEST_RESX, encoding="utf-8")

    handler.write(handler.read(path))
    first = path.read_text(encoding="utf-8")
    handler.write(handler.read(path))
    assert path.read_text(encoding="utf-8") == first


def test_special_characters_round_trip(tmp_path, handler):
    """Test XML characters, newlines and carriage returns."""
    path = tmp_path / "Resources.resx"
    values = ["a < b & c > d", "line1\nline2", "with\r\nCRLF", "  padded  ", 'quote "q"']
    entries = [ResourceEntry(key=f"K{i}", value=v) for i, v in enumerate(values)]
    handler.write(ResourceFile(language=_language(path), entries=entries))

    assert [e.value for e in handler.read(path).entries] == values


def test_duplicate_keys_first_wins(handler):
    """Test that the first of two equal names is kept."""
    content = """<root>
  <data name="A"><value>first</value></data>
  <data name="A"><value>second</value></data>
</root>"""
    assert [(e.key, e.value) for e in handler.parse(content)] == [("A", "first")]


def test_malformed_xml(handler):
    """Test that invalid XML raises ResourceParseError with position."""
    with pytest.raises(ResourceParseError) as exc_info:
        handler.parse("<root>\n  <data name='A'>\n</root>")
    assert exc_info.value.line is not None


def test_file_naming(tmp_path, handler):
    """Test resx culture file names."""
    assert handler.language_file_path(tmp_path, "Resources", "") == tmp_path / "Resources.resx"
    assert handler.language_file_path(tmp_path, "Resources", "de-DE") == tmp_path / "Resources.de-DE.resx"
