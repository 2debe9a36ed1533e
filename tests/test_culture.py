#!/usr/bin/env python3
"""
Tests for culture code validation.

Tests verify:
1. Known codes validate and carry display names
2. Malformed and unknown codes are rejected without raising
3. Canonical casing
"""

import pytest

from lrm.culture import canonicalize, get_display_name, is_valid_culture_code


@pytest.mark.parametrize("code", ["fr", "fr-FR", "de-DE", "zh-Hans", "sr-Latn-RS", "es-419", "pt_BR"])
def test_known_codes_are_valid(code):
    """Test that real culture codes validate."""
    valid, culture = is_valid_culture_code(code)
    assert valid is True
    assert culture is not None
    assert culture.display_name


@pytest.mark.parametrize("code", ["", "not a code!", "x", "french", "fr-FRANCE", "zz", None])
def test_invalid_codes_are_rejected(code):
    """Test that malformed or unknown codes return (False, None)."""
    assert is_valid_culture_code(code) == (False, None)


def test_display_names():
    """Test English display names."""
    valid, culture = is_valid_culture_code("fr-FR")
    assert culture.code == "fr-FR"
    assert culture.display_name == "French (France)"
    assert culture.native_name == "français (France)"


@pytest.mark.parametrize("code, expected", [
    ("FR-fr", "fr-FR"),
    ("zh_hans", "zh-Hans"),
    ("SR-latn-rs", "sr-Latn-RS"),
    ("en", "en"),
    ("bad code", None),
])
def test_canonicalize(code, expected):
    """Test canonical casing of language, script and region."""
    assert canonicalize(code) == expected


def test_default_language_display_name():
    """Test that the empty code is named Default."""
    assert get_display_name("") == "Default"
    assert get_display_name("de") == "German"
