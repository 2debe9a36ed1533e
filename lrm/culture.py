#!/usr/bin/env python3
"""
Culture code validation backed by Babel's CLDR data.

Accepted syntax is a BCP 47 subset: language, language-Script,
language-REGION and language-Script-REGION (e.g. "fr", "zh-Hans",
"fr-FR", "sr-Latn-RS"). Validation never raises; it answers with a
boolean and, on success, a CultureInfo carrying display names.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from babel import Locale, UnknownLocaleError

logger = logging.getLogger(__name__)

CULTURE_CODE_PATTERN = re.compile(
    r'^(?P<language>[A-Za-z]{2,3})'
    r'(?:-(?P<script>[A-Za-z]{4}))?'
    r'(?:-(?P<region>[A-Za-z]{2}|[0-9]{3}))?$'
)


@dataclass(frozen=True)
class CultureInfo:
    """Resolved culture."""
    code: str            # canonical form, e.g. "fr-FR"
    display_name: str    # English, e.g. "French (France)"
    native_name: str     # e.g. "français (France)"


def canonicalize(code: str) -> Optional[str]:
    """Return the canonical casing of a syntactically valid code, else None."""
    if not isinstance(code, str):
        return None
    match = CULTURE_CODE_PATTERN.match(code.strip().replace('_', '-'))
    if not match:
        return None
    parts = [match.group('language').lower()]
    if match.group('script'):
        parts.append(match.group('script').title())
    if match.group('region'):
        parts.append(match.group('region').upper())
    return '-'.join(parts)


def is_valid_culture_code(code: str) -> tuple[bool, Optional[CultureInfo]]:
    """
    Validate a culture code.

    Args:
        code: Candidate code, e.g. "fr-FR"

    Returns:
        (True, CultureInfo) when Babel knows the locale, (False, None)
        for malformed or unknown codes
    """
    canonical = canonicalize(code)
    if canonical is None:
        return False, None

    try:
        locale = Locale.parse(canonical, sep='-')
    except (ValueError, TypeError, UnknownLocaleError) as e:
        logger.debug("Rejected culture code %r: %s", code, e)
        return False, None

    display_name = locale.get_display_name('en') or canonical
    native_name = locale.get_display_name() or display_name
    return True, CultureInfo(
        code=canonical,
        display_name=display_name,
        native_name=native_name,
    )


def get_display_name(code: str) -> str:
    """Human-readable name for a language code; "Default" for the empty code."""
    if not code:
        return "Default"
    valid, culture = is_valid_culture_code(code)
    if valid:
        return culture.display_name
    return code.upper()
