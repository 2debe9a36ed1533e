#!/usr/bin/env python3
"""
Format handlers for localization resource files.

Supported formats:
- JSON: flat or nested JSON objects (strings.json, strings.fr.json)
- resx: .NET XML resources (Resources.resx, Resources.fr.resx)
- Android XML: res/values*/strings.xml
- iOS Strings: *.lproj/Localizable.strings
"""

from .base import (
    CultureSuffixLayout,
    FormatHandler,
    FormatRegistry,
)
from .android_xml import AndroidXmlHandler
from .ios_strings import IosStringsHandler
from .json_handler import JsonHandler
from .resx import ResxHandler

FormatRegistry.register(JsonHandler)
FormatRegistry.register(ResxHandler)
FormatRegistry.register(AndroidXmlHandler)
FormatRegistry.register(IosStringsHandler)

__all__ = [
    'CultureSuffixLayout',
    'FormatHandler',
    'FormatRegistry',
    'AndroidXmlHandler',
    'IosStringsHandler',
    'JsonHandler',
    'ResxHandler',
]
