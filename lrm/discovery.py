#!/usr/bin/env python3
"""
Language discovery.

Finds the language files of the resource sets under a root directory using
the folder convention of the configured (or detected) format, and groups
them per resource set with the default language first.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .config import LrmConfig
from .format_handlers import FormatRegistry
from .format_handlers.android_xml import AndroidXmlHandler
from .format_handlers.ios_strings import IosStringsHandler
from .models import LanguageInfo

logger = logging.getLogger(__name__)


def detect_format(root: Union[str, Path], config: Optional[LrmConfig] = None) -> Optional[str]:
    """
    Infer the resource format of a directory.

    Checks, in order: resx files, .lproj folders, Android values folders,
    JSON files. The configuration file itself never counts.

    Returns:
        Format identifier, or None when nothing recognizable is found
    """
    root = Path(root)
    if not root.is_dir():
        return None

    config = config or LrmConfig()
    if any(root.glob("*.resx")):
        return "resx"
    if IosStringsHandler(config).discover(root):
        return "ios"
    if AndroidXmlHandler(config).discover(root):
        return "android"
    if FormatRegistry.get_handler("json", config).discover(root):
        return "json"
    return None


def _sort_key(language: LanguageInfo) -> tuple:
    return (language.base_name, not language.is_default, language.code.lower())


def discover_languages(
    root: Union[str, Path],
    config: Optional[LrmConfig] = None,
) -> list[LanguageInfo]:
    """
    Discover all language files under root.

    Args:
        root: Resource root directory
        config: Project configuration; its resourceFormat selects the
            handler, otherwise the format is detected

    Returns:
        LanguageInfo list grouped by resource set, default language first,
        then by code. Empty when root is missing or holds no resources.
    """
    root = Path(root)
    config = config or LrmConfig()
    if not root.is_dir():
        logger.debug("Resource root %s does not exist", root)
        return []

    format_name = config.resource_format or detect_format(root, config)
    if format_name is None:
        return []

    handler = FormatRegistry.get_handler(format_name, config)
    languages = sorted(handler.discover(root), key=_sort_key)

    for base_name, members in group_by_resource_set(languages).items():
        if not any(m.is_default for m in members):
            logger.warning("Resource set '%s' has no default language file", base_name)

    logger.debug("Discovered %d %s language files under %s", len(languages), format_name, root)
    return languages


def group_by_resource_set(languages: list[LanguageInfo]) -> dict[str, list[LanguageInfo]]:
    """Group discovered languages by base name, preserving order."""
    groups: dict[str, list[LanguageInfo]] = {}
    for language in languages:
        groups.setdefault(language.base_name, []).append(language)
    return groups
