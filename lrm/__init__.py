"""
lrm - Localization Resource Manager

Reads and writes the language files of a localization resource set in
JSON, .resx, Android strings.xml and iOS .strings formats, snapshots every
file before it is modified, and runs chains of commands.

Quick start:
    lrm init --format json --languages fr de
    lrm add Welcome "Welcome!" --lang fr=Bienvenue
    lrm backup list strings.fr.json
    lrm chain "add-language es -- add Bye Goodbye --lang es=Adiós"
"""

__version__ = "1.0.0"

from .backup import BackupMetadata, BackupVersionManager
from .chain import ChainExecutionContext, parse_chain, validate_chain
from .config import LrmConfig, load_config
from .culture import CultureInfo, is_valid_culture_code
from .discovery import detect_format, discover_languages
from .format_handlers import FormatHandler, FormatRegistry
from .models import LanguageInfo, ResourceEntry, ResourceFile
from .operations import ResourceManager

__all__ = [
    "BackupMetadata",
    "BackupVersionManager",
    "ChainExecutionContext",
    "CultureInfo",
    "FormatHandler",
    "FormatRegistry",
    "LanguageInfo",
    "LrmConfig",
    "ResourceEntry",
    "ResourceFile",
    "ResourceManager",
    "detect_format",
    "discover_languages",
    "is_valid_culture_code",
    "load_config",
    "parse_chain",
    "validate_chain",
]
