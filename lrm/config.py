#!/usr/bin/env python3
"""
Project configuration (lrm.json).

The file is a JSON object with camelCase keys:

```json
{
  "defaultLanguageCode": "en",
  "resourceFormat": "json",
  "json": {"baseName": "strings", "useNestedKeys": false,
           "includeMeta": false, "preserveComments": true},
  "android": {"resourceFileName": "strings.xml"},
  "ios": {"stringsFileName": "Localizable.strings", "defaultFolder": "Base"},
  "backup": {"enabled": true, "maxVersions": 10}
}
```

Every key is optional. The core only reads this file; save_config exists
for project scaffolding.
"""

import json
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationError, UnsupportedFormatError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "lrm.json"

SUPPORTED_FORMATS = ("json", "resx", "android", "ios")

FORMAT_ALIASES = {
    "strings": "ios",
    "xml": "android",
}


def normalize_format_name(name: str) -> str:
    """Map a format identifier or alias to its canonical name."""
    key = (name or "").strip().lower()
    key = FORMAT_ALIASES.get(key, key)
    if key not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(
            f"Unknown format: {name}. Available: {', '.join(SUPPORTED_FORMATS)}"
        )
    return key


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _snake(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


class _Section:
    """camelCase <-> dataclass conversion shared by all config sections."""

    def to_dict(self) -> dict:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[dict]):
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError(f"Section for {cls.__name__} must be an object")
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _snake(key)
            if name in known:
                kwargs[name] = value
            else:
                logger.debug("Ignoring unknown config key %s.%s", cls.__name__, key)
        return cls(**kwargs)


@dataclass
class JsonFormatConfig(_Section):
    """Options for the JSON handler."""
    base_name: str = "strings"
    use_nested_keys: bool = False
    include_meta: bool = False
    preserve_comments: bool = True


@dataclass
class AndroidFormatConfig(_Section):
    """Options for the Android handler."""
    resource_file_name: str = "strings.xml"


@dataclass
class IosFormatConfig(_Section):
    """
    Options for the iOS handler.

    default_folder: "Base" or a language code naming the .lproj folder that
    holds the default language. None means: an existing Base.lproj wins,
    otherwise {defaultLanguageCode or "en"}.lproj.
    """
    strings_file_name: str = "Localizable.strings"
    default_folder: Optional[str] = None


@dataclass
class BackupConfig(_Section):
    """Backup store options."""
    enabled: bool = True
    max_versions: int = 10

    def __post_init__(self):
        if not isinstance(self.max_versions, int) or self.max_versions < 1:
            raise ConfigurationError(
                f"backup.maxVersions must be a positive integer, got {self.max_versions!r}"
            )


@dataclass
class LrmConfig:
    """Whole-project configuration."""
    default_language_code: Optional[str] = None
    resource_format: Optional[str] = None
    json: JsonFormatConfig = field(default_factory=JsonFormatConfig)
    android: AndroidFormatConfig = field(default_factory=AndroidFormatConfig)
    ios: IosFormatConfig = field(default_factory=IosFormatConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    source_path: Optional[Path] = None

    def __post_init__(self):
        if self.resource_format:
            self.resource_format = normalize_format_name(self.resource_format)

    def to_dict(self) -> dict:
        """Convert to the on-disk lrm.json structure."""
        data: dict[str, Any] = {}
        if self.default_language_code:
            data["defaultLanguageCode"] = self.default_language_code
        if self.resource_format:
            data["resourceFormat"] = self.resource_format
        data["json"] = self.json.to_dict()
        data["android"] = self.android.to_dict()
        data["ios"] = self.ios.to_dict()
        data["backup"] = self.backup.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LrmConfig":
        """Create from parsed lrm.json content."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a JSON object")
        return cls(
            default_language_code=data.get("defaultLanguageCode") or None,
            resource_format=data.get("resourceFormat") or None,
            json=JsonFormatConfig.from_dict(data.get("json")),
            android=AndroidFormatConfig.from_dict(data.get("android")),
            ios=IosFormatConfig.from_dict(data.get("ios")),
            backup=BackupConfig.from_dict(data.get("backup")),
        )


def find_config_file(path: Union[str, Path]) -> Optional[Path]:
    """Return lrm.json for a directory or an explicit file path, if it exists."""
    path = Path(path)
    candidate = path if path.suffix == ".json" and path.name.startswith("lrm") else path / CONFIG_FILE_NAME
    return candidate if candidate.is_file() else None


def load_config(path: Union[str, Path]) -> LrmConfig:
    """
    Load configuration for a resource root.

    Args:
        path: Resource root directory or path to an lrm.json file

    Returns:
        LrmConfig; defaults when no configuration file exists
    """
    config_file = find_config_file(path)
    if config_file is None:
        logger.debug("No %s under %s, using defaults", CONFIG_FILE_NAME, path)
        return LrmConfig()

    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Invalid JSON in configuration: {e.msg} at line {e.lineno}",
            path=str(config_file),
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration: {e}", path=str(config_file)) from e

    try:
        config = LrmConfig.from_dict(data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", path=str(config_file)) from e
    config.source_path = config_file
    logger.debug("Loaded configuration from %s", config_file)
    return config


def save_config(config: LrmConfig, directory: Union[str, Path]) -> Path:
    """Write lrm.json into directory; used by project scaffolding."""
    target = Path(directory) / CONFIG_FILE_NAME
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        json.dumps(config.to_dict(), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    config.source_path = target
    return target
