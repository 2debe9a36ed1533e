#!/usr/bin/env python3
"""
Format-agnostic resource model.

LanguageInfo identifies one file of a resource set, ResourceEntry is one
translatable unit and ResourceFile ties an ordered list of entries to the
language it was loaded from. Handlers produce and consume these; nothing
here knows about any on-disk format.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

from .exceptions import KeyAlreadyExistsError, KeyNotFoundError


@dataclass
class LanguageInfo:
    """
    Identity of one resource file.

    Attributes:
        base_name: Stem shared by all languages of the resource set
        code: Culture code; empty string for the default language
        file_path: Path to the backing file
        name: Display name (derived, not authoritative)
    """
    base_name: str
    code: str
    file_path: Path
    name: str = ""

    def __post_init__(self):
        self.file_path = Path(self.file_path)
        self.code = self.code or ""
        if not self.name:
            self.name = "Default" if not self.code else self.code

    @property
    def is_default(self) -> bool:
        return self.code == ""

    def to_dict(self) -> dict:
        return {
            "base_name": self.base_name,
            "code": self.code,
            "name": self.name,
            "is_default": self.is_default,
            "file_path": str(self.file_path),
        }


@dataclass
class ResourceEntry:
    """
    One translatable unit.

    Attributes:
        key: Unique, case-sensitive key
        value: Translated text; may be empty but the key is always kept
        comment: Translator comment, if the format can store one
        metadata: Format-specific data needed to rewrite the entry losslessly
    """
    key: str
    value: str = ""
    comment: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.key = str(self.key)
        if self.value is None:
            self.value = ""


@dataclass
class ResourceFile:
    """A language plus its entries in file order."""
    language: LanguageInfo
    entries: list[ResourceEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ResourceEntry]:
        return iter(self.entries)

    def __contains__(self, key: object) -> bool:
        return any(e.key == key for e in self.entries)

    def keys(self) -> list[str]:
        return [e.key for e in self.entries]

    def get(self, key: str) -> Optional[ResourceEntry]:
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None

    def add_entry(self, entry: ResourceEntry) -> None:
        """Append an entry; keys must stay unique."""
        if entry.key in self:
            raise KeyAlreadyExistsError(
                f"Key '{entry.key}' already exists",
                path=str(self.language.file_path),
            )
        self.entries.append(entry)

    def remove_entry(self, key: str) -> ResourceEntry:
        """Remove and return the entry for key."""
        for i, entry in enumerate(self.entries):
            if entry.key == key:
                return self.entries.pop(i)
        raise KeyNotFoundError(
            f"Key '{key}' not found",
            path=str(self.language.file_path),
        )
