#!/usr/bin/env python3
"""
Base classes for format handlers.

FormatHandler is the abstract base class that all format-specific handlers
must implement. Each handler owns one on-disk encoding: how a file is
parsed into ResourceEntry objects, how a ResourceFile is serialized back,
and how language files of a resource set are named and laid out on disk.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

from ..config import CONFIG_FILE_NAME, LrmConfig, normalize_format_name
from ..culture import get_display_name, is_valid_culture_code
from ..exceptions import (
    DefaultLanguageProtectedError,
    ResourceNotFoundError,
    UnsupportedFormatError,
)
from ..models import LanguageInfo, ResourceEntry, ResourceFile

logger = logging.getLogger(__name__)


class FormatHandler(ABC):
    """
    Abstract base class for format-specific handlers.

    The handler is responsible for converting between the on-disk structure
    and the format-agnostic ResourceFile, and for the folder convention of
    its format (where the default language lives, how culture codes map to
    file or folder names).
    """

    def __init__(self, config: Optional[LrmConfig] = None):
        self.config = config or LrmConfig()

    @property
    @abstractmethod
    def name(self) -> str:
        """Format identifier used by the registry."""
        pass

    @property
    @abstractmethod
    def file_extensions(self) -> list[str]:
        """List of file extensions this handler supports (without dot)."""
        pass

    @property
    def supports_comments(self) -> bool:
        """Whether comments survive a read/write cycle in this format."""
        return True

    @abstractmethod
    def parse(self, content: str, source: Optional[str] = None) -> list[ResourceEntry]:
        """
        Parse format-specific content into resource entries.

        Args:
            content: Raw file content as string
            source: Path used in error messages

        Returns:
            List of ResourceEntry objects in file order, keys unique

        Raises:
            ResourceParseError: content is malformed
        """
        pass

    @abstractmethod
    def serialize(self, resource_file: ResourceFile) -> str:
        """
        Serialize a resource file to its on-disk text.

        Args:
            resource_file: Language and entries to encode

        Returns:
            Complete file content as string
        """
        pass

    @abstractmethod
    def discover(self, root: Union[str, Path]) -> list[LanguageInfo]:
        """
        Find every language file under root following this format's layout.

        Returns:
            LanguageInfo list; empty when nothing matches
        """
        pass

    @abstractmethod
    def language_file_path(self, root: Union[str, Path], base_name: str, code: str) -> Path:
        """Path where the file for (base_name, code) lives under root."""
        pass

    def validate_key(self, key: str) -> None:
        """
        Check that key can be written and read back by this format.

        Raises:
            InvalidKeyError: the format would drop or alter the key
        """
        pass

    def language_for_path(self, path: Union[str, Path]) -> LanguageInfo:
        """
        Infer a LanguageInfo from a single file path.

        Handlers override this with their naming convention; the fallback
        treats the file as the default language of a set named after it.
        """
        path = Path(path)
        return LanguageInfo(base_name=path.stem, code="", file_path=path)

    def read_content(self, path: Path) -> str:
        """Read raw file text. Handlers with other encodings override this."""
        return path.read_text(encoding="utf-8-sig")

    def read(self, target: Union[str, Path, LanguageInfo]) -> ResourceFile:
        """
        Read a resource file from disk.

        Args:
            target: File path or LanguageInfo describing the file

        Returns:
            ResourceFile with entries in file order

        Raises:
            ResourceNotFoundError: file does not exist
            ResourceParseError: file is malformed
        """
        if isinstance(target, LanguageInfo):
            language = target
        else:
            language = self.language_for_path(target)

        path = language.file_path
        if not path.is_file():
            raise ResourceNotFoundError(
                f"{self.name} resource file not found: {path}",
                path=str(path),
                operation="read",
            )

        entries = self.parse(self.read_content(path), source=str(path))
        logger.debug("Read %d entries from %s", len(entries), path)
        return ResourceFile(language=language, entries=entries)

    def write(self, resource_file: ResourceFile) -> None:
        """
        Write a resource file to the path recorded in its LanguageInfo.

        Parent directories are created as needed. Content is written to a
        temporary sibling first and moved into place so a failed write never
        leaves a truncated resource file behind.
        """
        path = resource_file.language.file_path
        content = self.serialize(resource_file)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Wrote %d entries to %s", len(resource_file.entries), path)

    def new_language(self, root: Union[str, Path], base_name: str, code: str) -> LanguageInfo:
        """LanguageInfo for a file that does not exist yet."""
        return LanguageInfo(
            base_name=base_name,
            code=code,
            name=get_display_name(code),
            file_path=self.language_file_path(root, base_name, code),
        )

    def delete_language_file(self, language: LanguageInfo) -> None:
        """
        Delete a language file from disk.

        Raises:
            DefaultLanguageProtectedError: language is the default one
            ResourceNotFoundError: file does not exist
        """
        path = language.file_path
        if language.is_default:
            raise DefaultLanguageProtectedError(
                f"Cannot delete the default language file: {path}",
                path=str(path),
                operation="remove-language",
            )
        if not path.is_file():
            raise ResourceNotFoundError(
                f"Language file not found: {path}",
                path=str(path),
                operation="remove-language",
            )
        path.unlink()
        logger.debug("Deleted %s", path)

    def _unique_entries(
        self,
        entries: list[ResourceEntry],
        source: Optional[str] = None,
    ) -> list[ResourceEntry]:
        """
        Drop repeated keys, keeping the first occurrence.

        Args:
            entries: Entries in file order, possibly with repeated keys
            source: Path used in the warning

        Returns:
            Entries with unique keys, order of first appearance preserved
        """
        seen: set[str] = set()
        unique = []
        for entry in entries:
            if entry.key in seen:
                logger.warning(
                    "Duplicate key '%s' in %s; keeping the first occurrence",
                    entry.key, source or "<string>",
                )
                continue
            seen.add(entry.key)
            unique.append(entry)
        return unique


class FormatRegistry:
    """Registry of available format handlers."""

    _handlers: dict[str, type[FormatHandler]] = {}
    _extension_map: dict[str, str] = {}  # extension -> handler name

    @classmethod
    def register(cls, handler_class: type[FormatHandler]) -> None:
        """Register a format handler class."""
        handler = handler_class()
        cls._handlers[handler.name.lower()] = handler_class
        for ext in handler.file_extensions:
            cls._extension_map.setdefault(ext.lower(), handler.name.lower())

    @classmethod
    def get_handler(cls, name: str, config: Optional[LrmConfig] = None) -> FormatHandler:
        """
        Get handler instance by format identifier.

        Raises:
            UnsupportedFormatError: no handler registered for name
        """
        name_lower = normalize_format_name(name)
        if name_lower not in cls._handlers:
            available = ', '.join(cls._handlers.keys())
            raise UnsupportedFormatError(f"Unknown format: {name}. Available: {available}")
        return cls._handlers[name_lower](config)

    @classmethod
    def get_handler_for_extension(
        cls,
        extension: str,
        config: Optional[LrmConfig] = None,
    ) -> FormatHandler:
        """Get handler instance by file extension."""
        ext = extension.lower().lstrip('.')
        if ext not in cls._extension_map:
            available = ', '.join(cls._extension_map.keys())
            raise UnsupportedFormatError(f"Unknown extension: .{ext}. Supported: {available}")
        return cls.get_handler(cls._extension_map[ext], config)

    @classmethod
    def list_formats(cls) -> list[dict[str, Any]]:
        """List all registered formats with their extensions."""
        result = []
        for handler_class in cls._handlers.values():
            handler = handler_class()
            result.append({
                'name': handler.name,
                'extensions': handler.file_extensions,
                'supports_comments': handler.supports_comments,
            })
        return result


class CultureSuffixLayout:
    """
    File layout shared by JSON and resx: every language of a resource set
    sits in one directory, the default as ``{base}.{ext}`` and the others as
    ``{base}.{code}.{ext}``.

    Mixed into a FormatHandler; uses its ``file_extensions``.
    """

    # configuration sits next to the resources but is never one
    excluded_names = (CONFIG_FILE_NAME,)

    @property
    def _extension(self) -> str:
        return self.file_extensions[0]

    def language_file_path(self, root: Union[str, Path], base_name: str, code: str) -> Path:
        suffix = f".{code}" if code else ""
        return Path(root) / f"{base_name}{suffix}.{self._extension}"

    def language_for_path(self, path: Union[str, Path]) -> LanguageInfo:
        path = Path(path)
        stem = path.name[: -(len(self._extension) + 1)]
        base_name, code = stem, ""
        if '.' in stem:
            head, tail = stem.rsplit('.', 1)
            valid, _ = is_valid_culture_code(tail)
            if head and valid:
                base_name, code = head, tail
        return LanguageInfo(
            base_name=base_name,
            code=code,
            name=get_display_name(code),
            file_path=path,
        )

    def discover(self, root: Union[str, Path]) -> list[LanguageInfo]:
        root = Path(root)
        if not root.is_dir():
            return []

        languages = []
        for path in sorted(root.glob(f"*.{self._extension}")):
            if not path.is_file() or path.name.startswith('.'):
                continue
            if path.name.lower() in self.excluded_names:
                continue
            languages.append(self.language_for_path(path))
        return languages
