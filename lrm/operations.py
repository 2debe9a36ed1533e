#!/usr/bin/env python3
"""
Mutating operations on resource sets.

ResourceManager locates the files of a resource set, snapshots every file
it is about to touch and only then rewrites them through the format
handler. Each call re-reads from disk; nothing is cached between calls.
"""

import asyncio
import copy
import dataclasses
import logging
from pathlib import Path
from typing import Optional, Union

from .backup import BackupMetadata, BackupVersionManager
from .config import LrmConfig, load_config
from .culture import canonicalize, is_valid_culture_code
from .discovery import detect_format, discover_languages, group_by_resource_set
from .exceptions import (
    AmbiguousResourceSetError,
    DefaultLanguageProtectedError,
    InvalidCultureCodeError,
    KeyAlreadyExistsError,
    KeyNotFoundError,
    LanguageExistsError,
    LanguageNotFoundError,
    ResourceNotFoundError,
)
from .format_handlers import FormatRegistry
from .models import LanguageInfo, ResourceEntry, ResourceFile

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "json"


def _same_code(a: str, b: str) -> bool:
    return (canonicalize(a) or a).lower() == (canonicalize(b) or b).lower()


def _translatable(entry: ResourceEntry) -> bool:
    """False for entries marked translatable="false"; those stay in the default file only."""
    attributes = entry.metadata.get("attributes") or {}
    return str(attributes.get("translatable", "")).lower() != "false"


class ResourceManager:
    """
    Entry point for every operation that changes resource files.

    Args:
        root: Resource root directory
        config: Project configuration; loaded from root when omitted
        backups: Backup store; built from ``config.backup`` when omitted
    """

    def __init__(
        self,
        root: Union[str, Path],
        config: Optional[LrmConfig] = None,
        backups: Optional[BackupVersionManager] = None,
    ):
        self.root = Path(root)
        config = config or load_config(self.root)
        format_name = config.resource_format or detect_format(self.root, config) or DEFAULT_FORMAT
        self.config = dataclasses.replace(config, resource_format=format_name)
        self.handler = FormatRegistry.get_handler(format_name, self.config)
        self.backups = backups or BackupVersionManager(self.config.backup.max_versions)

    @property
    def format_name(self) -> str:
        return self.handler.name

    # Lookup

    def list_languages(self, base_name: Optional[str] = None) -> list[LanguageInfo]:
        """Languages under the root, optionally limited to one resource set."""
        languages = discover_languages(self.root, self.config)
        if base_name is not None:
            languages = [l for l in languages if l.base_name == base_name]
        return languages

    def resource_set(self, base_name: Optional[str] = None) -> list[LanguageInfo]:
        """
        Languages of one resource set.

        Raises:
            ResourceNotFoundError: no matching resource set
            AmbiguousResourceSetError: several sets and no base_name given
        """
        groups = group_by_resource_set(self.list_languages())
        if base_name is not None:
            if base_name not in groups:
                raise ResourceNotFoundError(
                    f"No resource set named '{base_name}' under {self.root}", path=str(self.root)
                )
            return groups[base_name]

        if not groups:
            raise ResourceNotFoundError(
                f"No {self.format_name} resource files found under {self.root}", path=str(self.root)
            )
        if len(groups) > 1:
            raise AmbiguousResourceSetError(
                f"Several resource sets found ({', '.join(sorted(groups))}); specify a base name",
                path=str(self.root),
            )
        return next(iter(groups.values()))

    def _default_language(self, languages: list[LanguageInfo]) -> LanguageInfo:
        for language in languages:
            if language.is_default:
                return language
        raise ResourceNotFoundError(
            f"Resource set '{languages[0].base_name}' has no default language file",
            path=str(self.root),
        )

    def _find_language(self, languages: list[LanguageInfo], code: str) -> Optional[LanguageInfo]:
        for language in languages:
            if not language.is_default and _same_code(language.code, code):
                return language
        return None

    # Backups

    def _snapshot(self, paths: list[Path], operation: str, backup: bool) -> list[BackupMetadata]:
        """Back up every existing file in paths before any of them is written."""
        if not backup or not self.config.backup.enabled:
            return []

        async def snapshot_all() -> list[BackupMetadata]:
            results = []
            for path in paths:
                if path.is_file():
                    results.append(await self.backups.create_backup(path, operation, self.root))
            return results

        return asyncio.run(snapshot_all())

    # Languages

    def add_language(
        self,
        code: str,
        base_name: Optional[str] = None,
        copy_values: bool = False,
    ) -> LanguageInfo:
        """
        Create a language file holding every translatable key of the default language.

        Args:
            code: Culture code of the new language
            base_name: Resource set; required when several exist
            copy_values: Copy default values instead of leaving them empty

        Returns:
            LanguageInfo of the new file
        """
        valid, culture = is_valid_culture_code(code)
        if not valid:
            raise InvalidCultureCodeError(f"Invalid culture code: {code}", operation="add-language")

        languages = self.resource_set(base_name)
        default = self._default_language(languages)
        if self._find_language(languages, culture.code) or (
            self.config.default_language_code and _same_code(self.config.default_language_code, culture.code)
        ):
            raise LanguageExistsError(
                f"Language '{culture.code}' already exists in '{default.base_name}'",
                operation="add-language",
            )

        language = self.handler.new_language(self.root, default.base_name, culture.code)
        if language.file_path.exists():
            raise LanguageExistsError(
                f"Language file already exists: {language.file_path}",
                path=str(language.file_path),
                operation="add-language",
            )

        source = self.handler.read(default)
        entries = [
            ResourceEntry(
                key=entry.key,
                value=entry.value if copy_values else "",
                comment=entry.comment,
                metadata=copy.deepcopy(entry.metadata),
            )
            for entry in source.entries
            if _translatable(entry)
        ]
        self.handler.write(ResourceFile(language=language, entries=entries))
        logger.info("Added language %s (%d keys) at %s", culture.code, len(entries), language.file_path)
        return language

    def remove_language(
        self,
        code: str,
        base_name: Optional[str] = None,
        backup: bool = True,
    ) -> LanguageInfo:
        """
        Delete a language file after backing it up.

        Raises:
            DefaultLanguageProtectedError: code names the default language;
                raised before anything is backed up or deleted
            LanguageNotFoundError: no file for code
        """
        if not code or (
            self.config.default_language_code and _same_code(code, self.config.default_language_code)
        ):
            raise DefaultLanguageProtectedError(
                "The default language file cannot be removed", operation="remove-language"
            )

        languages = self.resource_set(base_name)
        target = self._find_language(languages, code)
        if target is None:
            raise LanguageNotFoundError(f"Language '{code}' not found", operation="remove-language")

        self._snapshot([target.file_path], "remove-language", backup)
        self.handler.delete_language_file(target)
        logger.info("Removed language %s (%s)", target.code, target.file_path)
        return target

    # Keys

    def _read_all(self, languages: list[LanguageInfo]) -> list[ResourceFile]:
        return [self.handler.read(language) for language in languages]

    def _check_translation_codes(self, languages: list[LanguageInfo], translations: dict[str, str]) -> None:
        for code in translations:
            if self._find_language(languages, code) is None:
                raise LanguageNotFoundError(f"Language '{code}' not found")

    def _translation_for(self, language: LanguageInfo, translations: dict[str, str]) -> Optional[str]:
        for code, value in translations.items():
            if _same_code(code, language.code):
                return value
        return None

    def add_key(
        self,
        key: str,
        value: str,
        comment: Optional[str] = None,
        translations: Optional[dict[str, str]] = None,
        base_name: Optional[str] = None,
        backup: bool = True,
    ) -> list[LanguageInfo]:
        """
        Add a key to every language of a resource set.

        Args:
            key: New key
            value: Default-language value
            comment: Comment stored with the key
            translations: Values for other languages by code; missing ones
                are written empty

        Returns:
            Languages written

        Raises:
            InvalidKeyError: the format cannot store key
            KeyAlreadyExistsError: key is present in any language
        """
        if not key:
            raise ValueError("Key must not be empty")
        self.handler.validate_key(key)
        translations = translations or {}

        languages = self.resource_set(base_name)
        self._default_language(languages)
        self._check_translation_codes(languages, translations)

        files = self._read_all(languages)
        for resource_file in files:
            if key in resource_file:
                raise KeyAlreadyExistsError(
                    f"Key '{key}' already exists",
                    path=str(resource_file.language.file_path),
                    operation="add-key",
                )

        self._snapshot([f.language.file_path for f in files], "add-key", backup)
        for resource_file in files:
            language = resource_file.language
            text = value if language.is_default else (self._translation_for(language, translations) or "")
            resource_file.add_entry(ResourceEntry(key=key, value=text, comment=comment))
            self.handler.write(resource_file)

        logger.info("Added key '%s' to %d languages", key, len(files))
        return [f.language for f in files]

    def update_key(
        self,
        key: str,
        value: Optional[str] = None,
        comment: Optional[str] = None,
        translations: Optional[dict[str, str]] = None,
        base_name: Optional[str] = None,
        backup: bool = True,
    ) -> list[LanguageInfo]:
        """
        Change the value, comment or translations of an existing key.

        Only files whose content changes are backed up and rewritten. A
        translation for a language that lacks the key adds it there.

        Returns:
            Languages written
        """
        translations = translations or {}
        languages = self.resource_set(base_name)
        default = self._default_language(languages)
        self._check_translation_codes(languages, translations)

        files = self._read_all(languages)
        default_file = next(f for f in files if f.language == default)
        if key not in default_file:
            raise KeyNotFoundError(
                f"Key '{key}' not found", path=str(default.file_path), operation="update-key"
            )

        changed = []
        for resource_file in files:
            language = resource_file.language
            new_value = value if language.is_default else self._translation_for(language, translations)
            entry = resource_file.get(key)
            if entry is None:
                if new_value is None:
                    continue
                template = default_file.get(key)
                resource_file.add_entry(ResourceEntry(
                    key=key,
                    value=new_value,
                    comment=comment if comment is not None else template.comment,
                    metadata=copy.deepcopy(template.metadata),
                ))
                changed.append(resource_file)
                continue

            before = (entry.value, entry.comment)
            if new_value is not None:
                entry.value = new_value
            if comment is not None:
                entry.comment = comment or None
            if (entry.value, entry.comment) != before:
                changed.append(resource_file)

        if not changed:
            logger.info("Key '%s' unchanged", key)
            return []

        # the entries are already modified in memory; the snapshot reads the disk
        self._snapshot([f.language.file_path for f in changed], "update-key", backup)
        for resource_file in changed:
            self.handler.write(resource_file)

        logger.info("Updated key '%s' in %d languages", key, len(changed))
        return [f.language for f in changed]

    def delete_key(
        self,
        key: str,
        base_name: Optional[str] = None,
        backup: bool = True,
    ) -> list[LanguageInfo]:
        """
        Remove a key from every language that has it.

        Returns:
            Languages written
        """
        languages = self.resource_set(base_name)
        files = [f for f in self._read_all(languages) if key in f]
        if not files:
            raise KeyNotFoundError(f"Key '{key}' not found", operation="delete-key")

        self._snapshot([f.language.file_path for f in files], "delete-key", backup)
        for resource_file in files:
            resource_file.remove_entry(key)
            self.handler.write(resource_file)

        logger.info("Deleted key '%s' from %d languages", key, len(files))
        return [f.language for f in files]

    # Scaffolding

    def create_resource_set(self, base_name: Optional[str] = None, codes: Optional[list[str]] = None) -> list[LanguageInfo]:
        """
        Create an empty resource set: a default file plus one file per code.

        Args:
            base_name: Set name (JSON/resx); Android and iOS use the
                configured file name
            codes: Additional language codes

        Returns:
            Languages created, default first
        """
        codes = codes or []
        base_name = base_name or getattr(self.handler, 'base_name', None) or self.config.json.base_name

        canonical_codes = []
        for code in codes:
            valid, culture = is_valid_culture_code(code)
            if not valid:
                raise InvalidCultureCodeError(f"Invalid culture code: {code}", operation="init")
            if culture.code not in canonical_codes:
                canonical_codes.append(culture.code)

        targets = [self.handler.new_language(self.root, base_name, "")]
        targets += [self.handler.new_language(self.root, base_name, code) for code in canonical_codes]
        seen = set()
        for language in targets:
            if language.file_path.exists() or language.file_path in seen:
                raise LanguageExistsError(
                    f"Resource file already exists: {language.file_path}",
                    path=str(language.file_path),
                    operation="init",
                )
            seen.add(language.file_path)

        for language in targets:
            self.handler.write(ResourceFile(language=language))
        logger.info("Created resource set '%s' with %d languages", base_name, len(targets))
        return targets
