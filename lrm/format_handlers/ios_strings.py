#!/usr/bin/env python3
"""
iOS .strings format handler.

Handles parsing and reconstruction of Apple .strings localization files
used in iOS, macOS, watchOS, and tvOS applications, and the ``*.lproj``
folder convention.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..culture import canonicalize, get_display_name
from ..exceptions import ResourceParseError
from ..models import LanguageInfo, ResourceEntry, ResourceFile
from .base import FormatHandler

logger = logging.getLogger(__name__)

LPROJ_SUFFIX = '.lproj'
BASE_FOLDER = 'Base'

# Directories searched for *.lproj folders, relative to the resource root
LPROJ_SEARCH_PATHS = ('', 'Resources', 'Sources')

# Pre-ISO folder names still produced by old Xcode projects
LEGACY_LPROJ_NAMES = {
    'English': 'en',
    'French': 'fr',
    'German': 'de',
    'Spanish': 'es',
    'Italian': 'it',
    'Japanese': 'ja',
    'Dutch': 'nl',
}

_SIMPLE_ESCAPES = {'"': '"', '\\': '\\', 'n': '\n', 'r': '\r', 't': '\t', '0': '\0', "'": "'"}
_BARE_CHARS = set('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_.-$:/')


def lproj_to_code(folder_name: str) -> Optional[str]:
    """Map an .lproj folder name (without suffix) to a culture code."""
    if folder_name in LEGACY_LPROJ_NAMES:
        return LEGACY_LPROJ_NAMES[folder_name]
    if canonicalize(folder_name) is None:
        return None
    return folder_name.replace('_', '-')


class _Scanner:
    """Character cursor over .strings content with line/column tracking."""

    def __init__(self, content: str, source: Optional[str]):
        self.text = content
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ''

    def startswith(self, token: str) -> bool:
        return self.text.startswith(token, self.pos)

    def advance(self) -> str:
        char = self.text[self.pos]
        self.pos += 1
        if char == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char

    def error(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        return ResourceParseError(
            message,
            path=self.source,
            line=line if line is not None else self.line,
            column=column if column is not None else self.column,
        )

    def skip_whitespace(self) -> int:
        """Skip whitespace; return the number of newlines crossed."""
        newlines = 0
        while not self.at_end() and self.peek().isspace():
            if self.advance() == '\n':
                newlines += 1
        return newlines

    def read_block_comment(self) -> str:
        line, column = self.line, self.column
        self.advance()
        self.advance()
        start = self.pos
        while not self.startswith('*/'):
            if self.at_end():
                raise self.error("Unterminated block comment", line, column)
            self.advance()
        text = self.text[start:self.pos]
        self.advance()
        self.advance()
        return text.strip()

    def read_line_comment(self) -> str:
        self.advance()
        self.advance()
        start = self.pos
        while not self.at_end() and self.peek() != '\n':
            self.advance()
        return self.text[start:self.pos].strip()

    def read_hex(self, count: int) -> Optional[int]:
        digits = self.text[self.pos:self.pos + count]
        if len(digits) != count or any(c not in '0123456789abcdefABCDEF' for c in digits):
            return None
        for _ in range(count):
            self.advance()
        return int(digits, 16)

    def read_quoted(self) -> str:
        line, column = self.line, self.column
        self.advance()
        chars = []
        while True:
            if self.at_end():
                raise self.error("Unterminated string", line, column)
            char = self.advance()
            if char == '"':
                return ''.join(chars)
            if char != '\\':
                chars.append(char)
                continue

            if self.at_end():
                raise self.error("Unterminated string", line, column)
            escape = self.advance()
            if escape in ('U', 'u'):
                code_point = self.read_hex(4)
                if code_point is None:
                    raise self.error(f"Invalid unicode escape \\{escape}")
                # surrogate pair written as two escapes
                if 0xD800 <= code_point < 0xDC00 and self.peek() == '\\' and self.peek(1) in ('U', 'u'):
                    saved = (self.pos, self.line, self.column)
                    self.advance()
                    self.advance()
                    low = self.read_hex(4)
                    if low is not None and 0xDC00 <= low < 0xE000:
                        code_point = 0x10000 + ((code_point - 0xD800) << 10) + (low - 0xDC00)
                    else:
                        self.pos, self.line, self.column = saved
                chars.append(chr(code_point))
            else:
                chars.append(_SIMPLE_ESCAPES.get(escape, escape))

    def read_bare(self) -> str:
        start = self.pos
        while not self.at_end() and self.peek() in _BARE_CHARS:
            self.advance()
        return self.text[start:self.pos]

    def read_token(self, what: str) -> str:
        if self.peek() == '"':
            return self.read_quoted()
        token = self.read_bare()
        if not token:
            found = self.peek() or 'end of file'
            raise self.error(f"Expected {what}, found {found!r}")
        return token

    def expect(self, char: str) -> None:
        if self.peek() != char:
            found = self.peek() or 'end of file'
            raise self.error(f"Expected '{char}', found {found!r}")
        self.advance()


def escape_strings(text: str) -> str:
    """Escape text for a quoted .strings literal."""
    return (
        text.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\n', '\\n')
        .replace('\r', '\\r')
        .replace('\t', '\\t')
        .replace('\0', '\\0')
    )


class IosStringsHandler(FormatHandler):
    """
    Handler for iOS/macOS .strings files.

    .strings format structure:
    ```
    /* Comment about the string */
    "key.name" = "Value text";

    // Another style of comment
    "greeting" = "Hello, %@!";
    ```

    The comment directly above an entry is attached to it. A comment
    separated from the next entry by a blank line (such as a file header)
    is dropped on rewrite.
    """

    @property
    def name(self) -> str:
        return "ios"

    @property
    def file_extensions(self) -> list[str]:
        return ["strings"]

    @property
    def base_name(self) -> str:
        return Path(self.config.ios.strings_file_name).stem

    def read_content(self, path: Path) -> str:
        """Decode UTF-16 files (detected by BOM) as well as UTF-8."""
        raw = path.read_bytes()
        if raw.startswith((b'\xff\xfe', b'\xfe\xff')):
            return raw.decode('utf-16')
        return raw.decode('utf-8-sig')

    def parse(self, content: str, source: Optional[str] = None) -> list[ResourceEntry]:
        """
        Parse .strings content into resource entries.

        Args:
            content: Raw .strings file content
            source: Path used in error messages

        Returns:
            List of ResourceEntry objects

        Raises:
            ResourceParseError: with the line and column of the first
                unexpected character
        """
        scanner = _Scanner(content, source)
        entries = []
        comment: Optional[str] = None

        while True:
            if scanner.skip_whitespace() >= 2:
                comment = None
            if scanner.at_end():
                break

            if scanner.startswith('/*'):
                comment = scanner.read_block_comment()
                continue
            if scanner.startswith('//'):
                comment = scanner.read_line_comment()
                continue

            key = scanner.read_token("key")
            scanner.skip_whitespace()
            scanner.expect('=')
            scanner.skip_whitespace()
            value = scanner.read_token("value")
            scanner.skip_whitespace()
            scanner.expect(';')

            entries.append(ResourceEntry(key=key, value=value, comment=comment or None))
            comment = None

        return self._unique_entries(entries, source)

    def serialize(self, resource_file: ResourceFile) -> str:
        """
        Serialize entries to .strings text.

        Returns:
            Complete .strings file content, one blank line between entries
        """
        blocks = []
        for entry in resource_file.entries:
            lines = []
            if entry.comment:
                lines.append(f'/* {entry.comment.replace("*/", "* /")} */')
            lines.append(f'"{escape_strings(entry.key)}" = "{escape_strings(entry.value)}";')
            blocks.append('\n'.join(lines))
        return '\n\n'.join(blocks) + '\n' if blocks else ''

    # Folder convention

    def find_lproj_dir(self, root: Union[str, Path]) -> Optional[Path]:
        """Return the first search path that holds .lproj folders, if any."""
        root = Path(root)
        for relative in LPROJ_SEARCH_PATHS:
            candidate = root / relative if relative else root
            if not candidate.is_dir():
                continue
            if any(p.is_dir() and p.name.endswith(LPROJ_SUFFIX) for p in candidate.iterdir()):
                return candidate
        return None

    def _configured_default_folder(self) -> Optional[str]:
        folder = self.config.ios.default_folder
        if not folder:
            return None
        if folder.lower() in ('base', 'base.lproj'):
            return BASE_FOLDER
        return folder[:-len(LPROJ_SUFFIX)] if folder.endswith(LPROJ_SUFFIX) else folder

    def _resolve_default(self, folders: dict[str, Path]) -> Optional[str]:
        """
        Pick the folder (name without suffix) holding the default language.

        Order: configured folder, Base, development language, English,
        first folder.
        """
        if not folders:
            return None

        configured = self._configured_default_folder()
        if configured and configured in folders:
            return configured
        if BASE_FOLDER in folders:
            return BASE_FOLDER

        development = self.config.default_language_code or configured or 'en'
        for candidate in (development, 'en'):
            for name in folders:
                if lproj_to_code(name) == candidate:
                    return name
        return sorted(folders)[0]

    def _folders(self, lproj_dir: Path) -> dict[str, Path]:
        file_name = self.config.ios.strings_file_name
        folders = {}
        # ISO names first so they win over legacy names for the same code
        ordered = sorted(
            lproj_dir.iterdir(),
            key=lambda p: (p.name[:-len(LPROJ_SUFFIX)] in LEGACY_LPROJ_NAMES, p.name),
        )
        for folder in ordered:
            if not folder.is_dir() or not folder.name.endswith(LPROJ_SUFFIX):
                continue
            path = folder / file_name
            if path.is_file():
                folders[folder.name[:-len(LPROJ_SUFFIX)]] = path
        return folders

    def discover(self, root: Union[str, Path]) -> list[LanguageInfo]:
        lproj_dir = self.find_lproj_dir(root)
        if lproj_dir is None:
            return []

        folders = self._folders(lproj_dir)
        default = self._resolve_default(folders)

        # the default folder also claims its own code, so en.lproj beside a
        # default English.lproj is not listed twice
        seen = {"", (lproj_to_code(default) or "").lower() if default else ""}
        languages = []
        for name, path in folders.items():
            if name == default:
                code = ""
            else:
                code = lproj_to_code(name)
                if code is None:
                    logger.debug("Skipping non-language folder %s%s", name, LPROJ_SUFFIX)
                    continue
                if code.lower() in seen:
                    logger.warning(
                        "Skipping %s%s: language '%s' already provided by another folder",
                        name, LPROJ_SUFFIX, code,
                    )
                    continue
                seen.add(code.lower())
            languages.append(LanguageInfo(
                base_name=self.base_name,
                code=code,
                name=get_display_name(code),
                file_path=path,
            ))
        return languages

    def language_file_path(self, root: Union[str, Path], base_name: str, code: str) -> Path:
        lproj_dir = self.find_lproj_dir(root) or Path(root)
        file_name = self.config.ios.strings_file_name
        if code:
            return lproj_dir / f"{code}{LPROJ_SUFFIX}" / file_name

        existing = self._resolve_default(self._folders(lproj_dir)) if lproj_dir.is_dir() else None
        if existing is None:
            existing = self._configured_default_folder() or (self.config.default_language_code or 'en')
        return lproj_dir / f"{existing}{LPROJ_SUFFIX}" / file_name

    def language_for_path(self, path: Union[str, Path]) -> LanguageInfo:
        path = Path(path)
        folder = path.parent.name
        name = folder[:-len(LPROJ_SUFFIX)] if folder.endswith(LPROJ_SUFFIX) else folder
        code = "" if name == BASE_FOLDER else (lproj_to_code(name) or "")
        return LanguageInfo(
            base_name=path.stem,
            code=code,
            name=get_display_name(code),
            file_path=path,
        )

    def delete_language_file(self, language: LanguageInfo) -> None:
        """Delete the strings file and its .lproj folder once empty."""
        super().delete_language_file(language)
        folder = language.file_path.parent
        if folder.name.endswith(LPROJ_SUFFIX) and not any(folder.iterdir()):
            folder.rmdir()
            logger.debug("Removed empty folder %s", folder)
