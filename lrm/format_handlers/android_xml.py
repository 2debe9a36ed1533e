#!/usr/bin/env python3
"""
Android XML strings.xml format handler.

Handles parsing and reconstruction of Android resource files including
strings, plurals, and string arrays, plus the ``res/values-*`` folder
convention that maps resource qualifiers to culture codes.
"""

import html
import logging
import re
from pathlib import Path
from typing import Optional, Union
from xml.etree import ElementTree as ET

from ..culture import canonicalize, get_display_name
from ..exceptions import ResourceParseError
from ..models import LanguageInfo, ResourceEntry, ResourceFile
from .base import FormatHandler

logger = logging.getLogger(__name__)

NAMESPACES = {
    'tools': 'http://schemas.android.com/tools',
    'xliff': 'urn:oasis:names:tc:xliff:document:1.2',
}
_PREFIXES = {uri: prefix for prefix, uri in NAMESPACES.items()}

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)

# Directories searched for values* folders, relative to the resource root
RES_SEARCH_PATHS = ('', 'res', 'app/src/main/res', 'src/main/res')

PLURAL_SEPARATOR = '#plural#'
PLURAL_KEY_PATTERN = re.compile(r'^(?P<name>.+)#plural#(?P<quantity>zero|one|two|few|many|other)$')

VALUES_FOLDER_PATTERN = re.compile(
    r'^values-(?P<language>[a-z]{2,3})(?:-r(?P<region>[A-Z]{2}|[0-9]{3}))?$'
)
BCP47_FOLDER_PATTERN = re.compile(r'^values-b\+(?P<tag>[A-Za-z0-9+]+)$')

_ESCAPE_SEQUENCE = re.compile(r'\\(u[0-9a-fA-F]{4}|.)', re.DOTALL)
_ESCAPED_CHARS = {'n': '\n', 't': '\t', "'": "'", '"': '"', '\\': '\\', '@': '@', '?': '?'}
_XMLNS_DECLARATION = re.compile(r'\s+xmlns:\w+="[^"]*"')


def folder_to_code(folder_name: str) -> Optional[str]:
    """
    Map a values folder name to a culture code.

    Returns:
        "" for ``values``, the code for ``values-fr``, ``values-fr-rFR`` or
        ``values-b+sr+Latn``, None for folders that are not languages
        (``values-night``, ``values-v21``, ...)
    """
    if folder_name == 'values':
        return ""

    match = VALUES_FOLDER_PATTERN.match(folder_name)
    if match:
        code = match.group('language')
        if match.group('region'):
            code += '-' + match.group('region')
        return code

    match = BCP47_FOLDER_PATTERN.match(folder_name)
    if match:
        return canonicalize(match.group('tag').replace('+', '-'))
    return None


def code_to_folder(code: str) -> str:
    """Map a culture code to its values folder name."""
    if not code:
        return 'values'

    canonical = canonicalize(code) or code
    parts = canonical.split('-')
    has_script = any(len(part) == 4 for part in parts[1:])
    if has_script:
        return 'values-b+' + '+'.join(parts)
    if len(parts) == 2:
        return f'values-{parts[0]}-r{parts[1]}'
    return f'values-{canonical}'


def unescape_android(text: str) -> str:
    """Decode Android string escapes and strip enclosing double quotes."""
    if len(text) >= 2 and text.startswith('"') and text.endswith('"') and not text.endswith('\\"'):
        text = text[1:-1]

    def replace(match: re.Match) -> str:
        seq = match.group(1)
        if seq[0] == 'u' and len(seq) == 5:
            return chr(int(seq[1:], 16))
        return _ESCAPED_CHARS.get(seq, match.group(0))

    return _ESCAPE_SEQUENCE.sub(replace, text)


def escape_android(text: str) -> str:
    """Encode a value for an Android string element body."""
    text = text.replace('\\', '\\\\')
    text = text.replace('\n', '\\n')
    text = text.replace('\t', '\\t')
    text = text.replace("'", "\\'")
    text = text.replace('"', '\\"')
    if text.startswith(('@', '?')):
        text = '\\' + text
    text = text.replace('&', '&amp;')
    text = text.replace('<', '&lt;')
    text = text.replace('>', '&gt;')
    return text


def _qualified(name: str) -> str:
    """Turn ``{uri}local`` into ``prefix:local`` for known namespaces."""
    if name.startswith('{'):
        uri, local = name[1:].split('}', 1)
        prefix = _PREFIXES.get(uri)
        if prefix:
            return f'{prefix}:{local}'
    return name


def _attr(value: str) -> str:
    return html.escape(value, quote=True)


class AndroidXmlHandler(FormatHandler):
    """
    Handler for Android strings.xml resource files.

    Android XML structure:
    ```xml
    <?xml version="1.0" encoding="utf-8"?>
    <resources>
        <!-- Application title -->
        <string name="app_name">My App</string>
        <string name="welcome">Welcome, %1$s!</string>

        <plurals name="items">
            <item quantity="one">%d item</item>
            <item quantity="other">%d items</item>
        </plurals>

        <string-array name="days">
            <item>Monday</item>
            <item>Tuesday</item>
        </string-array>
    </resources>
    ```

    Plurals become ``items#plural#one`` entries and arrays ``days.0``
    entries; the writer groups them back in place. Inline markup such as
    ``<b>`` or ``<xliff:g>`` is kept verbatim.
    """

    @property
    def name(self) -> str:
        return "android"

    @property
    def file_extensions(self) -> list[str]:
        return ["xml"]

    @property
    def base_name(self) -> str:
        return Path(self.config.android.resource_file_name).stem

    def parse(self, content: str, source: Optional[str] = None) -> list[ResourceEntry]:
        """
        Parse Android XML content into resource entries.

        Args:
            content: Raw XML file content
            source: Path used in error messages

        Returns:
            List of ResourceEntry objects in document order
        """
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
        try:
            root = ET.fromstring(content, parser=parser)
        except ET.ParseError as e:
            line, column = e.position
            raise ResourceParseError(f"Invalid XML: {e}", path=source, line=line, column=column + 1) from e

        if root.tag != 'resources':
            raise ResourceParseError(
                f"Root element must be 'resources', found '{root.tag}'", path=source
            )

        entries = []
        pending_comments: list[str] = []

        for elem in root:
            if elem.tag is ET.Comment:
                pending_comments.append((elem.text or '').strip())
                continue

            comment = '\n'.join(pending_comments) or None
            pending_comments = []
            name = elem.get('name')
            if not name:
                continue
            attributes = {
                _qualified(k): v for k, v in elem.attrib.items() if k != 'name'
            }

            if elem.tag == 'string':
                entries.append(self._entry(name, elem, comment, {'type': 'string'}, attributes))

            elif elem.tag == 'plurals':
                for item in (i for i in elem if i.tag == 'item'):
                    quantity = item.get('quantity', 'other')
                    entries.append(self._entry(
                        f"{name}{PLURAL_SEPARATOR}{quantity}",
                        item,
                        comment,
                        {'type': 'plural', 'plural_name': name, 'quantity': quantity},
                        attributes,
                    ))
                    comment = None

            elif elem.tag == 'string-array':
                for i, item in enumerate(i for i in elem if i.tag == 'item'):
                    entries.append(self._entry(
                        f"{name}.{i}",
                        item,
                        comment,
                        {'type': 'array', 'array_name': name, 'index': i},
                        attributes,
                    ))
                    comment = None

            else:
                logger.debug("Skipping unsupported <%s name=%s>", elem.tag, name)

        return self._unique_entries(entries, source)

    def _entry(
        self,
        key: str,
        elem: ET.Element,
        comment: Optional[str],
        metadata: dict,
        attributes: dict,
    ) -> ResourceEntry:
        if attributes:
            metadata['attributes'] = dict(attributes)
        if len(elem):
            metadata['markup'] = True
            value = self._inner_xml(elem)
        else:
            value = unescape_android(elem.text or '')
        return ResourceEntry(key=key, value=value, comment=comment, metadata=metadata)

    def _inner_xml(self, elem: ET.Element) -> str:
        """Serialize the element's content (text and children) verbatim."""
        parts = [html.escape(elem.text or '', quote=False)]
        for child in elem:
            parts.append(ET.tostring(child, encoding='unicode'))
        return _XMLNS_DECLARATION.sub('', ''.join(parts))

    def _is_markup(self, value: str) -> bool:
        declarations = ' '.join(f'xmlns:{p}="{u}"' for p, u in NAMESPACES.items())
        try:
            ET.fromstring(f'<x {declarations}>{value}</x>')
        except ET.ParseError:
            return False
        return True

    def _body(self, entry: ResourceEntry) -> str:
        if entry.metadata.get('markup') and self._is_markup(entry.value):
            return entry.value
        return escape_android(entry.value)

    def _group(self, entry: ResourceEntry) -> tuple[str, Optional[str]]:
        """Return (element type, group name) for an entry."""
        entry_type = entry.metadata.get('type')
        if entry_type == 'plural':
            return 'plural', entry.metadata.get('plural_name')
        if entry_type == 'array':
            return 'array', entry.metadata.get('array_name')
        if entry_type is None:
            match = PLURAL_KEY_PATTERN.match(entry.key)
            if match:
                return 'plural', match.group('name')
        return 'string', None

    def _attributes(self, entry: ResourceEntry) -> str:
        return ''.join(
            f' {k}="{_attr(v)}"' for k, v in entry.metadata.get('attributes', {}).items()
        )

    def _comment_lines(self, comment: Optional[str], indent: str) -> list[str]:
        if not comment:
            return []
        return [
            f'{indent}<!-- {line.replace("--", "- -")} -->'
            for line in comment.split('\n')
        ]

    def serialize(self, resource_file: ResourceFile) -> str:
        """
        Serialize entries into a strings.xml document.

        Plural and array members are written as one group at the position
        of the group's first member.
        """
        groups: dict[tuple[str, str], list[ResourceEntry]] = {}
        for entry in resource_file.entries:
            kind, group_name = self._group(entry)
            if group_name is not None:
                groups.setdefault((kind, group_name), []).append(entry)

        body = []
        emitted = set()
        for entry in resource_file.entries:
            kind, group_name = self._group(entry)

            if kind == 'string':
                body.extend(self._comment_lines(entry.comment, '    '))
                body.append(
                    f'    <string name="{_attr(entry.key)}"{self._attributes(entry)}>'
                    f'{self._body(entry)}</string>'
                )
                continue

            group_key = (kind, group_name)
            if group_key in emitted:
                continue
            emitted.add(group_key)
            members = groups[group_key]
            first = members[0]
            body.extend(self._comment_lines(first.comment, '    '))

            if kind == 'plural':
                body.append(f'    <plurals name="{_attr(group_name)}"{self._attributes(first)}>')
                for member in members:
                    quantity = member.metadata.get('quantity')
                    if quantity is None:
                        quantity = member.key.rsplit(PLURAL_SEPARATOR, 1)[-1]
                    body.append(f'        <item quantity="{_attr(quantity)}">{self._body(member)}</item>')
                body.append('    </plurals>')
            else:
                body.append(f'    <string-array name="{_attr(group_name)}"{self._attributes(first)}>')
                for member in members:
                    body.append(f'        <item>{self._body(member)}</item>')
                body.append('    </string-array>')

        text = '\n'.join(body)
        declarations = ''.join(
            f' xmlns:{prefix}="{uri}"'
            for prefix, uri in NAMESPACES.items()
            if f' {prefix}:' in text or f'<{prefix}:' in text
        )

        lines = ['<?xml version="1.0" encoding="utf-8"?>', f'<resources{declarations}>']
        lines.extend(body)
        lines.append('</resources>')
        return '\n'.join(lines) + '\n'

    # Folder convention

    def find_res_dir(self, root: Union[str, Path]) -> Optional[Path]:
        """Return the first search path that holds values folders, if any."""
        root = Path(root)
        for relative in RES_SEARCH_PATHS:
            candidate = root / relative if relative else root
            if not candidate.is_dir():
                continue
            if any(p.is_dir() and p.name.startswith('values') for p in candidate.iterdir()):
                return candidate
        return None

    def discover(self, root: Union[str, Path]) -> list[LanguageInfo]:
        res_dir = self.find_res_dir(root)
        if res_dir is None:
            return []

        file_name = self.config.android.resource_file_name
        found: dict[str, Path] = {}
        for folder in sorted(p for p in res_dir.iterdir() if p.is_dir()):
            code = folder_to_code(folder.name)
            if code is None:
                continue
            path = folder / file_name
            if path.is_file() and code not in found:
                found[code] = path

        default_code = self.config.default_language_code
        if "" not in found and default_code:
            promoted = found.pop(canonicalize(default_code) or default_code, None)
            if promoted is not None:
                found[""] = promoted

        return [
            LanguageInfo(
                base_name=self.base_name,
                code=code,
                name=get_display_name(code),
                file_path=path,
            )
            for code, path in found.items()
        ]

    def language_file_path(self, root: Union[str, Path], base_name: str, code: str) -> Path:
        res_dir = self.find_res_dir(root) or Path(root)
        file_name = self.config.android.resource_file_name
        if not code:
            default = res_dir / 'values' / file_name
            if not default.is_file() and self.config.default_language_code:
                promoted = res_dir / code_to_folder(self.config.default_language_code) / file_name
                if promoted.is_file():
                    return promoted
            return default
        return res_dir / code_to_folder(code) / file_name

    def language_for_path(self, path: Union[str, Path]) -> LanguageInfo:
        path = Path(path)
        code = folder_to_code(path.parent.name) or ""
        return LanguageInfo(
            base_name=path.stem,
            code=code,
            name=get_display_name(code),
            file_path=path,
        )

    def delete_language_file(self, language: LanguageInfo) -> None:
        """Delete the strings file and its values folder once empty."""
        super().delete_language_file(language)
        folder = language.file_path.parent
        if folder.name.startswith('values-') and not any(folder.iterdir()):
            folder.rmdir()
            logger.debug("Removed empty folder %s", folder)
