#!/usr/bin/env python3
"""
.NET .resx format handler.

Only string resources are entries: ``<data>`` elements carrying a ``type``
or ``mimetype`` attribute (embedded files, images) are left untouched in
the document. Writing reuses the existing file's document so resheaders,
the embedded schema and any comments survive a rewrite.
"""

import logging
from typing import Optional
from xml.etree import ElementTree as ET

from ..exceptions import ResourceParseError
from ..models import ResourceEntry, ResourceFile
from .base import CultureSuffixLayout, FormatHandler

logger = logging.getLogger(__name__)

XML_SPACE = '{http://www.w3.org/XML/1998/namespace}space'

ET.register_namespace('xsd', 'http://www.w3.org/2001/XMLSchema')
ET.register_namespace('msdata', 'urn:schemas-microsoft-com:xml-msdata')

RESHEADERS = [
    ('resmimetype', 'text/microsoft-resx'),
    ('version', '2.0'),
    ('reader', 'System.Resources.ResXResourceReader, System.Windows.Forms, '
               'Version=4.0.0.0, Culture=neutral, PublicKeyToken=b77a5c561934e089'),
    ('writer', 'System.Resources.ResXResourceWriter, System.Windows.Forms, '
               'Version=4.0.0.0, Culture=neutral, PublicKeyToken=b77a5c561934e089'),
]

# attributes the handler writes itself
_OWN_ATTRIBUTES = ('name', XML_SPACE)


def _is_string_data(elem: ET.Element) -> bool:
    return elem.tag == 'data' and elem.get('type') is None and elem.get('mimetype') is None


class ResxHandler(CultureSuffixLayout, FormatHandler):
    """
    Handler for .resx resource files.

    .resx structure:
    ```xml
    <root>
      <resheader name="resmimetype"><value>text/microsoft-resx</value></resheader>
      <data name="Welcome" xml:space="preserve">
        <value>Welcome!</value>
        <comment>Home page title</comment>
      </data>
    </root>
    ```
    """

    @property
    def name(self) -> str:
        return "resx"

    @property
    def file_extensions(self) -> list[str]:
        return ["resx"]

    def _parse_document(self, content: str, source: Optional[str]) -> ET.Element:
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
        try:
            root = ET.fromstring(content, parser=parser)
        except ET.ParseError as e:
            line, column = e.position
            raise ResourceParseError(f"Invalid XML: {e}", path=source, line=line, column=column + 1) from e

        if root.tag != 'root':
            raise ResourceParseError(f"Expected <root> element, found <{root.tag}>", path=source)
        return root

    def parse(self, content: str, source: Optional[str] = None) -> list[ResourceEntry]:
        """
        Parse .resx content into resource entries.

        Args:
            content: Raw XML file content
            source: Path used in error messages

        Returns:
            List of ResourceEntry objects, one per string <data> element
        """
        root = self._parse_document(content, source)

        entries = []
        for data in root.findall('data'):
            name = data.get('name')
            if name is None:
                logger.warning("Skipping <data> without name in %s", source or "<string>")
                continue
            if not _is_string_data(data):
                logger.debug("Skipping non-string resource '%s'", name)
                continue

            metadata = {}
            extra = {k: v for k, v in data.attrib.items() if k not in _OWN_ATTRIBUTES}
            if extra:
                metadata['attributes'] = extra

            entries.append(ResourceEntry(
                key=name,
                value=data.findtext('value') or "",
                comment=data.findtext('comment') or None,
                metadata=metadata,
            ))

        return self._unique_entries(entries, source)

    def _new_document(self) -> ET.Element:
        root = ET.Element('root')
        for name, value in RESHEADERS:
            header = ET.SubElement(root, 'resheader', name=name)
            ET.SubElement(header, 'value').text = value
        return root

    def serialize(self, resource_file: ResourceFile) -> str:
        """
        Serialize entries into a .resx document.

        The existing file at the language's path is used as the template;
        its string <data> elements are replaced by the entries in order.
        """
        path = resource_file.language.file_path
        if path.is_file():
            root = self._parse_document(self.read_content(path), str(path))
            for data in [d for d in root.findall('data') if _is_string_data(d)]:
                root.remove(data)
        else:
            root = self._new_document()

        for entry in resource_file.entries:
            data = ET.SubElement(root, 'data', name=entry.key)
            data.set(XML_SPACE, 'preserve')
            for key, value in entry.metadata.get('attributes', {}).items():
                data.set(key, value)
            ET.SubElement(data, 'value').text = entry.value
            if entry.comment:
                ET.SubElement(data, 'comment').text = entry.comment

        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding='unicode')
        # the XML parser folds bare CR into LF; keep it as a character reference
        body = body.replace('\r', '&#13;')
        return '<?xml version="1.0" encoding="utf-8"?>\n' + body + "\n"
