#!/usr/bin/env python3
"""
JSON resource format handler.

Reads flat or nested JSON objects into dotted keys and writes them back
either flat or nested depending on ``json.useNestedKeys``. Comments travel
in a ``{"_value": ..., "_comment": ...}`` object; any other key starting
with ``_`` (e.g. ``_meta``) is metadata and never becomes an entry.
"""

import json
import logging
from typing import Any, Optional

from ..exceptions import InvalidKeyError, ResourceParseError
from ..models import ResourceEntry, ResourceFile
from .base import CultureSuffixLayout, FormatHandler

logger = logging.getLogger(__name__)

VALUE_KEY = "_value"
COMMENT_KEY = "_comment"
META_KEY = "_meta"
META_VERSION = "1.0"
GENERATOR = "lrm"


class _Pairs(list):
    """Object decoded as an ordered list of (key, value) pairs; keeps duplicates."""

    def first(self, key: str, default: Any = None) -> Any:
        for k, v in self:
            if k == key:
                return v
        return default

    def has(self, key: str) -> bool:
        return any(k == key for k, _ in self)


def _to_plain(obj: Any) -> Any:
    """Turn decoded _Pairs back into ordinary dicts (first occurrence wins)."""
    if isinstance(obj, _Pairs):
        result: dict[str, Any] = {}
        for k, v in obj:
            if k not in result:
                result[k] = _to_plain(v)
        return result
    if isinstance(obj, list):
        return [_to_plain(item) for item in obj]
    return obj


class JsonHandler(CultureSuffixLayout, FormatHandler):
    """
    Handler for JSON resource files.

    Supports structures like:
    ```json
    {
      "welcome": "Welcome",
      "user": {
        "greeting": {"_value": "Hello {0}", "_comment": "Shown on login"},
        "tags": ["new", "vip"]
      }
    }
    ```

    Keys are flattened to dot notation: "welcome", "user.greeting",
    "user.tags". Arrays are kept as JSON text with
    ``metadata["json_type"] == "array"``; numbers, booleans and null read as
    their JSON text and are written back natively while unchanged.
    """

    @property
    def name(self) -> str:
        return "json"

    @property
    def file_extensions(self) -> list[str]:
        return ["json"]

    @property
    def supports_comments(self) -> bool:
        return self.config.json.preserve_comments

    def validate_key(self, key: str) -> None:
        """
        Reject keys that would be read back as metadata.

        A leading ``_`` marks metadata on read, so such a key (or, with
        nested keys, such a dotted segment) would vanish from the file.

        Raises:
            InvalidKeyError: key has an underscore-prefixed part
        """
        parts = key.split('.') if self.config.json.use_nested_keys else [key]
        for part in parts:
            if part.startswith('_'):
                raise InvalidKeyError(
                    f"Key '{key}' cannot be stored in JSON: '{part}' starts with '_', "
                    "which is reserved for metadata"
                )

    def parse(self, content: str, source: Optional[str] = None) -> list[ResourceEntry]:
        """
        Parse JSON content into resource entries.

        Args:
            content: Raw JSON file content
            source: Path used in error messages

        Returns:
            List of ResourceEntry with flattened keys
        """
        if not content.strip():
            return []

        try:
            data = json.loads(content, object_pairs_hook=_Pairs)
        except json.JSONDecodeError as e:
            raise ResourceParseError(
                f"Invalid JSON: {e.msg}", path=source, line=e.lineno, column=e.colno
            ) from e

        if not isinstance(data, _Pairs):
            raise ResourceParseError("Root element must be an object", path=source, line=1, column=1)

        entries: list[ResourceEntry] = []
        self._flatten(data, "", entries)
        return self._unique_entries(entries, source)

    def _flatten(self, obj: _Pairs, prefix: str, entries: list[ResourceEntry]) -> None:
        """
        Recursively flatten a decoded object to dot-notation entries.

        Args:
            obj: Decoded object as key/value pairs
            prefix: Current key prefix (dot-separated)
            entries: List to append entries to
        """
        for key, value in obj:
            if key.startswith('_'):
                continue
            full_key = f"{prefix}.{key}" if prefix else key

            if isinstance(value, _Pairs):
                if value.has(VALUE_KEY) or value.has(COMMENT_KEY):
                    entry = self._scalar_entry(full_key, value.first(VALUE_KEY))
                    comment = value.first(COMMENT_KEY)
                    if comment is not None:
                        entry.comment = str(comment)
                    entries.append(entry)
                # a key may be both a value and a parent
                self._flatten(value, full_key, entries)
            else:
                entries.append(self._scalar_entry(full_key, value))

    def _scalar_entry(self, key: str, value: Any) -> ResourceEntry:
        """Build an entry from a decoded non-object value."""
        if isinstance(value, str):
            return ResourceEntry(key=key, value=value)
        if value is None:
            return ResourceEntry(key=key, value="", metadata={'json_type': 'null'})
        if isinstance(value, bool):
            return ResourceEntry(key=key, value=json.dumps(value), metadata={'json_type': 'boolean'})
        if isinstance(value, (int, float)):
            return ResourceEntry(key=key, value=json.dumps(value), metadata={'json_type': 'number'})
        if isinstance(value, list):
            return ResourceEntry(
                key=key,
                value=json.dumps(_to_plain(value), ensure_ascii=False),
                metadata={'json_type': 'array'},
            )
        return ResourceEntry(
            key=key,
            value=json.dumps(_to_plain(value), ensure_ascii=False),
            metadata={'json_type': 'object'},
        )

    def _native_value(self, entry: ResourceEntry) -> Any:
        """Value to emit for an entry, restoring its original JSON type when still valid."""
        json_type = entry.metadata.get('json_type')
        if json_type is None:
            return entry.value
        if json_type == 'null':
            return None if entry.value == "" else entry.value

        try:
            decoded = json.loads(entry.value)
        except (json.JSONDecodeError, TypeError):
            return entry.value

        expected = {
            'array': list,
            'object': dict,
            'boolean': bool,
            'number': (int, float),
        }.get(json_type)
        if expected is None or not isinstance(decoded, expected):
            return entry.value
        if json_type == 'number' and isinstance(decoded, bool):
            return entry.value
        return decoded

    def _node_for(self, entry: ResourceEntry) -> Any:
        """Leaf node for an entry: plain value or a _value/_comment object."""
        value = self._native_value(entry)
        if entry.comment and self.config.json.preserve_comments:
            return {VALUE_KEY: value, COMMENT_KEY: entry.comment}
        return value

    def serialize(self, resource_file: ResourceFile) -> str:
        """
        Serialize entries to JSON text.

        Args:
            resource_file: Language and entries to encode

        Returns:
            JSON document, two-space indented, newline terminated
        """
        options = self.config.json
        result: dict[str, Any] = {}

        if options.include_meta:
            result[META_KEY] = {
                'version': META_VERSION,
                'generator': GENERATOR,
                'culture': resource_file.language.code or (self.config.default_language_code or ""),
            }

        for entry in resource_file.entries:
            self.validate_key(entry.key)
            node = self._node_for(entry)
            if options.use_nested_keys:
                self._set_nested(result, entry.key.split('.'), node)
            else:
                result[entry.key] = node

        return json.dumps(result, indent=2, ensure_ascii=False) + "\n"

    def _set_nested(self, obj: dict, path: list[str], node: Any) -> None:
        """
        Set a leaf at a nested path, creating intermediate objects as needed.

        An existing leaf that becomes a parent is moved under ``_value``;
        a leaf landing on an existing parent is merged in as ``_value``.

        Args:
            obj: Root dictionary
            path: List of keys to traverse
            node: Leaf node to set at path
        """
        for key in path[:-1]:
            child = obj.get(key)
            if not isinstance(child, dict):
                child = {} if key not in obj else {VALUE_KEY: child}
                obj[key] = child
            obj = child

        final_key = path[-1]
        existing = obj.get(final_key)
        if isinstance(existing, dict):
            leaf = node if isinstance(node, dict) else {VALUE_KEY: node}
            children = {k: v for k, v in existing.items() if k not in (VALUE_KEY, COMMENT_KEY)}
            obj[final_key] = {**leaf, **children}
        else:
            obj[final_key] = node
