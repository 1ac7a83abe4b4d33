# SPDX-License-Identifier: AGPL-3.0-or-later
"""Reference tables shipped as YAML documents inside the package."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources
from threading import Lock
from typing import Any, Dict, Iterator, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

DATA_PACKAGE = "extdetect.data"

MIME_EXTENSIONS = "mime_extensions"
OCTET_STREAM_DESCRIPTIONS = "octet_stream_descriptions"
TEXT_PLAIN_DESCRIPTIONS = "text_plain_descriptions"
DOSEXEC_DESCRIPTIONS = "dosexec_descriptions"
MARKUP_ROOTS = "markup_roots"

TABLE_NAMES = (
    MIME_EXTENSIONS,
    OCTET_STREAM_DESCRIPTIONS,
    TEXT_PLAIN_DESCRIPTIONS,
    DOSEXEC_DESCRIPTIONS,
    MARKUP_ROOTS,
)


class TableError(ValueError):
    """Raised when a reference table document is missing or malformed."""


@dataclass(frozen=True)
class LiteralExtension:
    extension: str


@dataclass(frozen=True)
class NeedsSecondaryKey:
    """Retry the lookup with ``"<tag>|<first attribute>"``."""


@dataclass(frozen=True)
class NeedsSentinelScan:
    sentinel: str
    extension: str


@dataclass(frozen=True)
class NeedsProjectDisambiguation:
    """Build project file whose exact flavour depends on the root attributes."""


@dataclass(frozen=True)
class NeedsTransformDisambiguation:
    namespace: str
    extension: str


TableEntry = Union[
    LiteralExtension,
    NeedsSecondaryKey,
    NeedsSentinelScan,
    NeedsProjectDisambiguation,
    NeedsTransformDisambiguation,
]


def _check_extension(value: str) -> str:
    if not value.startswith(".") or len(value) < 2:
        raise ValueError(f"extension '{value}' must start with '.'")
    return value


class _MarkerModel(BaseModel):
    """Validation schema for a marker entry."""

    model_config = ConfigDict(extra="forbid")

    marker: Literal["secondary-key", "sentinel", "project", "transform"]
    sentinel: Optional[str] = None
    namespace: Optional[str] = None
    extension: Optional[str] = None

    @field_validator("extension")
    @classmethod
    def _validate_extension(cls, value: Optional[str]) -> Optional[str]:  # noqa: D401
        return None if value is None else _check_extension(value)

    @model_validator(mode="after")
    def _required_fields(self) -> "_MarkerModel":
        required = {
            "sentinel": ("sentinel", "extension"),
            "transform": ("namespace", "extension"),
        }.get(self.marker, ())
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"marker '{self.marker}' requires {', '.join(missing)}")
        return self


class _TableDocumentModel(BaseModel):
    """Top-level table document parsed from YAML."""

    model_config = ConfigDict(extra="forbid")

    name: str
    entries: Dict[str, Union[str, _MarkerModel]]

    @field_validator("entries")
    @classmethod
    def _validate_literals(
        cls, value: Dict[str, Union[str, _MarkerModel]]
    ) -> Dict[str, Union[str, _MarkerModel]]:  # noqa: D401
        for entry in value.values():
            if isinstance(entry, str):
                _check_extension(entry)
        return value


def _build_entry(value: Union[str, _MarkerModel]) -> TableEntry:
    if isinstance(value, str):
        return LiteralExtension(value)
    if value.marker == "secondary-key":
        return NeedsSecondaryKey()
    if value.marker == "sentinel":
        return NeedsSentinelScan(sentinel=value.sentinel or "", extension=value.extension or "")
    if value.marker == "project":
        return NeedsProjectDisambiguation()
    return NeedsTransformDisambiguation(namespace=value.namespace or "", extension=value.extension or "")


class ReferenceTable(Mapping[str, TableEntry]):
    """Immutable mapping with case-insensitive, locale-independent keys."""

    def __init__(self, name: str, entries: Mapping[str, TableEntry]) -> None:
        folded: Dict[str, TableEntry] = {}
        originals: Dict[str, str] = {}
        for key, entry in entries.items():
            fold = key.casefold()
            if fold in folded:
                raise TableError(
                    f"Table '{name}' has duplicate keys '{originals[fold]}' and '{key}'"
                )
            folded[fold] = entry
            originals[fold] = key
        self._name = name
        self._entries = folded
        self._keys = originals

    @property
    def name(self) -> str:
        return self._name

    def lookup(self, key: Optional[str]) -> Optional[TableEntry]:
        if not key:
            return None
        return self._entries.get(key.casefold())

    def extension(self, key: Optional[str]) -> Optional[str]:
        """Return the literal extension stored under ``key``, if any."""

        entry = self.lookup(key)
        if isinstance(entry, LiteralExtension):
            return entry.extension
        return None

    def __getitem__(self, key: str) -> TableEntry:
        entry = self.lookup(key)
        if entry is None:
            raise KeyError(key)
        return entry

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ReferenceTable(name={self._name!r}, entries={len(self)})"


def _load_table_dict(name: str) -> Mapping[str, Any]:
    try:
        with resources.files(DATA_PACKAGE).joinpath(f"{name}.yaml").open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise TableError(f"Reference table '{name}' is not installed") from exc
    except yaml.YAMLError as exc:
        raise TableError(f"Reference table '{name}' is not valid YAML: {exc}") from exc
    if not isinstance(data, Mapping):
        raise TableError(f"Reference table '{name}' must be a mapping at the top level")
    return dict(data)


def build_table(name: str, payload: Mapping[str, Any]) -> ReferenceTable:
    """Validate a parsed table document and freeze it."""

    try:
        model = _TableDocumentModel(**payload)
    except ValidationError as exc:
        raise TableError(f"Invalid reference table '{name}': {exc}") from exc
    if model.name != name:
        raise TableError(f"Reference table '{name}' declares name '{model.name}'")
    entries = {key: _build_entry(value) for key, value in model.entries.items()}
    return ReferenceTable(name, entries)


_TABLES: Dict[str, ReferenceTable] = {}
_TABLES_LOCK = Lock()


def get_table(name: str) -> ReferenceTable:
    """Return the named table, loading it on first use."""

    table = _TABLES.get(name)
    if table is not None:
        return table
    with _TABLES_LOCK:
        table = _TABLES.get(name)
        if table is None:
            table = build_table(name, _load_table_dict(name))
            logger.debug("loaded reference table %s (%d entries)", name, len(table))
            _TABLES[name] = table
    return table


def clear_tables() -> None:
    """Drop every loaded table; the next lookup reloads it."""

    with _TABLES_LOCK:
        _TABLES.clear()


def description_prefix(description: str) -> str:
    """Return the part of an oracle description before the first ',' or '('."""

    cut = len(description)
    for marker in (",", "("):
        index = description.find(marker)
        if index != -1:
            cut = min(cut, index)
    return description[:cut]


def lookup_description(table: ReferenceTable, description: Optional[str]) -> Optional[str]:
    """Look ``description`` up verbatim, then by its prefix."""

    if not description:
        return None
    extension = table.extension(description)
    if extension is not None:
        return extension
    prefix = description_prefix(description)
    if prefix != description:
        return table.extension(prefix)
    return None


__all__ = [
    "DOSEXEC_DESCRIPTIONS",
    "LiteralExtension",
    "MARKUP_ROOTS",
    "MIME_EXTENSIONS",
    "NeedsProjectDisambiguation",
    "NeedsSecondaryKey",
    "NeedsSentinelScan",
    "NeedsTransformDisambiguation",
    "OCTET_STREAM_DESCRIPTIONS",
    "ReferenceTable",
    "TABLE_NAMES",
    "TEXT_PLAIN_DESCRIPTIONS",
    "TableEntry",
    "TableError",
    "build_table",
    "clear_tables",
    "description_prefix",
    "get_table",
    "lookup_description",
]
