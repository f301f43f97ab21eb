"""
JSON configuration for compare and migrate runs.

Keys are read case- and separator-insensitively, so ``logicalName``,
``LogicalName`` and ``logical_name`` are all accepted. A few aliases kept
from older configuration files are also understood (``excludeColumns``,
``includeColumns``, ``manyToManyRelationships``, ``entity1``).

Example migrate configuration:
    {
        "batchSize": 500,
        "tables": [
            {"logicalName": "account", "manageState": true, "excludeFields": ["address1_composite"]}
        ],
        "manyToManyRelationships": [{"relationshipName": "account_contact"}]
    }
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from refsync.errors import ConfigurationError
from refsync.models import DEFAULT_BATCH_SIZE, ManyToManyConfig, TableSyncConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompareTableConfig:
    """Comparison settings for one table."""

    logical_name: str
    display_name: str | None = None
    primary_name_field: str | None = None
    primary_id_field: str | None = None
    filter: str | None = None
    exclude_fields: tuple[str, ...] = ()
    include_fields: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.display_name or self.logical_name


@dataclass(frozen=True)
class CompareRelationshipConfig:
    """Comparison settings for one many-to-many relationship."""

    relationship_name: str
    display_name: str | None = None
    intersect_entity: str | None = None
    entity1_name: str | None = None
    entity1_id_field: str | None = None
    entity1_name_field: str = "name"
    entity2_name: str | None = None
    entity2_id_field: str | None = None
    entity2_name_field: str = "name"

    @property
    def label(self) -> str:
        return self.display_name or self.relationship_name

    def to_many_to_many(self) -> ManyToManyConfig:
        return ManyToManyConfig(
            relationship_name=self.relationship_name,
            intersect_entity=self.intersect_entity,
            entity1_name=self.entity1_name,
            entity1_id_field=self.entity1_id_field,
            entity2_name=self.entity2_name,
            entity2_id_field=self.entity2_id_field,
        )


@dataclass(frozen=True)
class MigrateConfig:
    """Tables and relationships of a migration run."""

    tables: tuple[TableSyncConfig, ...]
    relationships: tuple[ManyToManyConfig, ...] = ()
    batch_size: int = DEFAULT_BATCH_SIZE


@dataclass(frozen=True)
class CompareConfig:
    """Tables and relationships of a comparison run."""

    tables: tuple[CompareTableConfig, ...] = ()
    relationships: tuple[CompareRelationshipConfig, ...] = ()
    exclude_system_fields: bool = True
    global_exclude_fields: tuple[str, ...] = ()


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


class _Section:
    """Case-insensitive view over one JSON object."""

    def __init__(self, data: Any, where: str):
        if not isinstance(data, dict):
            raise ConfigurationError(f"{where} must be a JSON object")
        self.where = where
        self._data = {_normalize_key(key): value for key, value in data.items()}

    def get(self, *names: str, default: Any = None) -> Any:
        for name in names:
            value = self._data.get(_normalize_key(name))
            if value is not None:
                return value
        return default

    def text(self, *names: str) -> str | None:
        value = self.get(*names)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigurationError(f"{self.where}: '{names[0]}' must be a string")
        value = value.strip()
        return value or None

    def flag(self, name: str, default: bool) -> bool:
        value = self.get(name, default=default)
        if not isinstance(value, bool):
            raise ConfigurationError(f"{self.where}: '{name}' must be true or false")
        return value

    def names(self, *names: str) -> tuple[str, ...]:
        value = self.get(*names, default=[])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"{self.where}: '{names[0]}' must be a list of strings")
        return tuple(v.strip() for v in value if v.strip())

    def sections(self, *names: str) -> list["_Section"]:
        value = self.get(*names, default=[])
        if not isinstance(value, list):
            raise ConfigurationError(f"{self.where}: '{names[0]}' must be a list")
        return [
            _Section(item, f"{self.where}.{names[0]}[{index}]")
            for index, item in enumerate(value)
        ]


def _parse_batch_size(section: _Section) -> int:
    value = section.get("batchSize", default=DEFAULT_BATCH_SIZE)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"batchSize must be a positive integer, got {value!r}")
    return value


def _check_unique(names: list[str], kind: str) -> None:
    seen = set()
    for name in names:
        lowered = name.lower()
        if lowered in seen:
            raise ConfigurationError(f"Duplicate {kind} '{name}' in configuration")
        seen.add(lowered)


def _parse_table(section: _Section) -> TableSyncConfig:
    logical_name = section.text("logicalName")
    if not logical_name:
        raise ConfigurationError(f"{section.where}: 'logicalName' is required")
    return TableSyncConfig(
        logical_name=logical_name,
        filter=section.text("filter"),
        manage_state=section.flag("manageState", False),
        include_fields=section.names("includeFields", "includeColumns"),
        exclude_fields=section.names("excludeFields", "excludeColumns"),
    )


def _parse_relationship(section: _Section) -> ManyToManyConfig:
    name = section.text("relationshipName", "schemaName")
    if not name:
        raise ConfigurationError(f"{section.where}: 'relationshipName' is required")
    return ManyToManyConfig(
        relationship_name=name,
        intersect_entity=section.text("intersectEntity"),
        entity1_name=section.text("entity1Name", "entity1"),
        entity1_id_field=section.text("entity1IdField"),
        entity2_name=section.text("entity2Name", "entity2"),
        entity2_id_field=section.text("entity2IdField"),
    )


def parse_migrate_config(data: Any) -> MigrateConfig:
    """
    Build a MigrateConfig from decoded JSON.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    root = _Section(data, "config")
    tables = [_parse_table(s) for s in root.sections("tables")]
    if not tables:
        raise ConfigurationError("No tables configured for migration")
    _check_unique([t.logical_name for t in tables], "table")

    relationships = [
        _parse_relationship(s)
        for s in root.sections("manyToManyRelationships", "relationships")
    ]
    _check_unique([r.relationship_name for r in relationships], "relationship")

    return MigrateConfig(
        tables=tuple(tables),
        relationships=tuple(relationships),
        batch_size=_parse_batch_size(root),
    )


def _parse_compare_table(section: _Section) -> CompareTableConfig:
    logical_name = section.text("logicalName")
    if not logical_name:
        raise ConfigurationError(f"{section.where}: 'logicalName' is required")
    return CompareTableConfig(
        logical_name=logical_name,
        display_name=section.text("displayName"),
        primary_name_field=section.text("primaryNameField"),
        primary_id_field=section.text("primaryIdField"),
        filter=section.text("filter"),
        exclude_fields=section.names("excludeFields", "excludeColumns"),
        include_fields=section.names("includeFields", "includeColumns"),
    )


def _parse_compare_relationship(section: _Section) -> CompareRelationshipConfig:
    name = section.text("relationshipName", "schemaName")
    if not name:
        raise ConfigurationError(f"{section.where}: 'relationshipName' is required")
    return CompareRelationshipConfig(
        relationship_name=name,
        display_name=section.text("displayName"),
        intersect_entity=section.text("intersectEntity"),
        entity1_name=section.text("entity1Name", "entity1"),
        entity1_id_field=section.text("entity1IdField"),
        entity1_name_field=section.text("entity1NameField") or "name",
        entity2_name=section.text("entity2Name", "entity2"),
        entity2_id_field=section.text("entity2IdField"),
        entity2_name_field=section.text("entity2NameField") or "name",
    )


def parse_compare_config(data: Any) -> CompareConfig:
    """
    Build a CompareConfig from decoded JSON.

    A comparison may list only tables, only relationships, or both.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    root = _Section(data, "config")
    tables = [_parse_compare_table(s) for s in root.sections("tables")]
    relationships = [
        _parse_compare_relationship(s)
        for s in root.sections("relationships", "manyToManyRelationships")
    ]
    if not tables and not relationships:
        raise ConfigurationError("No tables or relationships configured for comparison")
    _check_unique([t.logical_name for t in tables], "table")
    _check_unique([r.relationship_name for r in relationships], "relationship")

    return CompareConfig(
        tables=tuple(tables),
        relationships=tuple(relationships),
        exclude_system_fields=root.flag("excludeSystemFields", True),
        global_exclude_fields=root.names("globalExcludeFields"),
    )


def read_config_file(path: str | Path) -> Any:
    """
    Read and decode a JSON configuration file.

    Raises:
        ConfigurationError: If the file is missing or not valid JSON
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    logger.debug(f"Loaded configuration from {path}")
    return data


def load_migrate_config(path: str | Path) -> MigrateConfig:
    """Load and validate a migration configuration file."""
    return parse_migrate_config(read_config_file(path))


def load_compare_config(path: str | Path) -> CompareConfig:
    """Load and validate a comparison configuration file."""
    return parse_compare_config(read_config_file(path))
