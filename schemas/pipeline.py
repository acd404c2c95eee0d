"""
Canonical pipeline configuration shapes.

Configs arrive from the management UI and from older stored rows in several
key spellings (``sourceField``, ``source_field``, ``SourceField``) and with a
few legacy names (``hasHeader``, ``mappings``). Everything is normalized here,
so the pipeline itself only sees one shape: ``PipelineConfigData``.
"""

import json
import re
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from models.base import (
    ConnectorType, Direction, DuplicateHandling, FieldType, FileType,
    FilterOperator, Frequency
)

DEFAULT_PORTS = {
    ConnectorType.SFTP: 22,
    ConnectorType.FTP: 21,
}

_TYPE_SYNONYMS = {
    "int": "integer",
    "number": "decimal",
    "float": "decimal",
    "bool": "boolean",
    "text": "string",
    "datetime": "date",
}


def snake_key(key: str) -> str:
    """camelCase / PascalCase / kebab-case -> snake_case"""
    key = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key.strip())
    return re.sub(r"[\s\-]+", "_", key).lower()


def _enum_value(value: Any) -> Any:
    if isinstance(value, str):
        return snake_key(value)
    return value


class CanonicalModel(BaseModel):
    """Base for config sections: accepts any key casing plus legacy aliases."""

    key_aliases: ClassVar[Dict[str, str]] = {}

    class Config:
        from_attributes = True

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized = {}
        for key, value in data.items():
            canonical = snake_key(str(key))
            normalized[cls.key_aliases.get(canonical, canonical)] = value
        return cls.adjust_keys(normalized)

    @classmethod
    def adjust_keys(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return data


# ============================================================================
# Config Sections
# ============================================================================

class TransformationRule(CanonicalModel):
    """One operation in a mapping's ordered rule list."""

    key_aliases: ClassVar[Dict[str, str]] = {"op": "type", "operation": "type", "pattern": "find"}

    type: str
    find: Optional[str] = None
    replace: Optional[str] = None
    format: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return snake_key(str(v))


class FieldMappingSpec(CanonicalModel):
    key_aliases: ClassVar[Dict[str, str]] = {
        "source": "source_field",
        "target": "target_field",
        "type": "field_type",
        "required": "is_required",
        "default": "default_value",
        "transformation_rule": "transformation_rules",
        "transformations": "transformation_rules",
        "field_order": "order",
    }

    source_field: str
    target_field: str
    field_type: Optional[FieldType] = None
    is_required: bool = False
    default_value: Optional[str] = None
    transformation_rules: List[TransformationRule] = Field(default_factory=list)
    order: Optional[int] = None

    @field_validator("field_type", mode="before")
    @classmethod
    def blank_type_means_auto(cls, v):
        if v is None or v == "" or v == "auto":
            return None
        return _TYPE_SYNONYMS.get(_enum_value(v), _enum_value(v))

    @field_validator("default_value", mode="before")
    @classmethod
    def stringify_default(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("transformation_rules", mode="before")
    @classmethod
    def parse_rules(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                # bare op name, e.g. "trim"
                return [{"type": v}]
        if isinstance(v, dict):
            return [v]
        return v


class ConnectionSpec(CanonicalModel):
    key_aliases: ClassVar[Dict[str, str]] = {
        "type": "connector_type",
        "protocol": "connector_type",
        "user": "username",
        "directory": "remote_directory",
        "remote_dir": "remote_directory",
        "pattern": "file_pattern",
    }

    connector_type: ConnectorType = ConnectorType.SFTP
    host: str
    port: Optional[int] = None
    username: str
    # plaintext only on the way in; ConfigStore stores ciphertext
    password: Optional[str] = Field(default=None, repr=False)
    password_encrypted: Optional[str] = Field(default=None, repr=False)
    remote_directory: str = "/"
    file_pattern: str = "*"

    @field_validator("connector_type", mode="before")
    @classmethod
    def lower_type(cls, v):
        return _enum_value(v)

    @field_validator("host")
    @classmethod
    def host_not_blank(cls, v):
        if not v.strip():
            raise ValueError("host is required")
        return v.strip()

    @field_validator("remote_directory", "file_pattern", mode="before")
    @classmethod
    def blank_to_default(cls, v, info: ValidationInfo):
        if v is None or str(v).strip() == "":
            return "/" if info.field_name == "remote_directory" else "*"
        return str(v).strip()

    @model_validator(mode="after")
    def default_port(self):
        if not self.port:
            self.port = DEFAULT_PORTS[self.connector_type]
        return self


class ScheduleSpec(CanonicalModel):
    frequency: Frequency = Frequency.MANUAL
    hour: int = Field(default=0, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    is_active: bool = True

    @classmethod
    def adjust_keys(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        # "09:30" style time of day
        if isinstance(data.get("time"), str) and "hour" not in data:
            hour, _, minute = data.pop("time").partition(":")
            data["hour"] = int(hour)
            data["minute"] = int(minute or 0)
        return data

    @field_validator("frequency", mode="before")
    @classmethod
    def lower_frequency(cls, v):
        return _enum_value(v)


class FileFormatSpec(CanonicalModel):
    key_aliases: ClassVar[Dict[str, str]] = {
        "has_header": "include_header",
        "header": "include_header",
        "format": "file_type",
        "type": "file_type",
    }

    file_type: FileType = FileType.CSV
    delimiter: str = ","
    multi_value_delimiter: str = "|"
    include_header: bool = True
    encoding: str = "utf-8"
    date_format: Optional[str] = None

    @field_validator("file_type", mode="before")
    @classmethod
    def lower_file_type(cls, v):
        return _enum_value(v)

    @field_validator("delimiter", "multi_value_delimiter", mode="before")
    @classmethod
    def decode_tab(cls, v, info: ValidationInfo):
        if v in (None, ""):
            return "," if info.field_name == "delimiter" else "|"
        return "\t" if v in ("\\t", "tab") else v


class ProcessingSpec(CanonicalModel):
    key_aliases: ClassVar[Dict[str, str]] = {
        "archive_files": "archive_processed_files",
        "archive": "archive_processed_files",
        "archive_dir": "archive_directory",
        "validate": "validate_data",
    }

    duplicate_handling: DuplicateHandling = DuplicateHandling.INSERT_OR_UPDATE
    batch_size: int = Field(default=1000, ge=1)
    max_errors: int = Field(default=100, ge=0)
    validate_data: bool = True
    archive_processed_files: bool = True
    archive_directory: str = "processed"

    @field_validator("duplicate_handling", mode="before")
    @classmethod
    def normalize_policy(cls, v):
        return _enum_value(v)


class FilterSpec(CanonicalModel):
    """Tagged export filter: {field, operator, value, value2}."""

    key_aliases: ClassVar[Dict[str, str]] = {"op": "operator", "value1": "value"}

    field: str
    operator: FilterOperator
    value: Optional[str] = None
    value2: Optional[str] = None

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v):
        return _enum_value(v)

    @field_validator("value", "value2", mode="before")
    @classmethod
    def stringify(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class FileNamingSpec(CanonicalModel):
    pattern: str = "inventory_{dealer_id}_{date}"
    include_date: bool = False


# ============================================================================
# Aggregates
# ============================================================================

_SECTION_ALIASES = {
    "connection_settings": "connection",
    "schedule_settings": "schedule",
    "format_settings": "file_format",
    "file_format_settings": "file_format",
    "file_settings": "file_format",
    "mappings": "field_mappings",
    "field_mapping": "field_mappings",
    "processing_settings": "processing",
    "processing_options": "processing",
    "export_filters": "filters",
    "file_naming_settings": "file_naming",
}


def _number_mappings(mappings: List[FieldMappingSpec]) -> List[FieldMappingSpec]:
    """Fill missing orders from list position, then sort."""
    for position, mapping in enumerate(mappings):
        if mapping.order is None:
            mapping.order = position
    return sorted(mappings, key=lambda m: m.order)


class PipelineConfigCreate(CanonicalModel):
    """Payload for creating a pipeline config."""

    key_aliases: ClassVar[Dict[str, str]] = _SECTION_ALIASES

    dealer_id: str
    name: str
    direction: Direction = Direction.IMPORT
    is_active: bool = True
    connection: ConnectionSpec
    schedule: Optional[ScheduleSpec] = None
    file_format: Optional[FileFormatSpec] = None
    field_mappings: List[FieldMappingSpec] = Field(default_factory=list)
    processing: Optional[ProcessingSpec] = None
    filters: List[FilterSpec] = Field(default_factory=list)
    file_naming: Optional[FileNamingSpec] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("direction", mode="before")
    @classmethod
    def lower_direction(cls, v):
        return _enum_value(v)

    @field_validator("field_mappings")
    @classmethod
    def order_mappings(cls, v):
        return _number_mappings(v)

    @model_validator(mode="after")
    def require_one_section(self):
        if not (self.schedule or self.file_format or self.field_mappings or self.processing):
            raise ValueError(
                "at least one of schedule, file_format, field_mappings or processing is required"
            )
        return self


class PipelineConfigUpdate(CanonicalModel):
    """Partial update. Any section given replaces the stored section."""

    key_aliases: ClassVar[Dict[str, str]] = _SECTION_ALIASES

    name: Optional[str] = None
    is_active: Optional[bool] = None
    connection: Optional[ConnectionSpec] = None
    schedule: Optional[ScheduleSpec] = None
    file_format: Optional[FileFormatSpec] = None
    field_mappings: Optional[List[FieldMappingSpec]] = None
    processing: Optional[ProcessingSpec] = None
    filters: Optional[List[FilterSpec]] = None
    file_naming: Optional[FileNamingSpec] = None

    @field_validator("field_mappings")
    @classmethod
    def order_mappings(cls, v):
        return _number_mappings(v) if v is not None else v


class PipelineConfigData(CanonicalModel):
    """
    Fully resolved config consumed by the execution engine.

    Built from the ORM aggregate (``from_attributes``) or, for ad-hoc
    preview runs, from an unsaved ``PipelineConfigCreate``.
    """

    key_aliases: ClassVar[Dict[str, str]] = _SECTION_ALIASES

    id: Optional[int] = None
    dealer_id: str
    name: str
    direction: Direction = Direction.IMPORT
    is_active: bool = True
    connection: ConnectionSpec
    schedule: ScheduleSpec = Field(default_factory=ScheduleSpec)
    file_format: FileFormatSpec = Field(default_factory=FileFormatSpec)
    field_mappings: List[FieldMappingSpec] = Field(default_factory=list)
    processing: ProcessingSpec = Field(default_factory=ProcessingSpec)
    filters: List[FilterSpec] = Field(default_factory=list)
    file_naming: Optional[FileNamingSpec] = None

    @field_validator("schedule", mode="before")
    @classmethod
    def default_schedule(cls, v):
        return v if v is not None else ScheduleSpec()

    @field_validator("file_format", mode="before")
    @classmethod
    def default_file_format(cls, v):
        return v if v is not None else FileFormatSpec()

    @field_validator("processing", mode="before")
    @classmethod
    def default_processing(cls, v):
        return v if v is not None else ProcessingSpec()

    @field_validator("field_mappings")
    @classmethod
    def order_mappings(cls, v):
        return _number_mappings(v)

    @classmethod
    def from_create(cls, payload: PipelineConfigCreate, config_id: Optional[int] = None) -> "PipelineConfigData":
        return cls(id=config_id, **payload.model_dump(exclude_none=True))
