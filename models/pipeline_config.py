from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Boolean, Enum, Index,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from models.base import (
    Base, BigIntPK, JSONType, utcnow, Direction, ConnectorType, Frequency,
    FileType, FieldType, DuplicateHandling, FilterOperator
)


class PipelineConfig(Base):
    """
    One configured import or export job for a dealer.

    Owns exactly one connection, schedule, file format and processing
    section plus an ordered list of field mappings. Export configs may
    also own filters and a file naming section. All children are loaded
    eagerly so the aggregate can be read from an async session.
    """
    __tablename__ = "pipeline_configs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    dealer_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    direction = Column(Enum(Direction), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    connection = relationship(
        "ConnectionSettings", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    schedule = relationship(
        "ScheduleSettings", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    file_format = relationship(
        "FileFormatSettings", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    processing = relationship(
        "ProcessingPolicy", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    file_naming = relationship(
        "FileNamingSettings", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    field_mappings = relationship(
        "FieldMapping", cascade="all, delete-orphan", lazy="selectin",
        order_by="FieldMapping.order"
    )
    filters = relationship(
        "ExportFilter", cascade="all, delete-orphan", lazy="selectin",
        order_by="ExportFilter.id"
    )

    __table_args__ = (
        UniqueConstraint("dealer_id", "name", name="uq_pipeline_config_dealer_name"),
        Index("idx_pipeline_config_dealer_direction", "dealer_id", "direction"),
    )


class ConnectionSettings(Base):
    """Remote endpoint. The password column only ever holds vault ciphertext."""
    __tablename__ = "pipeline_connections"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )
    connector_type = Column(Enum(ConnectorType), nullable=False, default=ConnectorType.SFTP)
    host = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False)
    username = Column(String(255), nullable=False)
    password_encrypted = Column(Text, nullable=True)
    remote_directory = Column(String(1024), nullable=False, default="/")
    file_pattern = Column(String(255), nullable=False, default="*")


class ScheduleSettings(Base):
    __tablename__ = "pipeline_schedules"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )
    frequency = Column(Enum(Frequency), nullable=False, default=Frequency.MANUAL)
    hour = Column(Integer, nullable=False, default=0)
    minute = Column(Integer, nullable=False, default=0)
    day_of_week = Column(Integer, nullable=True)    # 0 = Monday
    day_of_month = Column(Integer, nullable=True)
    next_run = Column(DateTime, nullable=True, index=True)
    last_run = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class FileFormatSettings(Base):
    __tablename__ = "pipeline_file_formats"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )
    file_type = Column(Enum(FileType), nullable=False, default=FileType.CSV)
    delimiter = Column(String(8), nullable=False, default=",")
    multi_value_delimiter = Column(String(8), nullable=False, default="|")
    include_header = Column(Boolean, nullable=False, default=True)
    encoding = Column(String(32), nullable=False, default="utf-8")
    date_format = Column(String(64), nullable=True)


class ProcessingPolicy(Base):
    __tablename__ = "pipeline_processing"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )
    duplicate_handling = Column(
        Enum(DuplicateHandling), nullable=False, default=DuplicateHandling.INSERT_OR_UPDATE
    )
    batch_size = Column(Integer, nullable=False, default=1000)
    max_errors = Column(Integer, nullable=False, default=100)
    validate_data = Column(Boolean, nullable=False, default=True)
    archive_processed_files = Column(Boolean, nullable=False, default=True)
    archive_directory = Column(String(1024), nullable=False, default="processed")


class FileNamingSettings(Base):
    """Export file name pattern. Supports {dealer_id}, {date} and {timestamp}."""
    __tablename__ = "pipeline_file_naming"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )
    pattern = Column(String(255), nullable=False, default="inventory_{dealer_id}_{date}")
    include_date = Column(Boolean, nullable=False, default=False)


class FieldMapping(Base):
    __tablename__ = "pipeline_field_mappings"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    source_field = Column(String(255), nullable=False)
    target_field = Column(String(255), nullable=False)
    field_type = Column(Enum(FieldType), nullable=True)     # NULL = auto-detect
    is_required = Column(Boolean, nullable=False, default=False)
    default_value = Column(Text, nullable=True)
    transformation_rules = Column(JSONType, nullable=True)
    order = Column("field_order", Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("config_id", "field_order", name="uq_field_mapping_order"),
    )


class ExportFilter(Base):
    __tablename__ = "pipeline_export_filters"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    field = Column(String(255), nullable=False)
    operator = Column(Enum(FilterOperator), nullable=False)
    value = Column(Text, nullable=True)
    value2 = Column(Text, nullable=True)
