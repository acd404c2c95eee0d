from datetime import datetime, timezone
from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# PostgreSQL gets BIGINT/JSONB; SQLite needs INTEGER for rowid autoincrement
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class Direction(str, enum.Enum):
    """Pipeline direction"""
    IMPORT = "import"
    EXPORT = "export"


class ConnectorType(str, enum.Enum):
    """Remote transfer protocol"""
    SFTP = "sftp"
    FTP = "ftp"


class Frequency(str, enum.Enum):
    """Schedule frequency"""
    MANUAL = "manual"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FileType(str, enum.Enum):
    """Wire file format"""
    CSV = "csv"
    JSON = "json"
    XML = "xml"


class FieldType(str, enum.Enum):
    """Target field type for mapping coercion"""
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"


class DuplicateHandling(str, enum.Enum):
    """What to do when an imported VIN already exists for the dealer"""
    SKIP = "skip"
    UPDATE = "update"
    INSERT_OR_UPDATE = "insert_or_update"


class FilterOperator(str, enum.Enum):
    """Export filter operators"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"


class ExecutionStatus(str, enum.Enum):
    """Execution record status. PENDING is never persisted."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
