"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import ConnectorType, Direction, ExecutionStatus
from schemas.pipeline import (
    ConnectionSpec, FieldMappingSpec, FileFormatSpec, PipelineConfigCreate, PipelineConfigData
)


class ErrorResponse(BaseModel):
    """Body returned for pipeline errors surfaced over HTTP"""
    error_type: str
    message: str
    retryable: bool = False
    context: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Run Summary
# ============================================================================

class RunErrorEntry(BaseModel):
    row_number: Optional[int] = None
    message: str


class RunSummary(BaseModel):
    """
    Structured result of one run.

    Returned by execute-now regardless of partial failure, so dealers keep
    visibility into rows that did succeed.
    """
    execution_id: Optional[int] = None
    config_id: Optional[int] = None
    direction: Direction
    status: ExecutionStatus
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    records_exported: int = 0
    error_message: Optional[str] = None
    errors: List[RunErrorEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "execution_id": 42,
                "config_id": 7,
                "direction": "import",
                "status": "completed",
                "file_name": "inventory.csv",
                "file_size": 18233,
                "records_processed": 120,
                "records_inserted": 12,
                "records_updated": 105,
                "records_skipped": 0,
                "records_failed": 3,
                "errors": [
                    {"row_number": 17, "message": "Required field vin is missing"}
                ]
            }
        }


# ============================================================================
# History
# ============================================================================

class ExecutionRecordResponse(BaseModel):
    id: int
    config_id: Optional[int]
    direction: Direction
    status: ExecutionStatus
    file_name: Optional[str]
    file_size: Optional[int]
    records_processed: int
    records_inserted: int
    records_updated: int
    records_skipped: int
    records_failed: int
    records_exported: int
    started_at: datetime
    completed_at: Optional[datetime]
    duration_seconds: Optional[float]
    error_message: Optional[str]

    class Config:
        from_attributes = True


class ExecutionErrorResponse(BaseModel):
    id: int
    execution_record_id: int
    row_number: Optional[int]
    error_type: Optional[str]
    error_message: str
    raw_data: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class HistoryResponse(BaseModel):
    data: List[ExecutionRecordResponse]
    pagination: PaginationMetadata


# ============================================================================
# Pipeline Configs
# ============================================================================

class ConnectionInfo(BaseModel):
    """Connection section as shown to clients: never includes the password"""
    connector_type: ConnectorType
    host: str
    port: int
    username: str
    remote_directory: str
    file_pattern: str
    has_password: bool


class PipelineConfigResponse(BaseModel):
    id: int
    dealer_id: str
    name: str
    direction: Direction
    is_active: bool
    connection: ConnectionInfo
    schedule: Dict[str, Any]
    file_format: Dict[str, Any]
    processing: Dict[str, Any]
    field_mappings: List[Dict[str, Any]]
    filters: List[Dict[str, Any]]
    file_naming: Optional[Dict[str, Any]] = None

    @classmethod
    def from_data(cls, data: PipelineConfigData) -> "PipelineConfigResponse":
        conn = data.connection
        return cls(
            id=data.id,
            dealer_id=data.dealer_id,
            name=data.name,
            direction=data.direction,
            is_active=data.is_active,
            connection=ConnectionInfo(
                connector_type=conn.connector_type,
                host=conn.host,
                port=conn.port,
                username=conn.username,
                remote_directory=conn.remote_directory,
                file_pattern=conn.file_pattern,
                has_password=bool(conn.password_encrypted),
            ),
            schedule=data.schedule.model_dump(mode="json"),
            file_format=data.file_format.model_dump(mode="json"),
            processing=data.processing.model_dump(mode="json"),
            field_mappings=[m.model_dump(mode="json") for m in data.field_mappings],
            filters=[f.model_dump(mode="json") for f in data.filters],
            file_naming=data.file_naming.model_dump(mode="json") if data.file_naming else None,
        )


class NameAvailabilityResponse(BaseModel):
    available: bool


# ============================================================================
# Preview
# ============================================================================

class PreviewRow(BaseModel):
    row_number: int
    source: Dict[str, Any]
    mapped: Dict[str, Any]
    errors: List[str] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    file_name: Optional[str] = None
    columns: List[str]
    total_rows: int
    rows: List[PreviewRow]


class PreviewParseRequest(BaseModel):
    """Parse + map a pasted/uploaded file without touching the store"""
    data: str
    file_format: FileFormatSpec = Field(default_factory=FileFormatSpec)
    field_mappings: List[FieldMappingSpec] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=1)


class PreviewExecuteRequest(BaseModel):
    """Import selected rows of an uploaded file with an unsaved config"""
    config: PipelineConfigCreate
    data: str
    file_name: str = "preview-import.csv"
    row_indices: Optional[List[int]] = None

    @field_validator("row_indices")
    @classmethod
    def non_negative(cls, v):
        if v is not None and any(i < 0 for i in v):
            raise ValueError("row_indices must be >= 0")
        return v


# ============================================================================
# Connection Test
# ============================================================================

class RemoteFileInfo(BaseModel):
    name: str
    size: Optional[int] = None
    modified_at: Optional[datetime] = None
    is_directory: bool = False


class ConnectionTestRequest(ConnectionSpec):
    """Connection to probe; password may be plaintext or stored ciphertext"""
    pass


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    retryable: bool = False
    files: List[RemoteFileInfo] = Field(default_factory=list)
    available_directories: List[str] = Field(default_factory=list)


# ============================================================================
# Health
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, unhealthy")
    timestamp: datetime
    database_connected: bool
    vault_configured: bool
    runs_in_progress: int = 0
