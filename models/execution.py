from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Text, Index, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, BigIntPK, JSONType, utcnow, Direction, ExecutionStatus


class ExecutionRecord(Base):
    """
    Audit trail for one pipeline run.

    Purpose:
    - History shown to dealers (paginated)
    - Counts for each outcome of a run
    - Run-level failure message

    Status only moves running -> completed or running -> failed; see
    pipeline.tracking.ExecutionTracker for the guarded transition.
    """
    __tablename__ = "execution_records"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    # NULL for ad-hoc preview runs
    config_id = Column(
        BigIntPK, ForeignKey("pipeline_configs.id", ondelete="SET NULL"),
        nullable=True, index=True
    )
    direction = Column(Enum(Direction), nullable=False, default=Direction.IMPORT)
    status = Column(Enum(ExecutionStatus), nullable=False, default=ExecutionStatus.RUNNING)

    file_name = Column(String(1024), nullable=True)
    file_size = Column(Integer, nullable=True)

    # Statistics
    records_processed = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    records_exported = Column(Integer, nullable=False, default=0)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    error_message = Column(Text, nullable=True)

    errors = relationship(
        "ExecutionError", back_populates="execution_record",
        cascade="all, delete-orphan", order_by="ExecutionError.id"
    )

    __table_args__ = (
        Index("idx_execution_config_started", "config_id", "started_at"),
        Index("idx_execution_status", "status", "started_at"),
    )


class ExecutionError(Base):
    """One per-row failure captured during a run. Append-only."""
    __tablename__ = "execution_errors"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    execution_record_id = Column(
        BigIntPK, ForeignKey("execution_records.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    row_number = Column(Integer, nullable=True)
    error_type = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=False)
    raw_data = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    execution_record = relationship("ExecutionRecord", back_populates="errors")
