"""
Execution history bookkeeping for pipeline runs.
"""

from typing import Any, Dict, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidRunStateError
from models.base import Direction, ExecutionStatus, utcnow
from models.execution import ExecutionError, ExecutionRecord

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class ExecutionTracker:
    """
    Owns the ExecutionRecord of one run.

    Ensures:
    - The record is committed as running before any file is touched
    - Only running -> completed and running -> failed are allowed
    - Per-row errors are appended, never rewritten

    All writes go through UPDATE statements keyed by id, so a per-record
    rollback in the same session never leaves stale state behind.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.execution_id: Optional[int] = None
        self.started_at = None
        self.completed_at = None

    async def start(
        self,
        config_id: Optional[int],
        direction: Direction,
        file_name: Optional[str] = None
    ) -> int:
        """Create the running record. Returns its id."""
        record = ExecutionRecord(
            config_id=config_id,
            direction=direction,
            status=ExecutionStatus.RUNNING,
            file_name=file_name,
            started_at=utcnow(),
        )
        self.db.add(record)
        await self.db.commit()

        self.execution_id = record.id
        self.started_at = record.started_at
        logger.info(f"Execution {self.execution_id} started ({direction.value}, config={config_id})")
        return self.execution_id

    async def update(self, **values: Any) -> None:
        """Set fields on the running record (file name, size, ...)."""
        await self._guarded_update(values)
        await self.db.commit()

    async def record_error(
        self,
        row_number: Optional[int],
        error_type: str,
        message: str,
        raw_data: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append one per-row error. The caller commits."""
        self.db.add(ExecutionError(
            execution_record_id=self.execution_id,
            row_number=row_number,
            error_type=error_type,
            error_message=message,
            raw_data=raw_data,
        ))

    async def complete(self, **counts: Any) -> None:
        await self._finish(ExecutionStatus.COMPLETED, counts)

    async def fail(self, error_message: str, **counts: Any) -> None:
        await self._finish(ExecutionStatus.FAILED, dict(counts, error_message=error_message))

    async def status(self) -> Optional[ExecutionStatus]:
        result = await self.db.execute(
            select(ExecutionRecord.status).where(ExecutionRecord.id == self.execution_id)
        )
        return result.scalar_one_or_none()

    async def _finish(self, status: ExecutionStatus, values: Dict[str, Any]) -> None:
        if self.execution_id is None:
            raise InvalidRunStateError("Execution has not been started")

        self.completed_at = utcnow()
        values.update(
            status=status,
            completed_at=self.completed_at,
            duration_seconds=(self.completed_at - self.started_at).total_seconds(),
        )
        await self._guarded_update(values)
        await self.db.commit()
        logger.info(f"Execution {self.execution_id} finished: {status.value}")

    async def _guarded_update(self, values: Dict[str, Any]) -> None:
        if self.execution_id is None:
            raise InvalidRunStateError("Execution has not been started")

        result = await self.db.execute(
            update(ExecutionRecord)
            .where(
                ExecutionRecord.id == self.execution_id,
                ExecutionRecord.status == ExecutionStatus.RUNNING
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise InvalidRunStateError(
                f"Execution {self.execution_id} is not running",
                context={"execution_id": self.execution_id}
            )
