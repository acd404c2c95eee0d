# ============================================================================
# File: pipeline/runner.py
# Description: Import/export orchestration with per-record failure isolation
# ============================================================================
"""
Execution Engine - Orchestrates one import or export run of a pipeline config.

Import:  connect -> locate file -> download -> parse -> per record
         (transform -> validate -> upsert -> commit) -> archive
Export:  query -> serialize -> write temp file -> connect -> upload

Run-level failures (connection, missing path, codec) abort the run and
mark it failed. Per-record failures are stored as ExecutionError rows and
never abort the run.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import logging
import os
import shutil
import tempfile

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    ETLException,
    ExecutionStateError,
    LoadError,
    PathNotFoundError,
    TransformationError,
    ValidationError,
)
from core.security import CredentialVault
from models.base import Direction, ExecutionStatus, utcnow
from models.execution import ExecutionError, ExecutionRecord
from pipeline import codecs
from pipeline.connectors import Connector, create_connector
from pipeline.loaders import VehicleUpsertEngine, fetch_export_rows
from pipeline.locks import CancellationToken, RunLockRegistry
from pipeline.scheduler import mark_run_started
from pipeline.tracking import ExecutionTracker
from pipeline.transformers import FieldMapper, HeuristicStrategy, ValidationEngine
from schemas.api import PreviewResponse, PreviewRow, RunErrorEntry, RunSummary
from schemas.pipeline import FileNamingSpec, PipelineConfigData

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[..., Connector]


@dataclass
class RunCounts:
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    records_exported: int = 0

    def record(self, action: str) -> None:
        attr = f"records_{action}"
        setattr(self, attr, getattr(self, attr) + 1)

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def build_export_file_name(config: PipelineConfigData, now: Optional[datetime] = None) -> str:
    """
    Expand the export naming pattern.

    ``{dealer_id}``, ``{date}`` (YYYY-MM-DD) and ``{timestamp}`` are
    substituted; ``include_date`` appends ``_YYYYMMDD``; the file type is
    the extension.
    """
    now = now or utcnow()
    naming = config.file_naming or FileNamingSpec()

    name = (
        naming.pattern
        .replace("{dealer_id}", config.dealer_id)
        .replace("{date}", now.strftime("%Y-%m-%d"))
        .replace("{timestamp}", now.isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-"))
    )
    if naming.include_date:
        name += f"_{now.strftime('%Y%m%d')}"
    return f"{name}.{config.file_format.file_type.value}"


class ExecutionEngine:
    """
    Production-grade pipeline orchestrator

    Responsibilities:
    - Drive one run through running -> completed / failed
    - Isolate per-record failures (each record commits on its own)
    - Keep at most one run per config in this process
    - Always clean up local working files
    """

    def __init__(
        self,
        db_session: AsyncSession,
        vault: Optional[CredentialVault] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        strategy: Optional[HeuristicStrategy] = None,
        run_locks: Optional[RunLockRegistry] = None
    ):
        self.db = db_session
        self.vault = vault
        self.connector_factory = connector_factory or create_connector
        self.strategy = strategy
        self.run_locks = run_locks or RunLockRegistry()
        self.validator = ValidationEngine()

    # ========================================================================
    # Entry points
    # ========================================================================

    async def run(
        self,
        config: PipelineConfigData,
        *,
        row_indices: Optional[List[int]] = None,
        cancel_token: Optional[CancellationToken] = None,
        raise_on_failure: bool = False
    ) -> RunSummary:
        """
        Run a config in its configured direction.

        Raises:
            RunInProgressError: the config already has a run in this process
        """
        async with self.run_locks.hold(config.id):
            if config.direction == Direction.EXPORT:
                return await self.run_export(
                    config, cancel_token=cancel_token, raise_on_failure=raise_on_failure
                )
            return await self.run_import(
                config, row_indices=row_indices,
                cancel_token=cancel_token, raise_on_failure=raise_on_failure
            )

    async def run_import(
        self,
        config: PipelineConfigData,
        *,
        row_indices: Optional[List[int]] = None,
        cancel_token: Optional[CancellationToken] = None,
        raise_on_failure: bool = False
    ) -> RunSummary:
        tracker = ExecutionTracker(self.db)
        await tracker.start(config.id, Direction.IMPORT)
        counts = RunCounts()
        work_dir = None

        try:
            await self._mark_started(config)

            # --------------------------------------------------
            # PHASE 1: LOCATE AND DOWNLOAD
            # --------------------------------------------------
            work_dir = self._make_work_dir()
            local_path, file_name = await self._download_first_match(config, work_dir)
            await tracker.update(file_name=file_name, file_size=os.path.getsize(local_path))

            # --------------------------------------------------
            # PHASE 2: PARSE AND PROCESS
            # --------------------------------------------------
            data = await asyncio.to_thread(_read_bytes, local_path)
            await self._process(tracker, config, data, counts, row_indices, cancel_token, file_name)

            # --------------------------------------------------
            # PHASE 3: FINALIZE
            # --------------------------------------------------
            await tracker.complete(**counts.as_dict())
            self._dispose_file(local_path, config)

        except asyncio.CancelledError:
            await self._fail_run(tracker, "Run cancelled", counts)
            raise
        except Exception as e:
            await self._fail_run(tracker, e, counts)
            if raise_on_failure:
                raise
        finally:
            _remove_work_dir(work_dir)

        return await self.summarize(tracker.execution_id)

    async def run_import_data(
        self,
        config: PipelineConfigData,
        data: bytes,
        file_name: str = "preview-import.csv",
        *,
        row_indices: Optional[List[int]] = None,
        cancel_token: Optional[CancellationToken] = None,
        raise_on_failure: bool = False
    ) -> RunSummary:
        """Import already-uploaded file bytes (preview-execute). No remote I/O."""
        tracker = ExecutionTracker(self.db)
        await tracker.start(config.id, Direction.IMPORT, file_name=file_name)
        counts = RunCounts()

        try:
            await tracker.update(file_size=len(data))
            await self._process(tracker, config, data, counts, row_indices, cancel_token, file_name)
            await tracker.complete(**counts.as_dict())

        except asyncio.CancelledError:
            await self._fail_run(tracker, "Run cancelled", counts)
            raise
        except Exception as e:
            await self._fail_run(tracker, e, counts)
            if raise_on_failure:
                raise

        return await self.summarize(tracker.execution_id)

    async def run_export(
        self,
        config: PipelineConfigData,
        *,
        cancel_token: Optional[CancellationToken] = None,
        raise_on_failure: bool = False
    ) -> RunSummary:
        tracker = ExecutionTracker(self.db)
        await tracker.start(config.id, Direction.EXPORT)
        counts = RunCounts()
        work_dir = None

        try:
            await self._mark_started(config)

            # --------------------------------------------------
            # PHASE 1: QUERY AND SERIALIZE
            # --------------------------------------------------
            columns, rows = await fetch_export_rows(
                self.db, config.dealer_id, config.field_mappings, config.filters
            )
            payload = await asyncio.to_thread(codecs.serialize, rows, columns, config.file_format)

            if cancel_token:
                cancel_token.raise_if_cancelled()

            # --------------------------------------------------
            # PHASE 2: WRITE AND UPLOAD
            # --------------------------------------------------
            file_name = build_export_file_name(config)
            work_dir = self._make_work_dir()
            local_path = os.path.join(work_dir, file_name)
            await asyncio.to_thread(_write_bytes, local_path, payload)

            connector = self.connector_factory(config.connection, self.vault)
            try:
                await asyncio.to_thread(connector.connect)
                await asyncio.to_thread(connector.upload, local_path, file_name)
            finally:
                await asyncio.to_thread(connector.close)

            # --------------------------------------------------
            # PHASE 3: FINALIZE
            # --------------------------------------------------
            counts.records_processed = counts.records_exported = len(rows)
            await tracker.complete(file_name=file_name, file_size=len(payload), **counts.as_dict())
            logger.info(f"Exported {len(rows)} vehicles to {file_name} for dealer {config.dealer_id}")

        except asyncio.CancelledError:
            await self._fail_run(tracker, "Run cancelled", counts)
            raise
        except Exception as e:
            await self._fail_run(tracker, e, counts)
            if raise_on_failure:
                raise
        finally:
            _remove_work_dir(work_dir)

        return await self.summarize(tracker.execution_id)

    # ========================================================================
    # Preview (no writes, no history)
    # ========================================================================

    async def preview(
        self,
        config: PipelineConfigData,
        data: Optional[bytes] = None,
        limit: Optional[int] = None,
        file_name: Optional[str] = None
    ) -> PreviewResponse:
        """
        Parse and map at most ``limit`` rows.

        When ``data`` is None the first matching remote file is downloaded.
        """
        limit = limit or settings.PREVIEW_ROW_LIMIT
        work_dir = None

        try:
            if data is None:
                work_dir = self._make_work_dir()
                local_path, file_name = await self._download_first_match(config, work_dir)
                data = await asyncio.to_thread(_read_bytes, local_path)

            records = await asyncio.to_thread(codecs.parse, data, config.file_format)
        finally:
            _remove_work_dir(work_dir)

        mapper = FieldMapper(config.field_mappings, config.file_format, self.strategy)
        rows = []
        for index, source in enumerate(records[:limit]):
            errors: List[str] = []
            try:
                mapped = mapper.transform(source)
            except TransformationError as e:
                mapped, errors = {}, [e.message]
            else:
                result = self.validator.validate(mapped, config.field_mappings)
                errors = result.errors
            rows.append(PreviewRow(
                row_number=index + 1,
                source=source,
                mapped=_jsonable(mapped),
                errors=errors,
            ))

        columns = list(records[0].keys()) if records else []
        return PreviewResponse(file_name=file_name, columns=columns, total_rows=len(records), rows=rows)

    # ========================================================================
    # Record processing
    # ========================================================================

    async def _process(
        self,
        tracker: ExecutionTracker,
        config: PipelineConfigData,
        data: bytes,
        counts: RunCounts,
        row_indices: Optional[List[int]],
        cancel_token: Optional[CancellationToken],
        file_name: Optional[str]
    ) -> None:
        records = await asyncio.to_thread(codecs.parse, data, config.file_format)
        logger.info(f"Parsed {len(records)} records from {file_name}")

        selected: List[Tuple[int, Dict[str, str]]] = list(enumerate(records))
        if row_indices is not None:
            wanted = set(row_indices)
            selected = [(i, r) for i, r in selected if i in wanted]

        mapper = FieldMapper(config.field_mappings, config.file_format, self.strategy)
        upserter = VehicleUpsertEngine(self.db)
        policy = config.processing

        for position, (index, source) in enumerate(selected, start=1):
            if cancel_token:
                cancel_token.raise_if_cancelled()

            row_number = index + 1
            counts.records_processed += 1
            try:
                mapped = mapper.transform(source)

                if policy.validate_data:
                    result = self.validator.validate(mapped, config.field_mappings)
                    if not result.is_valid:
                        raise ValidationError("; ".join(result.errors), errors=result.errors)

                outcome = await upserter.apply(mapped, config.dealer_id, policy.duplicate_handling)
                await self.db.commit()
                counts.record(outcome.action)

            except (TransformationError, LoadError) as e:
                await self.db.rollback()
                counts.records_failed += 1
                await tracker.record_error(row_number, type(e).__name__, e.message, raw_data=source)
                await self.db.commit()
                logger.warning(f"Row {row_number} failed: {e.message}")
                self._check_error_limit(counts, policy.max_errors)

            if position % policy.batch_size == 0:
                logger.info(
                    f"Progress: {position}/{len(selected)} records "
                    f"({counts.records_failed} failed)"
                )

        logger.info(
            f"Processed {counts.records_processed} records - "
            f"inserted: {counts.records_inserted}, updated: {counts.records_updated}, "
            f"skipped: {counts.records_skipped}, failed: {counts.records_failed}"
        )

    def _check_error_limit(self, counts: RunCounts, max_errors: int) -> None:
        if not settings.ENFORCE_MAX_ERRORS or counts.records_failed <= max_errors:
            return
        raise ExecutionStateError(
            f"Aborted after {counts.records_failed} errors (maxErrors={max_errors})",
            context={"records_failed": counts.records_failed, "max_errors": max_errors}
        )

    # ========================================================================
    # Remote and local files
    # ========================================================================

    async def _download_first_match(self, config: PipelineConfigData, work_dir: str) -> Tuple[str, str]:
        connection = config.connection
        connector = self.connector_factory(connection, self.vault)
        try:
            await asyncio.to_thread(connector.connect)
            match = await asyncio.to_thread(
                connector.find_first_match, connection.remote_directory, connection.file_pattern
            )
            if match is None:
                raise PathNotFoundError(
                    f"No files found matching pattern '{connection.file_pattern}' "
                    f"in '{connection.remote_directory}'",
                    context={"path": connection.remote_directory, "pattern": connection.file_pattern}
                )
            local_path = os.path.join(work_dir, os.path.basename(match.name))
            await asyncio.to_thread(connector.download, connector.remote_path(match.name), local_path)
        finally:
            await asyncio.to_thread(connector.close)

        return local_path, match.name

    @staticmethod
    def _make_work_dir() -> str:
        os.makedirs(settings.LOCAL_WORK_DIR, exist_ok=True)
        return tempfile.mkdtemp(prefix="run-", dir=settings.LOCAL_WORK_DIR)

    @staticmethod
    def _dispose_file(local_path: str, config: PipelineConfigData) -> None:
        """Archive the processed file, or delete it."""
        processing = config.processing
        try:
            if processing.archive_processed_files:
                archive_dir = os.path.join(settings.ARCHIVE_DIR, processing.archive_directory)
                os.makedirs(archive_dir, exist_ok=True)
                stamp = utcnow().strftime("%Y%m%dT%H%M%S")
                target = os.path.join(archive_dir, f"{stamp}_{os.path.basename(local_path)}")
                shutil.move(local_path, target)
                logger.info(f"Archived {local_path} to {target}")
            else:
                os.remove(local_path)
        except OSError as e:
            # The run is already committed as completed at this point
            logger.warning(f"Could not archive or remove {local_path}: {e}")

    # ========================================================================
    # Run lifecycle
    # ========================================================================

    async def _mark_started(self, config: PipelineConfigData) -> None:
        if config.id is not None:
            await mark_run_started(self.db, config.id, config.schedule)

    async def _fail_run(self, tracker: ExecutionTracker, error: Any, counts: RunCounts) -> None:
        if isinstance(error, ETLException):
            message = error.message
            logger.error(
                f"Execution {tracker.execution_id} failed: {message}",
                extra={"error_context": error.to_dict()}
            )
        elif isinstance(error, Exception):
            message = str(error) or type(error).__name__
            logger.exception(f"Unexpected error in execution {tracker.execution_id}")
        else:
            message = str(error)
            logger.error(f"Execution {tracker.execution_id} failed: {message}")

        await self.db.rollback()
        await tracker.fail(message, **counts.as_dict())

    async def summarize(self, execution_id: int) -> RunSummary:
        record = (await self.db.execute(
            select(ExecutionRecord).where(ExecutionRecord.id == execution_id)
            .execution_options(populate_existing=True)
        )).scalar_one()

        errors = (await self.db.execute(
            select(ExecutionError.row_number, ExecutionError.error_message)
            .where(ExecutionError.execution_record_id == execution_id)
            .order_by(ExecutionError.id)
            .limit(settings.ERROR_SUMMARY_LIMIT)
        )).all()

        return RunSummary(
            execution_id=record.id,
            config_id=record.config_id,
            direction=record.direction,
            status=record.status,
            file_name=record.file_name,
            file_size=record.file_size,
            records_processed=record.records_processed,
            records_inserted=record.records_inserted,
            records_updated=record.records_updated,
            records_skipped=record.records_skipped,
            records_failed=record.records_failed,
            records_exported=record.records_exported,
            error_message=record.error_message,
            errors=[RunErrorEntry(row_number=row, message=msg) for row, msg in errors],
            started_at=record.started_at,
            completed_at=record.completed_at,
        )


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _write_bytes(path: str, payload: bytes) -> None:
    with open(path, "wb") as f:
        f.write(payload)


def _remove_work_dir(work_dir: Optional[str]) -> None:
    if work_dir:
        shutil.rmtree(work_dir, ignore_errors=True)


def _jsonable(record: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in record.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif value is None or isinstance(value, (bool, int, float, str)):
            out[key] = value
        else:
            out[key] = str(value)
    return out
