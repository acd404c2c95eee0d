"""
Unit tests for execution tracking, run locks and cancellation
"""

import asyncio

import pytest
from sqlalchemy import select

from core.exceptions import InvalidRunStateError, RunCancelledError, RunInProgressError
from models.base import Direction, ExecutionStatus
from models.execution import ExecutionError, ExecutionRecord
from pipeline.locks import CancellationToken, RunLockRegistry
from pipeline.tracking import ExecutionTracker


async def fetch_record(session, execution_id):
    result = await session.execute(
        select(ExecutionRecord).where(ExecutionRecord.id == execution_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestExecutionTracker:

    @pytest.mark.asyncio
    async def test_start_commits_running_record(self, db_session):
        tracker = ExecutionTracker(db_session)
        execution_id = await tracker.start(None, Direction.IMPORT, file_name="inventory.csv")

        assert await tracker.status() == ExecutionStatus.RUNNING
        record = await fetch_record(db_session, execution_id)
        assert record.file_name == "inventory.csv"
        assert record.completed_at is None

    @pytest.mark.asyncio
    async def test_complete_sets_counts_and_duration(self, db_session):
        tracker = ExecutionTracker(db_session)
        execution_id = await tracker.start(None, Direction.IMPORT)

        await tracker.complete(records_processed=3, records_inserted=2, records_failed=1)

        record = await fetch_record(db_session, execution_id)
        assert record.status == ExecutionStatus.COMPLETED
        assert (record.records_processed, record.records_inserted, record.records_failed) == (3, 2, 1)
        assert record.completed_at is not None
        assert record.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_terminal_record_cannot_change(self, db_session):
        tracker = ExecutionTracker(db_session)
        execution_id = await tracker.start(None, Direction.EXPORT)
        await tracker.fail("SFTP connection failed")

        with pytest.raises(InvalidRunStateError):
            await tracker.complete(records_exported=10)
        with pytest.raises(InvalidRunStateError):
            await tracker.update(file_name="late.csv")

        record = await fetch_record(db_session, execution_id)
        assert record.status == ExecutionStatus.FAILED
        assert record.error_message == "SFTP connection failed"
        assert record.records_exported == 0

    @pytest.mark.asyncio
    async def test_unstarted_tracker(self, db_session):
        tracker = ExecutionTracker(db_session)

        with pytest.raises(InvalidRunStateError, match="has not been started"):
            await tracker.complete()
        with pytest.raises(InvalidRunStateError, match="has not been started"):
            await tracker.fail("SFTP connection failed")
        with pytest.raises(InvalidRunStateError, match="has not been started"):
            await tracker.update(file_name="early.csv")
        assert tracker.completed_at is None

    @pytest.mark.asyncio
    async def test_record_error_appends(self, db_session):
        tracker = ExecutionTracker(db_session)
        execution_id = await tracker.start(None, Direction.IMPORT)

        await tracker.record_error(2, "ValidationError", "Required field vin is missing", {"VIN": ""})
        await tracker.record_error(5, "TransformError", "Invalid regular expression '('")
        await db_session.commit()

        result = await db_session.execute(
            select(ExecutionError).where(ExecutionError.execution_record_id == execution_id)
            .order_by(ExecutionError.id)
        )
        errors = result.scalars().all()
        assert [e.row_number for e in errors] == [2, 5]
        assert errors[0].raw_data == {"VIN": ""}


class TestRunLocks:

    @pytest.mark.asyncio
    async def test_second_run_is_rejected(self):
        locks = RunLockRegistry()

        async with locks.hold(7):
            assert locks.is_running(7)
            assert locks.active_count == 1
            with pytest.raises(RunInProgressError, match="config 7"):
                async with locks.hold(7):
                    pass

        assert not locks.is_running(7)

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = RunLockRegistry()

        with pytest.raises(ValueError):
            async with locks.hold(7):
                raise ValueError("boom")

        async with locks.hold(7):
            pass

    @pytest.mark.asyncio
    async def test_different_configs_run_concurrently(self):
        locks = RunLockRegistry()
        entered = []

        async def run(key):
            async with locks.hold(key):
                entered.append(key)
                await asyncio.sleep(0)

        await asyncio.gather(run(1), run(2))
        assert sorted(entered) == [1, 2]

    @pytest.mark.asyncio
    async def test_adhoc_runs_are_not_locked(self):
        locks = RunLockRegistry()
        async with locks.hold(None):
            async with locks.hold(None):
                assert locks.active_count == 0


class TestCancellationToken:

    def test_cancel(self):
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel()

        assert token.cancelled
        with pytest.raises(RunCancelledError):
            token.raise_if_cancelled()
