"""
Tests for failure scenarios and error handling
"""

import asyncio
import os

import pytest
from sqlalchemy import select

from core.config import settings
from core.exceptions import RemoteConnectionError, RunInProgressError
from models.base import ExecutionStatus
from models.execution import ExecutionRecord
from pipeline.locks import CancellationToken, RunLockRegistry
from pipeline.runner import ExecutionEngine
from conftest import HONDA_CSV, THREE_VEHICLES_CSV


async def only_record(session):
    result = await session.execute(
        select(ExecutionRecord).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_unreachable_host_fails_run(db_session, fake_remote, make_config, local_dirs):
    """
    Test: SFTP host is down, run is recorded as failed and nothing raises
    """
    fake_remote.fail_connect = True
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    summary = await engine.run(make_config())

    assert summary.status == ExecutionStatus.FAILED
    assert "sftp.example.com:22" in summary.error_message
    assert summary.records_processed == 0
    assert summary.completed_at is not None
    assert os.listdir(local_dirs["work"]) == []

    record = await only_record(db_session)
    assert record.status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_raise_on_failure_propagates(db_session, fake_remote, make_config):
    fake_remote.fail_connect = True
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    with pytest.raises(RemoteConnectionError):
        await engine.run(make_config(), raise_on_failure=True)

    assert (await only_record(db_session)).status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_missing_directory_names_siblings(db_session, fake_remote, make_config):
    fake_remote.files["/incoming"] = {"inventory.csv": HONDA_CSV.encode()}
    fake_remote.files["/outgoing"] = {}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    summary = await engine.run(make_config())

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message.startswith("Directory '/inbound' does not exist")
    assert "incoming, outgoing" in summary.error_message


@pytest.mark.asyncio
async def test_no_matching_file(db_session, fake_remote, make_config):
    fake_remote.files["/inbound"] = {"readme.txt": b"hello"}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    summary = await engine.run(make_config())

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message == "No files found matching pattern '*.csv' in '/inbound'"
    # the connection is closed even though nothing was downloaded
    assert fake_remote.connectors[0].close_calls == 1


@pytest.mark.asyncio
async def test_malformed_file_fails_run(db_session, fake_remote, make_config):
    fake_remote.files["/inbound"] = {"inventory.csv": b"\n\n"}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    summary = await engine.run(make_config())

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message == "CSV file is empty"
    assert summary.file_name == "inventory.csv"


@pytest.mark.asyncio
async def test_ftp_config_fails_fast(db_session, make_config):
    config = make_config(connection={
        "connector_type": "ftp", "host": "ftp.example.com", "username": "dealer", "password": "secret",
    })
    engine = ExecutionEngine(db_session)

    summary = await engine.run(config)

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message == "FTP connector not implemented yet"


@pytest.mark.asyncio
async def test_cancellation_between_records(db_session, fake_remote, make_config):
    fake_remote.files["/inbound"] = {"inventory.csv": THREE_VEHICLES_CSV.encode()}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)
    token = CancellationToken()
    token.cancel()

    summary = await engine.run(make_config(), cancel_token=token)

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message == "Run cancelled by request"
    assert summary.records_processed == 0


@pytest.mark.asyncio
async def test_task_cancellation_marks_run_failed(db_session, make_config):
    def cancelled_factory(connection, vault=None):
        raise asyncio.CancelledError()

    engine = ExecutionEngine(db_session, connector_factory=cancelled_factory)

    with pytest.raises(asyncio.CancelledError):
        await engine.run(make_config())

    record = await only_record(db_session)
    assert record.status == ExecutionStatus.FAILED
    assert record.error_message == "Run cancelled"


@pytest.mark.asyncio
async def test_concurrent_run_of_same_config_rejected(db_session, fake_remote, make_config):
    run_locks = RunLockRegistry()
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory, run_locks=run_locks)
    config = make_config(id=5)

    async with run_locks.hold(5):
        with pytest.raises(RunInProgressError):
            await engine.run(config)

    assert fake_remote.connectors == []


@pytest.mark.asyncio
async def test_max_errors_enforced(db_session, fake_remote, make_config, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_MAX_ERRORS", True)
    csv_data = "VIN,Make\n,Honda\n,Toyota\n,Ford\n1HGCM82633A000004,Kia\n"
    fake_remote.files["/inbound"] = {"inventory.csv": csv_data.encode()}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)
    config = make_config(processing={"max_errors": 1, "archive_processed_files": False})

    summary = await engine.run(config)

    assert summary.status == ExecutionStatus.FAILED
    assert summary.error_message == "Aborted after 2 errors (maxErrors=1)"
    assert summary.records_failed == 2
    assert summary.records_inserted == 0
    assert len(summary.errors) == 2


@pytest.mark.asyncio
async def test_max_errors_advisory_by_default(db_session, fake_remote, make_config):
    csv_data = "VIN,Make\n,Honda\n,Toyota\n,Ford\n1HGCM82633A000004,Kia\n"
    fake_remote.files["/inbound"] = {"inventory.csv": csv_data.encode()}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)
    config = make_config(processing={"max_errors": 1, "archive_processed_files": False})

    summary = await engine.run(config)

    assert summary.status == ExecutionStatus.COMPLETED
    assert (summary.records_failed, summary.records_inserted) == (3, 1)


@pytest.mark.asyncio
async def test_error_summary_is_capped(db_session, fake_remote, make_config, monkeypatch):
    monkeypatch.setattr(settings, "ERROR_SUMMARY_LIMIT", 2)
    csv_data = "VIN,Make\n" + ",Honda\n" * 5
    fake_remote.files["/inbound"] = {"inventory.csv": csv_data.encode()}
    engine = ExecutionEngine(db_session, connector_factory=fake_remote.factory)

    summary = await engine.run(make_config())

    assert summary.records_failed == 5
    assert [e.row_number for e in summary.errors] == [1, 2]
