"""
Pytest configuration and fixtures
"""

import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from core.config import settings
from core.exceptions import PathNotFoundError, RemoteConnectionError
from core.security import CredentialVault
from models.base import Base
from pipeline.connectors.base import Connector, RemoteFile
from schemas.pipeline import PipelineConfigData

HONDA_CSV = (
    "VIN,Make,Model,Year,Price,Mileage,Features\n"
    '1HGCM82633A004352,Honda,Civic,2021,"$18,995","Mileage: 45,231 mi",'
    "Leather Seats|Sunroof|Backup Camera\n"
)

THREE_VEHICLES_CSV = (
    "VIN,Make,Model,Year,Price\n"
    "1HGCM82633A000001,Honda,Civic,2019,15995\n"
    "1HGCM82633A000002,Toyota,Camry,2020,21500\n"
    "1HGCM82633A000003,Ford,F-150,2018,27999\n"
)

INVENTORY_MAPPINGS = [
    {"source_field": "VIN", "target_field": "vin", "is_required": True},
    {"source_field": "Make", "target_field": "make"},
    {"source_field": "Model", "target_field": "model"},
    {"source_field": "Year", "target_field": "year"},
    {"source_field": "Price", "target_field": "price"},
    {"source_field": "Mileage", "target_field": "odometer"},
    {"source_field": "Features", "target_field": "features"},
]


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite unless TEST_DATABASE_URL points elsewhere"""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def local_dirs(tmp_path, monkeypatch):
    """Keep work and archive files inside the test's tmp_path"""
    work_dir = tmp_path / "work"
    archive_dir = tmp_path / "archive"
    monkeypatch.setattr(settings, "LOCAL_WORK_DIR", str(work_dir))
    monkeypatch.setattr(settings, "ARCHIVE_DIR", str(archive_dir))
    return {"work": work_dir, "archive": archive_dir}


# ============================================================================
# Credentials and connectors
# ============================================================================

@pytest.fixture(scope="session")
def vault():
    return CredentialVault("test-encryption-key")


class FakeConnector(Connector):
    """In-memory remote endpoint. ``files`` maps directory -> {name: bytes}."""

    def __init__(
        self,
        connection,
        password: Optional[str] = None,
        files: Optional[Dict[str, Dict[str, bytes]]] = None,
        fail_connect: bool = False
    ):
        super().__init__(connection, password)
        self.files = files if files is not None else {}
        self.fail_connect = fail_connect
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.uploads: Dict[str, bytes] = {}

    def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise RemoteConnectionError(
                f"SFTP connection to {self.connection.host}:{self.connection.port} failed: timed out",
                context={"host": self.connection.host}
            )
        self.connected = True

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    def list(self, directory: Optional[str] = None) -> List[RemoteFile]:
        directory = directory or self.remote_directory
        if directory not in self.files:
            siblings = sorted(d.strip("/") for d in self.files if d != directory)
            raise PathNotFoundError(
                f"Directory '{directory}' does not exist. Available directories in /: {', '.join(siblings)}",
                available_directories=siblings
            )
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return [
            RemoteFile(name=name, size=len(data), modified_at=modified)
            for name, data in self.files[directory].items()
        ]

    def download(self, remote_path: str, local_path: str) -> None:
        directory, _, name = remote_path.rpartition("/")
        data = self.files[directory or "/"][name]
        with open(local_path, "wb") as f:
            f.write(data)

    def upload(self, local_path: str, remote_file_name: str) -> str:
        with open(local_path, "rb") as f:
            self.uploads[remote_file_name] = f.read()
        return self.remote_path(remote_file_name)


@pytest.fixture
def fake_remote():
    """Remote file tree plus a connector factory bound to it"""

    class Remote:
        def __init__(self):
            self.files: Dict[str, Dict[str, bytes]] = {}
            self.fail_connect = False
            self.connectors: List[FakeConnector] = []

        def factory(self, connection, vault=None):
            connector = FakeConnector(connection, files=self.files, fail_connect=self.fail_connect)
            self.connectors.append(connector)
            return connector

    return Remote()


# ============================================================================
# Configs
# ============================================================================

@pytest.fixture
def make_config():
    """Build a resolved import/export config without touching the database"""

    def _make(**overrides) -> PipelineConfigData:
        data = {
            "dealer_id": "dealer-1",
            "name": "Nightly inventory",
            "direction": "import",
            "connection": {
                "connector_type": "sftp",
                "host": "sftp.example.com",
                "username": "dealer",
                "password": "secret",
                "remote_directory": "/inbound",
                "file_pattern": "*.csv",
            },
            "file_format": {"file_type": "csv", "delimiter": ",", "include_header": True},
            "field_mappings": INVENTORY_MAPPINGS,
            "processing": {"duplicate_handling": "insert_or_update", "archive_processed_files": False},
        }
        data.update(overrides)
        return PipelineConfigData(**data)

    return _make
