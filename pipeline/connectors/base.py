"""
Abstract base class for remote file endpoints.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from fnmatch import fnmatch
from typing import List, Optional
import logging

from schemas.pipeline import ConnectionSpec

logger = logging.getLogger(__name__)


@dataclass
class RemoteFile:
    name: str
    size: Optional[int] = None
    modified_at: Optional[datetime] = None
    is_directory: bool = False


class Connector(ABC):
    """
    Abstract base class for all connectors.

    Responsibilities:
    - Open and close one session against the remote endpoint
    - List, download and upload files
    - Pattern matching for the file an import should pick up

    Connectors are blocking; async callers wrap every call in
    ``asyncio.to_thread``. A connector instance belongs to exactly one run.
    The password is only held until ``connect()`` opens the session.
    """

    def __init__(self, connection: ConnectionSpec, password: Optional[str] = None):
        self.connection = connection
        self._password = password

    @property
    def remote_directory(self) -> str:
        return self.connection.remote_directory or "/"

    @abstractmethod
    def connect(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def list(self, directory: Optional[str] = None) -> List[RemoteFile]:
        """List the entries of ``directory`` (defaults to the configured one)."""
        pass

    @abstractmethod
    def download(self, remote_path: str, local_path: str) -> None:
        pass

    @abstractmethod
    def upload(self, local_path: str, remote_file_name: str) -> str:
        """Upload into the configured remote directory. Returns the remote path."""
        pass

    def __enter__(self) -> "Connector":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def remote_path(self, file_name: str) -> str:
        return f"{self.remote_directory.rstrip('/')}/{file_name}"

    def find_first_match(self, directory: Optional[str] = None, pattern: Optional[str] = None) -> Optional[RemoteFile]:
        """First file (by name) in ``directory`` matching the glob ``pattern``."""
        pattern = pattern or self.connection.file_pattern or "*"
        matches = sorted(
            (f for f in self.list(directory) if not f.is_directory and fnmatch(f.name, pattern)),
            key=lambda f: f.name
        )
        logger.info(f"{len(matches)} file(s) match '{pattern}' in {directory or self.remote_directory}")
        return matches[0] if matches else None

    def probe(self, directory: Optional[str] = None) -> List[RemoteFile]:
        """Connection test: connect, list, disconnect."""
        with self:
            return self.list(directory)
