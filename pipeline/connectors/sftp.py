"""
SFTP connector (paramiko).
"""

from datetime import datetime, timezone
from typing import List, Optional
import logging
import posixpath
import socket
import stat

import paramiko

from core.config import settings
from core.exceptions import PathNotFoundError, RemoteConnectionError
from pipeline.connectors.base import Connector, RemoteFile
from schemas.pipeline import ConnectionSpec

logger = logging.getLogger(__name__)


class SFTPConnector(Connector):
    """Password-authenticated SFTP session over one SSH transport."""

    def __init__(
        self,
        connection: ConnectionSpec,
        password: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        super().__init__(connection, password)
        self.timeout = timeout or settings.SFTP_CONNECT_TIMEOUT
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._closed = False

    def _context(self, **extra):
        context = {
            "connector_type": "sftp",
            "host": self.connection.host,
            "port": self.connection.port,
        }
        context.update(extra)
        return context

    def connect(self) -> None:
        if self._sftp is not None:
            return

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.connection.host,
                port=self.connection.port,
                username=self.connection.username,
                password=self._password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            self._sftp = client.open_sftp()
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteConnectionError(
                f"SFTP authentication failed for {self.connection.username}@{self.connection.host}",
                context=self._context(),
                original_exception=e
            )
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise RemoteConnectionError(
                f"SFTP connection to {self.connection.host}:{self.connection.port} failed: {e}",
                context=self._context(),
                original_exception=e
            )

        self._client = client
        self._password = None
        logger.info(f"SFTP connected to {self.connection.host}:{self.connection.port}")

    def close(self) -> None:
        self._closed = True
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def _session(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            if self._closed:
                raise RemoteConnectionError(
                    "SFTP session is closed",
                    context=self._context()
                )
            self.connect()
        return self._sftp

    def list(self, directory: Optional[str] = None) -> List[RemoteFile]:
        directory = directory or self.remote_directory
        sftp = self._session()
        try:
            entries = sftp.listdir_attr(directory)
        except FileNotFoundError as e:
            raise self._missing_directory(directory, e)
        except (IOError, paramiko.SSHException) as e:
            raise RemoteConnectionError(
                f"Failed to list files in '{directory}': {e}",
                context=self._context(path=directory),
                original_exception=e
            )

        return [
            RemoteFile(
                name=entry.filename,
                size=entry.st_size,
                modified_at=(
                    datetime.fromtimestamp(entry.st_mtime, tz=timezone.utc)
                    if entry.st_mtime is not None else None
                ),
                is_directory=stat.S_ISDIR(entry.st_mode or 0),
            )
            for entry in entries
        ]

    def _missing_directory(self, directory: str, cause: Exception) -> PathNotFoundError:
        parent = posixpath.dirname(directory.rstrip("/")) or "/"
        try:
            siblings = sorted(
                entry.filename for entry in self._sftp.listdir_attr(parent)
                if stat.S_ISDIR(entry.st_mode or 0)
            )
        except (IOError, paramiko.SSHException):
            siblings = []

        return PathNotFoundError(
            f"Directory '{directory}' does not exist. "
            f"Available directories in {parent}: {', '.join(siblings) or 'none'}",
            context=self._context(path=directory),
            original_exception=cause,
            available_directories=siblings
        )

    def download(self, remote_path: str, local_path: str) -> None:
        sftp = self._session()
        try:
            sftp.get(remote_path, local_path)
        except FileNotFoundError as e:
            raise PathNotFoundError(
                f"Remote file '{remote_path}' does not exist",
                context=self._context(path=remote_path),
                original_exception=e
            )
        except (IOError, paramiko.SSHException) as e:
            raise RemoteConnectionError(
                f"Failed to download '{remote_path}': {e}",
                context=self._context(path=remote_path),
                original_exception=e
            )
        logger.info(f"Downloaded {remote_path} to {local_path}")

    def upload(self, local_path: str, remote_file_name: str) -> str:
        remote_path = self.remote_path(remote_file_name)
        sftp = self._session()
        try:
            sftp.put(local_path, remote_path)
        except FileNotFoundError as e:
            raise self._missing_directory(self.remote_directory, e)
        except (IOError, paramiko.SSHException) as e:
            raise RemoteConnectionError(
                f"Failed to upload '{remote_path}': {e}",
                context=self._context(path=remote_path),
                original_exception=e
            )
        logger.info(f"Uploaded {local_path} to {remote_path}")
        return remote_path
