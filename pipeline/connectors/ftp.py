"""
FTP connector placeholder.

Configs may select FTP, but no transport exists yet. Every operation fails
immediately so a run can never report success without moving a file.
"""

from typing import List, Optional

from core.exceptions import ConnectorNotImplementedError
from pipeline.connectors.base import Connector, RemoteFile

NOT_IMPLEMENTED_MESSAGE = "FTP connector not implemented yet"


class FTPConnector(Connector):

    def _fail(self):
        raise ConnectorNotImplementedError(
            NOT_IMPLEMENTED_MESSAGE,
            context={
                "connector_type": "ftp",
                "host": self.connection.host,
                "port": self.connection.port,
            }
        )

    def connect(self) -> None:
        self._fail()

    def close(self) -> None:
        pass

    def list(self, directory: Optional[str] = None) -> List[RemoteFile]:
        self._fail()

    def download(self, remote_path: str, local_path: str) -> None:
        self._fail()

    def upload(self, local_path: str, remote_file_name: str) -> str:
        self._fail()
