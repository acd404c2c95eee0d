"""
Remote endpoint connectors and the factory that builds them.
"""

from typing import Optional

from core.exceptions import ConfigurationError
from core.security import CredentialVault
from models.base import ConnectorType
from pipeline.connectors.base import Connector, RemoteFile
from pipeline.connectors.ftp import FTPConnector
from pipeline.connectors.sftp import SFTPConnector
from schemas.pipeline import ConnectionSpec

_CONNECTORS = {
    ConnectorType.SFTP: SFTPConnector,
    ConnectorType.FTP: FTPConnector,
}


def resolve_password(connection: ConnectionSpec, vault: Optional[CredentialVault]) -> Optional[str]:
    """Plaintext password for a connection (stored ciphertext is decrypted)."""
    if connection.password is not None:
        return connection.password
    if not connection.password_encrypted:
        return None
    if vault is None:
        raise ConfigurationError(
            "ENCRYPTION_KEY is not configured; stored credentials cannot be decrypted",
            context={"section": "connection"}
        )
    return vault.decrypt(connection.password_encrypted)


def create_connector(connection: ConnectionSpec, vault: Optional[CredentialVault] = None) -> Connector:
    """Build a new connector for one run."""
    connector_cls = _CONNECTORS.get(connection.connector_type)
    if connector_cls is None:
        raise ConfigurationError(
            f"Unsupported connector type: {connection.connector_type}",
            context={"section": "connection"}
        )
    return connector_cls(connection, password=resolve_password(connection, vault))


__all__ = [
    "Connector",
    "RemoteFile",
    "SFTPConnector",
    "FTPConnector",
    "create_connector",
    "resolve_password",
]
