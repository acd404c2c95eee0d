"""
Unit tests for connectors and the connector factory
"""

import socket
import stat
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from core.exceptions import (
    ConfigurationError, ConnectorNotImplementedError, PathNotFoundError, RemoteConnectionError
)
from pipeline.connectors import FTPConnector, SFTPConnector, create_connector, resolve_password
from schemas.pipeline import ConnectionSpec


def connection(**overrides):
    data = {
        "connector_type": "sftp",
        "host": "sftp.example.com",
        "username": "dealer",
        "remote_directory": "/inbound",
        "file_pattern": "*.csv",
    }
    data.update(overrides)
    return ConnectionSpec(**data)


def entry(name, directory=False, size=10):
    mode = stat.S_IFDIR if directory else stat.S_IFREG
    return SimpleNamespace(filename=name, st_size=size, st_mtime=1704067200, st_mode=mode)


@pytest.fixture
def ssh_client():
    with patch("pipeline.connectors.sftp.paramiko.SSHClient") as client_cls:
        client = client_cls.return_value
        client.open_sftp.return_value = MagicMock()
        yield client


class TestSFTPConnector:

    def test_connect_uses_password_auth(self, ssh_client):
        connector = SFTPConnector(connection(port=2222), password="secret", timeout=5)
        connector.connect()

        kwargs = ssh_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "sftp.example.com"
        assert kwargs["port"] == 2222
        assert kwargs["password"] == "secret"
        assert kwargs["timeout"] == 5
        assert kwargs["look_for_keys"] is False

    def test_password_dropped_after_connect(self, ssh_client):
        connector = SFTPConnector(connection(), password="secret")
        connector.connect()

        assert connector._password is None
        assert "secret" not in repr(vars(connector))

    def test_password_kept_when_connect_fails(self, ssh_client):
        ssh_client.connect.side_effect = socket.timeout("timed out")
        connector = SFTPConnector(connection(), password="secret")

        with pytest.raises(RemoteConnectionError):
            connector.connect()
        assert connector._password == "secret"

    def test_closed_connector_does_not_reconnect(self, ssh_client):
        connector = SFTPConnector(connection(), password="secret")
        connector.connect()
        connector.close()

        with pytest.raises(RemoteConnectionError, match="session is closed"):
            connector.list()
        ssh_client.connect.assert_called_once()

    def test_authentication_failure(self, ssh_client):
        ssh_client.connect.side_effect = paramiko.AuthenticationException("bad password")
        connector = SFTPConnector(connection(), password="wrong")

        with pytest.raises(RemoteConnectionError, match="authentication failed"):
            connector.connect()
        ssh_client.close.assert_called_once()

    def test_unreachable_host(self, ssh_client):
        ssh_client.connect.side_effect = socket.timeout("timed out")
        connector = SFTPConnector(connection(), password="secret")

        with pytest.raises(RemoteConnectionError) as exc_info:
            connector.connect()
        assert exc_info.value.context["host"] == "sftp.example.com"
        assert exc_info.value.context["port"] == 22

    def test_find_first_match_sorts_and_skips_directories(self, ssh_client):
        sftp = ssh_client.open_sftp.return_value
        sftp.listdir_attr.return_value = [
            entry("b_inventory.csv"),
            entry("archive.csv", directory=True),
            entry("a_inventory.csv"),
            entry("notes.txt"),
        ]

        with SFTPConnector(connection(), password="secret") as connector:
            match = connector.find_first_match()

        assert match.name == "a_inventory.csv"
        sftp.listdir_attr.assert_called_with("/inbound")
        sftp.close.assert_called_once()

    def test_missing_directory_lists_siblings(self, ssh_client):
        sftp = ssh_client.open_sftp.return_value

        def listdir_attr(path):
            if path == "/inbound":
                raise FileNotFoundError(2, "No such file")
            return [entry("incoming", directory=True), entry("outgoing", directory=True), entry("readme.txt")]

        sftp.listdir_attr.side_effect = listdir_attr
        connector = SFTPConnector(connection(), password="secret")

        with pytest.raises(PathNotFoundError) as exc_info:
            connector.list()

        error = exc_info.value
        assert error.available_directories == ["incoming", "outgoing"]
        assert error.message == "Directory '/inbound' does not exist. Available directories in /: incoming, outgoing"

    def test_upload_returns_remote_path(self, ssh_client, tmp_path):
        local = tmp_path / "out.csv"
        local.write_text("vin\n")
        connector = SFTPConnector(connection(remote_directory="/outbound/"), password="secret")

        assert connector.upload(str(local), "out.csv") == "/outbound/out.csv"
        ssh_client.open_sftp.return_value.put.assert_called_once_with(str(local), "/outbound/out.csv")


class TestFTPConnector:

    def test_every_operation_fails_fast(self, tmp_path):
        connector = FTPConnector(connection(connector_type="ftp"), password="secret")

        with pytest.raises(ConnectorNotImplementedError, match="FTP connector not implemented yet"):
            connector.connect()
        with pytest.raises(ConnectorNotImplementedError):
            connector.list()
        with pytest.raises(ConnectorNotImplementedError):
            connector.upload(str(tmp_path / "x.csv"), "x.csv")

    def test_default_port(self):
        assert connection(connector_type="FTP").port == 21


class TestConnectorFactory:

    def test_decrypts_stored_password(self, vault):
        spec = connection(password_encrypted=vault.encrypt("secret"))

        connector = create_connector(spec, vault)

        assert isinstance(connector, SFTPConnector)
        assert connector._password == "secret"

    def test_plaintext_password_wins(self, vault):
        spec = connection(password="typed", password_encrypted=vault.encrypt("stored"))
        assert resolve_password(spec, vault) == "typed"

    def test_stored_password_without_vault(self, vault):
        spec = connection(password_encrypted=vault.encrypt("secret"))

        with pytest.raises(ConfigurationError):
            create_connector(spec, None)

    def test_ftp_type_builds_ftp_connector(self):
        assert isinstance(create_connector(connection(connector_type="ftp", password="x")), FTPConnector)
