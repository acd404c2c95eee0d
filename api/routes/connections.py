"""
Connection test endpoint
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_optional_vault
from core.exceptions import ExtractionError, PathNotFoundError, RetryableError
from pipeline.connectors import create_connector
from schemas.api import ConnectionTestRequest, ConnectionTestResponse, RemoteFileInfo

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connections", tags=["Connections"])


@router.post("/test", response_model=ConnectionTestResponse)
async def test_connection(payload: ConnectionTestRequest, vault=Depends(get_optional_vault)):
    """
    Connect and list the remote directory.

    Unreachable hosts and missing directories are reported in the body
    (success=false); configuration problems such as FTP are raised.
    """
    connector = create_connector(payload, vault)
    try:
        files = await asyncio.to_thread(connector.probe, payload.remote_directory)
    except PathNotFoundError as e:
        return ConnectionTestResponse(
            success=False, message=e.message, available_directories=e.available_directories
        )
    except ExtractionError as e:
        logger.warning(f"Connection test to {payload.host} failed: {e.message}")
        return ConnectionTestResponse(
            success=False, message=e.message, retryable=isinstance(e, RetryableError)
        )

    return ConnectionTestResponse(
        success=True,
        message=f"Connected to {payload.host}; {len(files)} entries in {payload.remote_directory}",
        files=[
            RemoteFileInfo(
                name=f.name, size=f.size, modified_at=f.modified_at, is_directory=f.is_directory
            )
            for f in files
        ],
    )
