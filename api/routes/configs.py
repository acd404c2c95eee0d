"""
Pipeline config management and execute-now endpoints
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_optional_vault, get_run_locks
from core.config import settings
from core.security import CredentialVault
from models.base import Direction
from pipeline.config_store import ConfigStore
from pipeline.locks import RunLockRegistry
from pipeline.runner import ExecutionEngine
from schemas.api import (
    ExecutionRecordResponse, HistoryResponse, NameAvailabilityResponse,
    PipelineConfigResponse, PreviewResponse, RunSummary
)
from schemas.pipeline import PipelineConfigCreate, PipelineConfigUpdate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/configs", tags=["Pipeline Configs"])


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "-")


@router.post("", response_model=PipelineConfigResponse, status_code=status.HTTP_201_CREATED)
async def create_config(
    payload: PipelineConfigCreate,
    db: AsyncSession = Depends(get_db),
    vault: Optional[CredentialVault] = Depends(get_optional_vault)
):
    """Create an import or export config. Requires ENCRYPTION_KEY."""
    config = await ConfigStore(db, vault).create(payload)
    return PipelineConfigResponse.from_data(config)


@router.get("", response_model=List[PipelineConfigResponse])
async def list_configs(
    dealer_id: Optional[str] = Query(None, description="Only configs of this dealer"),
    direction: Optional[Direction] = Query(None, description="import or export"),
    db: AsyncSession = Depends(get_db)
):
    configs = await ConfigStore(db).list(dealer_id=dealer_id, direction=direction)
    return [PipelineConfigResponse.from_data(c) for c in configs]


@router.get("/check-name", response_model=NameAvailabilityResponse)
async def check_name(
    dealer_id: str = Query(...),
    name: str = Query(..., min_length=1),
    exclude_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    available = await ConfigStore(db).is_name_available(dealer_id, name, exclude_id=exclude_id)
    return NameAvailabilityResponse(available=available)


@router.get("/{config_id}", response_model=PipelineConfigResponse)
async def get_config(config_id: int, db: AsyncSession = Depends(get_db)):
    return PipelineConfigResponse.from_data(await ConfigStore(db).get(config_id))


@router.put("/{config_id}", response_model=PipelineConfigResponse)
async def update_config(
    config_id: int,
    payload: PipelineConfigUpdate,
    db: AsyncSession = Depends(get_db),
    vault: Optional[CredentialVault] = Depends(get_optional_vault)
):
    config = await ConfigStore(db, vault).update(config_id, payload)
    return PipelineConfigResponse.from_data(config)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_config(config_id: int, db: AsyncSession = Depends(get_db)):
    await ConfigStore(db).delete(config_id)


@router.post("/{config_id}/execute", response_model=RunSummary)
async def execute_config(
    config_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    vault: Optional[CredentialVault] = Depends(get_optional_vault),
    run_locks: RunLockRegistry = Depends(get_run_locks)
):
    """
    Execute-now.

    Always answers 200 with the run summary, including failed runs;
    404 for an unknown config and 409 while a run is in progress.
    """
    config = await ConfigStore(db).get(config_id)
    logger.info(f"[{_request_id(request)}] Execute config {config_id} ({config.direction.value})")

    engine = ExecutionEngine(db, vault=vault, run_locks=run_locks)
    return await engine.run(config)


@router.get("/{config_id}/history", response_model=HistoryResponse)
async def config_history(
    config_id: int,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=settings.HISTORY_PAGE_SIZE_MAX, description="Items per page"),
    db: AsyncSession = Depends(get_db)
):
    records, pagination = await ConfigStore(db).history(config_id, page=page, page_size=page_size)
    return HistoryResponse(
        data=[ExecutionRecordResponse.model_validate(r) for r in records],
        pagination=pagination
    )


@router.post("/{config_id}/preview", response_model=PreviewResponse)
async def preview_config(
    config_id: int,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    vault: Optional[CredentialVault] = Depends(get_optional_vault)
):
    """Sample the remote file through the config's mappings. Writes nothing."""
    config = await ConfigStore(db).get(config_id)
    return await ExecutionEngine(db, vault=vault).preview(config, limit=limit)
