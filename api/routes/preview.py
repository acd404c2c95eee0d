"""
Preview endpoints for uploaded files: parse-only and selected-row import
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_optional_vault
from pipeline.runner import ExecutionEngine
from schemas.api import PreviewExecuteRequest, PreviewParseRequest, PreviewResponse, RunSummary
from schemas.pipeline import ConnectionSpec, PipelineConfigData

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/preview", tags=["Preview"])


@router.post("/parse", response_model=PreviewResponse)
async def preview_parse(payload: PreviewParseRequest, db: AsyncSession = Depends(get_db)):
    """Parse and map pasted data. Nothing is stored."""
    config = PipelineConfigData(
        dealer_id="preview",
        name="preview",
        # never contacted: the data is supplied inline
        connection=ConnectionSpec(host="localhost", username="preview"),
        file_format=payload.file_format,
        field_mappings=payload.field_mappings,
    )
    encoding = payload.file_format.encoding
    return await ExecutionEngine(db).preview(
        config, data=payload.data.encode(encoding), limit=payload.limit
    )


@router.post("/execute", response_model=RunSummary)
async def preview_execute(
    payload: PreviewExecuteRequest,
    db: AsyncSession = Depends(get_db),
    vault=Depends(get_optional_vault)
):
    """Import the selected rows of an uploaded file with an unsaved config."""
    config = PipelineConfigData.from_create(payload.config)
    logger.info(
        f"Preview import for dealer {config.dealer_id}: "
        f"{len(payload.row_indices) if payload.row_indices is not None else 'all'} rows"
    )
    data = payload.data.encode(config.file_format.encoding)
    return await ExecutionEngine(db, vault=vault).run_import_data(
        config, data, file_name=payload.file_name, row_indices=payload.row_indices
    )
