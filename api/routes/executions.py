"""
Execution error drill-down endpoint
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from pipeline.config_store import ConfigStore
from schemas.api import ExecutionErrorResponse

router = APIRouter(prefix="/executions", tags=["Executions"])


@router.get("/{execution_id}/errors", response_model=List[ExecutionErrorResponse])
async def execution_errors(execution_id: int, db: AsyncSession = Depends(get_db)):
    errors = await ConfigStore(db).errors_for(execution_id)
    return [ExecutionErrorResponse.model_validate(e) for e in errors]
