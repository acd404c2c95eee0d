"""
Persistence for pipeline configs and their execution history.

Configs are written as an ORM aggregate (PipelineConfig plus one row per
settings section) and read back as the canonical ``PipelineConfigData``.
Passwords are encrypted with the credential vault before they reach the
session.
"""

from typing import List, Optional, Tuple
import logging
import math

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import ConfigNotFoundError, ConfigurationError, DatabaseError, ResourceNotFoundError
from core.security import CredentialVault
from models.base import Direction
from models.execution import ExecutionError, ExecutionRecord
from models.pipeline_config import (
    ConnectionSettings, ExportFilter, FieldMapping, FileFormatSettings,
    FileNamingSettings, PipelineConfig, ProcessingPolicy, ScheduleSettings
)
from pipeline.scheduler import compute_next_run
from schemas.api import PaginationMetadata
from schemas.pipeline import (
    ConnectionSpec, FieldMappingSpec, FileFormatSpec, FileNamingSpec, FilterSpec,
    PipelineConfigCreate, PipelineConfigData, PipelineConfigUpdate, ProcessingSpec, ScheduleSpec
)

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    CRUD over pipeline configs.

    Ensures:
    - (dealer_id, name) stays unique
    - Stored passwords are always vault ciphertext
    - Updated sections replace the stored section wholesale
    """

    def __init__(self, db_session: AsyncSession, vault: Optional[CredentialVault] = None):
        self.db = db_session
        self.vault = vault

    # ========================================================================
    # Reads
    # ========================================================================

    async def _load(self, config_id: int) -> PipelineConfig:
        result = await self.db.execute(
            select(PipelineConfig)
            .where(PipelineConfig.id == config_id)
            .execution_options(populate_existing=True)
        )
        config = result.scalar_one_or_none()
        if config is None:
            raise ConfigNotFoundError(
                f"Pipeline config {config_id} not found",
                context={"config_id": config_id}
            )
        return config

    async def get(self, config_id: int) -> PipelineConfigData:
        return PipelineConfigData.model_validate(await self._load(config_id))

    async def list(self, dealer_id: Optional[str] = None, direction: Optional[Direction] = None) -> List[PipelineConfigData]:
        query = select(PipelineConfig).order_by(PipelineConfig.created_at.desc(), PipelineConfig.id.desc())
        if dealer_id:
            query = query.where(PipelineConfig.dealer_id == dealer_id)
        if direction:
            query = query.where(PipelineConfig.direction == direction)
        result = await self.db.execute(query)
        return [PipelineConfigData.model_validate(c) for c in result.scalars().all()]

    async def is_name_available(self, dealer_id: str, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(func.count()).select_from(PipelineConfig).where(
            PipelineConfig.dealer_id == dealer_id,
            PipelineConfig.name == name.strip()
        )
        if exclude_id is not None:
            query = query.where(PipelineConfig.id != exclude_id)
        return (await self.db.execute(query)).scalar() == 0

    # ========================================================================
    # Writes
    # ========================================================================

    async def create(self, payload: PipelineConfigCreate) -> PipelineConfigData:
        self._require_vault()

        if not await self.is_name_available(payload.dealer_id, payload.name):
            raise ConfigurationError(
                f"A pipeline config named '{payload.name}' already exists",
                context={"dealer_id": payload.dealer_id, "name": payload.name}
            )

        config = PipelineConfig(
            dealer_id=payload.dealer_id,
            name=payload.name,
            direction=payload.direction,
            is_active=payload.is_active,
        )
        config.connection = self._connection_row(payload.connection)
        config.schedule = self._schedule_row(payload.schedule or ScheduleSpec())
        config.file_format = FileFormatSettings(**(payload.file_format or FileFormatSpec()).model_dump())
        config.processing = ProcessingPolicy(**(payload.processing or ProcessingSpec()).model_dump())
        config.file_naming = self._file_naming_row(payload.file_naming)
        config.field_mappings = self._mapping_rows(payload.field_mappings)
        config.filters = self._filter_rows(payload.filters)

        self.db.add(config)
        await self._commit(payload.dealer_id, payload.name)
        logger.info(f"Created {payload.direction.value} config {config.id} for dealer {payload.dealer_id}")
        return await self.get(config.id)

    async def update(self, config_id: int, payload: PipelineConfigUpdate) -> PipelineConfigData:
        config = await self._load(config_id)

        if payload.name is not None and payload.name != config.name:
            if not await self.is_name_available(config.dealer_id, payload.name, exclude_id=config_id):
                raise ConfigurationError(
                    f"A pipeline config named '{payload.name}' already exists",
                    context={"dealer_id": config.dealer_id, "name": payload.name}
                )
            config.name = payload.name.strip()
        if payload.is_active is not None:
            config.is_active = payload.is_active

        # one-to-one sections are rewritten in place (unique config_id)
        if payload.connection is not None:
            config.connection = _overwrite(
                config.connection, ConnectionSettings, self._connection_values(payload.connection, config.connection)
            )
        if payload.schedule is not None:
            config.schedule = _overwrite(config.schedule, ScheduleSettings, _schedule_values(payload.schedule))
        if payload.file_format is not None:
            config.file_format = _overwrite(config.file_format, FileFormatSettings, payload.file_format.model_dump())
        if payload.processing is not None:
            config.processing = _overwrite(config.processing, ProcessingPolicy, payload.processing.model_dump())
        if payload.file_naming is not None:
            config.file_naming = _overwrite(config.file_naming, FileNamingSettings, payload.file_naming.model_dump())
        if payload.field_mappings is not None:
            # old rows must be gone before new ones reuse their order numbers
            config.field_mappings = []
            await self.db.flush()
            config.field_mappings = self._mapping_rows(payload.field_mappings)
        if payload.filters is not None:
            config.filters = self._filter_rows(payload.filters)

        await self._commit(config.dealer_id, config.name)
        logger.info(f"Updated config {config_id}")
        return await self.get(config_id)

    async def delete(self, config_id: int) -> None:
        config = await self._load(config_id)
        await self.db.delete(config)
        await self.db.commit()
        logger.info(f"Deleted config {config_id}")

    # ========================================================================
    # History
    # ========================================================================

    async def history(
        self,
        config_id: int,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[ExecutionRecord], PaginationMetadata]:
        """Execution records for a config, newest first."""
        await self._load(config_id)
        page_size = max(1, min(page_size, settings.HISTORY_PAGE_SIZE_MAX))
        page = max(1, page)

        total_items = (await self.db.execute(
            select(func.count()).select_from(ExecutionRecord).where(ExecutionRecord.config_id == config_id)
        )).scalar()
        total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0

        result = await self.db.execute(
            select(ExecutionRecord)
            .where(ExecutionRecord.config_id == config_id)
            .order_by(ExecutionRecord.started_at.desc(), ExecutionRecord.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        records = list(result.scalars().all())

        return records, PaginationMetadata(
            total_items=total_items,
            total_pages=total_pages,
            current_page=page,
            page_size=page_size,
            has_next=page < total_pages,
            has_previous=page > 1
        )

    async def errors_for(self, execution_id: int) -> List[ExecutionError]:
        exists = (await self.db.execute(
            select(ExecutionRecord.id).where(ExecutionRecord.id == execution_id)
        )).scalar_one_or_none()
        if exists is None:
            raise ResourceNotFoundError(
                f"Execution {execution_id} not found",
                context={"execution_id": execution_id}
            )
        result = await self.db.execute(
            select(ExecutionError)
            .where(ExecutionError.execution_record_id == execution_id)
            .order_by(ExecutionError.id)
        )
        return list(result.scalars().all())

    # ========================================================================
    # Section rows
    # ========================================================================

    def _require_vault(self) -> CredentialVault:
        if self.vault is None:
            raise ConfigurationError(
                "ENCRYPTION_KEY is not set; refusing to store credentials without it",
                context={"setting": "ENCRYPTION_KEY"}
            )
        return self.vault

    def _connection_values(self, spec: ConnectionSpec, current: Optional[ConnectionSettings] = None) -> dict:
        """Column values for a connection; the stored password survives unless replaced."""
        if spec.password:
            password_encrypted = self._require_vault().encrypt(spec.password)
        else:
            password_encrypted = spec.password_encrypted or (current.password_encrypted if current else None)
        return {
            "connector_type": spec.connector_type,
            "host": spec.host,
            "port": spec.port,
            "username": spec.username,
            "password_encrypted": password_encrypted,
            "remote_directory": spec.remote_directory,
            "file_pattern": spec.file_pattern,
        }

    def _connection_row(self, spec: ConnectionSpec) -> ConnectionSettings:
        return ConnectionSettings(**self._connection_values(spec))

    @staticmethod
    def _schedule_row(spec: ScheduleSpec) -> ScheduleSettings:
        return ScheduleSettings(**_schedule_values(spec))

    @staticmethod
    def _file_naming_row(spec: Optional[FileNamingSpec]) -> Optional[FileNamingSettings]:
        return FileNamingSettings(**spec.model_dump()) if spec else None

    @staticmethod
    def _mapping_rows(mappings: List[FieldMappingSpec]) -> List[FieldMapping]:
        return [
            FieldMapping(
                source_field=m.source_field,
                target_field=m.target_field,
                field_type=m.field_type,
                is_required=m.is_required,
                default_value=m.default_value,
                transformation_rules=[r.model_dump(exclude_none=True) for r in m.transformation_rules] or None,
                order=m.order,
            )
            for m in mappings
        ]

    @staticmethod
    def _filter_rows(filters: List[FilterSpec]) -> List[ExportFilter]:
        return [ExportFilter(**f.model_dump()) for f in filters]

    async def _commit(self, dealer_id: str, name: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DatabaseError(
                f"Could not save pipeline config '{name}'",
                context={"dealer_id": dealer_id, "name": name, "table_name": "pipeline_configs"},
                original_exception=e
            )


def _schedule_values(spec: ScheduleSpec) -> dict:
    values = spec.model_dump(exclude={"next_run", "last_run"})
    values["next_run"] = compute_next_run(spec)
    values["last_run"] = spec.last_run
    return values


def _overwrite(row, model_cls, values: dict):
    if row is None:
        return model_cls(**values)
    for key, value in values.items():
        setattr(row, key, value)
    return row
