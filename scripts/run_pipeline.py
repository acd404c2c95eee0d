"""
Run pipeline configs from the command line.

    python -m scripts.run_pipeline 12 15      # specific configs
    python -m scripts.run_pipeline --due      # active configs whose next_run has passed

Exits 1 if any run finished as failed. Intended to be driven by cron or a
similar external trigger.
"""

import argparse
import asyncio
import logging
import sys
from typing import List

from sqlalchemy import select

from core.database import async_session_maker, engine
from core.exceptions import ConfigurationError, ETLException
from core.logging import setup_logging
from core.security import CredentialVault
from models.base import ExecutionStatus, utcnow
from models.pipeline_config import PipelineConfig, ScheduleSettings
from pipeline.config_store import ConfigStore
from pipeline.locks import RunLockRegistry
from pipeline.runner import ExecutionEngine

logger = logging.getLogger(__name__)


async def due_config_ids(session) -> List[int]:
    result = await session.execute(
        select(PipelineConfig.id)
        .join(ScheduleSettings, ScheduleSettings.config_id == PipelineConfig.id)
        .where(
            PipelineConfig.is_active.is_(True),
            ScheduleSettings.is_active.is_(True),
            ScheduleSettings.next_run.is_not(None),
            ScheduleSettings.next_run <= utcnow()
        )
        .order_by(ScheduleSettings.next_run)
    )
    return list(result.scalars().all())


async def run_pipelines(config_ids: List[int], due: bool) -> int:
    """Run each config in turn. Returns the number of failed runs."""
    try:
        vault = CredentialVault.from_settings()
    except ConfigurationError:
        logger.warning("ENCRYPTION_KEY is not set; stored passwords cannot be used")
        vault = None

    run_locks = RunLockRegistry()
    failed = 0

    try:
        async with async_session_maker() as session:
            if due:
                config_ids = config_ids + await due_config_ids(session)

            if not config_ids:
                logger.warning("No pipeline configs to run.")
                return 0

            store = ConfigStore(session)
            runner = ExecutionEngine(session, vault=vault, run_locks=run_locks)

            for config_id in config_ids:
                try:
                    config = await store.get(config_id)
                    logger.info(f"Running {config.direction.value} config {config_id} ({config.name})")
                    summary = await runner.run(config)
                except ETLException as e:
                    logger.error(f"Config {config_id} could not run: {e.message}")
                    failed += 1
                    continue

                logger.info(
                    f"Config {config_id} {summary.status.value}: "
                    f"processed={summary.records_processed}, inserted={summary.records_inserted}, "
                    f"updated={summary.records_updated}, failed={summary.records_failed}, "
                    f"exported={summary.records_exported}"
                )
                if summary.status == ExecutionStatus.FAILED:
                    logger.error(f"Config {config_id} failed: {summary.error_message}")
                    failed += 1
    finally:
        await engine.dispose()

    return failed


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run dealer inventory pipeline configs")
    parser.add_argument("config_ids", nargs="*", type=int, help="Pipeline config ids")
    parser.add_argument("--due", action="store_true", help="Also run configs whose next run has passed")
    args = parser.parse_args(argv)

    if not args.config_ids and not args.due:
        parser.error("give at least one config id or --due")

    setup_logging()
    failed = asyncio.run(run_pipelines(args.config_ids, args.due))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
