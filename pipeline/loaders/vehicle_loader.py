"""
Load mapped vehicle records with the configured duplicate policy.

Rows are keyed by (vin, dealer_id). The insert-or-update policy issues a
single INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement; on
PostgreSQL the same statement reports whether the row was created
(``xmax = 0``).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import literal_column, select, insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DatabaseError, ETLException, UpsertConflictError, ValidationError
from models.base import DuplicateHandling, utcnow
from models.vehicle import Vehicle
from schemas.vehicle import UPSERT_FIELDS, VehicleUpsert

logger = logging.getLogger(__name__)

KEY_FIELDS = ("vin", "dealer_id")

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"


@dataclass
class UpsertOutcome:
    action: str
    vehicle_id: Optional[int] = None


def _pydantic_summary(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


class VehicleUpsertEngine:
    """
    Write one mapped record into the vehicles table.

    Ensures:
    - No duplicate (vin, dealer_id) rows on repeated runs
    - ``update`` merges only the fields the mapping produced
    - Constraint violations surface as UpsertConflictError

    The caller owns the transaction (commit / rollback per record).
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def apply(
        self,
        record: Dict[str, Any],
        dealer_id: str,
        policy: DuplicateHandling = DuplicateHandling.INSERT_OR_UPDATE
    ) -> UpsertOutcome:
        vin = str(record.get("vin") or "").strip()
        if not vin:
            raise ValidationError("Required field vin is missing", context={"dealer_id": dealer_id})

        try:
            params = VehicleUpsert.from_mapped(record, dealer_id)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Record does not fit the vehicle table: {_pydantic_summary(e)}",
                context={"vin": vin, "dealer_id": dealer_id}
            )

        try:
            if policy == DuplicateHandling.SKIP:
                return await self._skip_existing(params)
            if policy == DuplicateHandling.UPDATE:
                return await self._merge_existing(params, record)
            vehicle_id, created = await self.upsert(params, record)
            return UpsertOutcome(INSERTED if created else UPDATED, vehicle_id)

        except IntegrityError as e:
            raise UpsertConflictError(
                f"Vehicle {vin} violates a table constraint",
                context={"vin": vin, "dealer_id": dealer_id},
                original_exception=e
            )
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Database error writing vehicle {vin}",
                context={"vin": vin, "dealer_id": dealer_id, "table_name": "vehicles"},
                original_exception=e
            )
        except ETLException:
            raise
        except Exception as e:
            # driver-level conversion errors (e.g. OverflowError) stay row failures
            raise DatabaseError(
                f"Could not write vehicle {vin}: {e}",
                context={"vin": vin, "dealer_id": dealer_id, "table_name": "vehicles"},
                original_exception=e
            )

    async def find_vehicle_id(self, vin: str, dealer_id: str) -> Optional[int]:
        result = await self.db.execute(
            select(Vehicle.id).where(Vehicle.vin == vin, Vehicle.dealer_id == dealer_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, params: VehicleUpsert, record: Dict[str, Any]) -> Tuple[int, bool]:
        """Atomic insert-or-update. Returns (vehicle id, created)."""
        values = params.model_dump()
        changes = self._provided_changes(params, record)
        changes["updated_at"] = utcnow()

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(Vehicle).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(KEY_FIELDS),
                set_={name: stmt.excluded[name] if name != "updated_at" else value
                      for name, value in changes.items()}
            ).returning(Vehicle.id, literal_column("(xmax = 0)").label("created"))
            row = (await self.db.execute(stmt)).one()
            return row.id, bool(row.created)

        if dialect == "sqlite":
            existing_id = await self.find_vehicle_id(params.vin, params.dealer_id)
            stmt = sqlite_insert(Vehicle).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(KEY_FIELDS),
                set_={name: stmt.excluded[name] if name != "updated_at" else value
                      for name, value in changes.items()}
            ).returning(Vehicle.id)
            vehicle_id = (await self.db.execute(stmt)).scalar_one()
            return vehicle_id, existing_id is None

        raise DatabaseError(
            f"Upsert is not supported on the {dialect} dialect",
            context={"operation": "UPSERT", "table_name": "vehicles"}
        )

    async def _skip_existing(self, params: VehicleUpsert) -> UpsertOutcome:
        existing_id = await self.find_vehicle_id(params.vin, params.dealer_id)
        if existing_id is not None:
            return UpsertOutcome(SKIPPED, existing_id)
        return UpsertOutcome(INSERTED, await self._insert(params))

    async def _merge_existing(self, params: VehicleUpsert, record: Dict[str, Any]) -> UpsertOutcome:
        existing_id = await self.find_vehicle_id(params.vin, params.dealer_id)
        if existing_id is None:
            return UpsertOutcome(INSERTED, await self._insert(params))

        changes = self._provided_changes(params, record)
        changes["updated_at"] = utcnow()
        await self.db.execute(
            update(Vehicle).where(Vehicle.id == existing_id).values(**changes)
        )
        return UpsertOutcome(UPDATED, existing_id)

    async def _insert(self, params: VehicleUpsert) -> int:
        result = await self.db.execute(
            insert(Vehicle).values(**params.model_dump()).returning(Vehicle.id)
        )
        return result.scalar_one()

    @staticmethod
    def _provided_changes(params: VehicleUpsert, record: Dict[str, Any]) -> Dict[str, Any]:
        """Contract fields the mapping actually produced, minus the key."""
        changes = {
            name: getattr(params, name)
            for name in UPSERT_FIELDS
            if name in record and name not in KEY_FIELDS
        }
        if params.reference_dealer_id is not None:
            changes["reference_dealer_id"] = params.reference_dealer_id
        return changes
