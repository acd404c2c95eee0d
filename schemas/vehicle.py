"""
Pydantic schema for the vehicle upsert contract.

Field declaration order IS the parameter order of the atomic upsert:
dealer_id, vin, make, ... photo_url_list, year, reference_dealer_id.
"""

from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Integer columns are 32-bit on PostgreSQL
INT4_MAX = 2**31 - 1


class VehicleUpsert(BaseModel):
    """Validated parameters for one vehicle upsert"""

    dealer_id: str
    vin: str
    make: Optional[str] = None
    model: Optional[str] = None
    series: Optional[str] = None
    stock_number: Optional[str] = None
    new_used: str = "used"
    body_style: Optional[str] = None
    certified: bool = False
    color: Optional[str] = None
    interior_color: Optional[str] = None
    engine_type: Optional[str] = None
    displacement: Optional[str] = None
    features: Optional[str] = None
    odometer: Optional[int] = Field(default=None, ge=0, le=INT4_MAX)
    price: Optional[Decimal] = None
    other_price: Optional[Decimal] = None
    transmission: Optional[str] = None
    msrp: Optional[Decimal] = None
    dealer_discount: Optional[Decimal] = None
    consumer_rebate: Optional[Decimal] = None
    dealer_accessories: Optional[Decimal] = None
    total_customer_savings: Optional[Decimal] = None
    total_dealer_rebate: Optional[Decimal] = None
    photo_url_list: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=0, le=INT4_MAX)
    reference_dealer_id: Optional[str] = None

    @field_validator("vin")
    @classmethod
    def vin_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Required field vin is missing")
        return v

    @field_validator("new_used", mode="before")
    @classmethod
    def default_new_used(cls, v):
        return v or "used"

    @field_validator("certified", mode="before")
    @classmethod
    def default_certified(cls, v):
        return False if v in (None, "") else v

    @field_validator(
        "make", "model", "series", "stock_number", "body_style", "color", "interior_color",
        "engine_type", "displacement", "features", "transmission", "photo_url_list",
        "reference_dealer_id", mode="before"
    )
    @classmethod
    def stringify(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @classmethod
    def from_mapped(cls, record: Dict[str, Any], dealer_id: str) -> "VehicleUpsert":
        """Pick contract fields out of a mapped record."""
        params = {name: record[name] for name in UPSERT_FIELDS if name in record}
        params["dealer_id"] = dealer_id
        params.setdefault("vin", record.get("vin") or "")
        if params.get("reference_dealer_id") is None:
            params["reference_dealer_id"] = record.get("dealerid") or record.get("dealer_id")
        return cls(**params)


UPSERT_FIELDS: Tuple[str, ...] = tuple(VehicleUpsert.model_fields)
