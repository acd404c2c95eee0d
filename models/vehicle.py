from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean, Numeric, Index, UniqueConstraint
from models.base import Base, BigIntPK, utcnow


class Vehicle(Base):
    """
    Dealer inventory row, the target of imports and the source of exports.

    Keyed by (vin, dealer_id). ``features`` and ``photo_url_list`` hold
    brace-wrapped quoted lists such as ``{"Sunroof","Backup Camera"}``.
    """
    __tablename__ = "vehicles"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    dealer_id = Column(String(64), nullable=False)
    vin = Column(String(32), nullable=False)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    series = Column(String(100), nullable=True)
    stock_number = Column(String(64), nullable=True)
    new_used = Column(String(16), nullable=False, default="used")
    body_style = Column(String(100), nullable=True)
    certified = Column(Boolean, nullable=False, default=False)
    color = Column(String(64), nullable=True)
    interior_color = Column(String(64), nullable=True)
    engine_type = Column(String(100), nullable=True)
    displacement = Column(String(32), nullable=True)
    features = Column(Text, nullable=True)
    odometer = Column(Integer, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    other_price = Column(Numeric(12, 2), nullable=True)
    transmission = Column(String(100), nullable=True)
    msrp = Column(Numeric(12, 2), nullable=True)
    dealer_discount = Column(Numeric(12, 2), nullable=True)
    consumer_rebate = Column(Numeric(12, 2), nullable=True)
    dealer_accessories = Column(Numeric(12, 2), nullable=True)
    total_customer_savings = Column(Numeric(12, 2), nullable=True)
    total_dealer_rebate = Column(Numeric(12, 2), nullable=True)
    photo_url_list = Column(Text, nullable=True)
    year = Column(Integer, nullable=True)
    reference_dealer_id = Column(String(64), nullable=True)

    # Inventory screen fields outside the upsert contract
    status = Column(String(32), nullable=False, default="available")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("vin", "dealer_id", name="uq_vehicle_vin_dealer"),
        Index("idx_vehicle_dealer_make", "dealer_id", "make"),
    )
