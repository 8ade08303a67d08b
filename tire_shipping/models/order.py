"""
Order model

Only the columns the shipping layer reads or writes are mapped here.
Tracking number, label URL and provider metadata are owned by the order
and written by shipment creation (or a manual retry).
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, JSON, Numeric, Index

from tire_shipping.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)

    # Order details
    order_number = Column(String, unique=True, index=True, nullable=False)
    status = Column(String, default="pending", index=True)

    # Pricing
    shipping_cost = Column(Numeric(12, 2), default=0.0)

    # Shipping
    shipping_address = Column(JSON)
    shipping_method = Column(String)
    shipping_provider = Column(String(50))
    tracking_number = Column(String)
    label_url = Column(String)
    shipping_metadata = Column(JSON)

    # Timestamps
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('ix_orders_tracking_number', 'tracking_number', postgresql_where=tracking_number.isnot(None)),
    )
