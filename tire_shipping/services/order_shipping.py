"""
Order shipping persistence.

Reads orders and writes the shipping columns (tracking number, label URL,
provider metadata) without touching anything else on the row.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tire_shipping.core.exceptions import OrderNotFoundError
from tire_shipping.models.order import Order

logger = logging.getLogger(__name__)


class OrderShippingRepository:
    """Order store used by the shipment endpoints."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order(self, order_id: int) -> Order:
        result = await self.db.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        return order

    async def update_order_shipping_info(
        self,
        order_id: int,
        tracking_number: Optional[str] = None,
        label_url: Optional[str] = None,
        provider_metadata: Optional[Dict[str, Any]] = None,
        provider_name: Optional[str] = None,
        shipping_cost: Optional[float] = None,
    ) -> Order:
        """
        Partial update of the order's shipping fields.

        Only arguments that are not None are written. Provider metadata is
        merged into the existing shipping_metadata under
        "provider_specific_data"; other metadata keys are kept.
        """
        order = await self.get_order(order_id)

        if tracking_number is not None:
            order.tracking_number = tracking_number
        if label_url is not None:
            order.label_url = label_url
        if provider_name is not None:
            order.shipping_provider = provider_name
        if shipping_cost is not None:
            order.shipping_cost = shipping_cost
        if provider_metadata is not None:
            metadata = dict(order.shipping_metadata or {})
            metadata["provider_specific_data"] = provider_metadata
            # Reassign so the JSON column is flagged dirty
            order.shipping_metadata = metadata

        order.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Order {order.order_number} shipping info updated: tracking={order.tracking_number}")
        return order
