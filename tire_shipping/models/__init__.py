from tire_shipping.models.order import Order
from tire_shipping.models.site_settings import SiteSettings

__all__ = [
    "Order",
    "SiteSettings",
]
