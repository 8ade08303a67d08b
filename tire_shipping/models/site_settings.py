"""
Site Settings Model

Key-value store for operator-editable configuration. The shipping layer
reads `default_shipping_provider` from here so carriers can be switched
without a deployment.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

from tire_shipping.core.database import Base


class SiteSettings(Base):
    """
    Key-value store for site configuration.

    Used for the default shipping provider and other site-wide settings.
    """
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, index=True)

    # Key-value
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    value_type = Column(String(20), default="string")  # string, json, boolean, number

    # Organization
    category = Column(String(50), default="general", index=True)  # shipping, system
    description = Column(Text)

    # Audit
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


DEFAULT_SHIPPING_PROVIDER_KEY = "default_shipping_provider"
