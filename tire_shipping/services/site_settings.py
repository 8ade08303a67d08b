"""
Site Settings Service

Database-driven site configuration. The shipping layer keeps its default
carrier here so operators can switch providers without a deployment.
"""
from typing import Dict, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tire_shipping.models.site_settings import DEFAULT_SHIPPING_PROVIDER_KEY, SiteSettings

logger = logging.getLogger(__name__)

# Used whenever the settings store has no usable value
FALLBACK_SHIPPING_PROVIDER = "DHL"


class SiteSettingsService:
    """
    Service for reading and writing site settings.

    Reads are cached per instance (one instance per request) and fall back
    to the caller's default when the row is missing or the read fails.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._cache: Dict[str, str] = {}

    async def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get a setting value by key.

        First checks cache, then database, then falls back to default.
        """
        if key in self._cache:
            return self._cache[key]

        try:
            result = await self.db.execute(
                select(SiteSettings).where(SiteSettings.key == key)
            )
            setting = result.scalar_one_or_none()

            if setting and setting.value:
                self._cache[key] = setting.value
                return setting.value

            return default

        except Exception as e:
            logger.warning(f"Error fetching setting {key}: {e}")
            return default

    async def set(
        self,
        key: str,
        value: str,
        category: str = "general",
        description: Optional[str] = None,
    ) -> SiteSettings:
        """Insert or update a setting. Errors propagate to the caller."""
        result = await self.db.execute(
            select(SiteSettings).where(SiteSettings.key == key)
        )
        setting = result.scalar_one_or_none()

        if setting is None:
            setting = SiteSettings(
                key=key,
                value=value,
                value_type="string",
                category=category,
                description=description,
            )
            self.db.add(setting)
        else:
            setting.value = value

        await self.db.flush()
        self._cache[key] = value
        logger.info(f"Site setting updated: {key}={value}")
        return setting


async def resolve_default_provider(db: Optional[AsyncSession]) -> str:
    """
    Name of the carrier to use when a request does not name one.

    Returns the stored `default_shipping_provider` value, or "DHL" when it
    is missing, blank or unreadable.
    """
    if db is None:
        return FALLBACK_SHIPPING_PROVIDER

    value = await SiteSettingsService(db).get(DEFAULT_SHIPPING_PROVIDER_KEY)
    if not value or not value.strip():
        return FALLBACK_SHIPPING_PROVIDER
    return value.strip()


async def set_default_provider(db: AsyncSession, provider_name: str) -> str:
    """Persist a new default carrier. Caller validates the name."""
    provider_name = provider_name.strip().upper()
    await SiteSettingsService(db).set(
        DEFAULT_SHIPPING_PROVIDER_KEY,
        provider_name,
        category="shipping",
        description="Carrier used when a request does not name one",
    )
    return provider_name
