"""
Tests for site settings and the default provider resolver.
"""

import pytest

from conftest import scalar_result
from tire_shipping.models.site_settings import DEFAULT_SHIPPING_PROVIDER_KEY, SiteSettings
from tire_shipping.services.site_settings import (
    SiteSettingsService,
    resolve_default_provider,
    set_default_provider,
)


class TestResolveDefaultProvider:

    @pytest.mark.asyncio
    async def test_stored_value(self, mock_db):
        mock_db.execute.return_value = scalar_result(
            SiteSettings(key=DEFAULT_SHIPPING_PROVIDER_KEY, value="GLS")
        )

        assert await resolve_default_provider(mock_db) == "GLS"

    @pytest.mark.asyncio
    async def test_missing_setting(self, mock_db):
        mock_db.execute.return_value = scalar_result(None)

        assert await resolve_default_provider(mock_db) == "DHL"

    @pytest.mark.asyncio
    async def test_blank_setting(self, mock_db):
        mock_db.execute.return_value = scalar_result(
            SiteSettings(key=DEFAULT_SHIPPING_PROVIDER_KEY, value="   ")
        )

        assert await resolve_default_provider(mock_db) == "DHL"

    @pytest.mark.asyncio
    async def test_unreachable_store(self, mock_db):
        mock_db.execute.side_effect = ConnectionError("database is down")

        assert await resolve_default_provider(mock_db) == "DHL"

    @pytest.mark.asyncio
    async def test_no_session(self):
        assert await resolve_default_provider(None) == "DHL"


class TestSiteSettingsService:

    @pytest.mark.asyncio
    async def test_get_caches_value(self, mock_db):
        mock_db.execute.return_value = scalar_result(SiteSettings(key="k", value="v"))
        service = SiteSettingsService(mock_db)

        assert await service.get("k") == "v"
        assert await service.get("k") == "v"
        assert mock_db.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_set_inserts_new_row(self, mock_db):
        mock_db.execute.return_value = scalar_result(None)

        provider = await set_default_provider(mock_db, " gls ")

        assert provider == "GLS"
        added = mock_db.add.call_args[0][0]
        assert added.key == DEFAULT_SHIPPING_PROVIDER_KEY
        assert added.value == "GLS"
        assert added.category == "shipping"
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_updates_existing_row(self, mock_db):
        existing = SiteSettings(key=DEFAULT_SHIPPING_PROVIDER_KEY, value="DHL")
        mock_db.execute.return_value = scalar_result(existing)

        await SiteSettingsService(mock_db).set(DEFAULT_SHIPPING_PROVIDER_KEY, "GLS")

        assert existing.value == "GLS"
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_propagates_errors(self, mock_db):
        mock_db.execute.side_effect = ConnectionError("database is down")

        with pytest.raises(ConnectionError):
            await SiteSettingsService(mock_db).set("k", "v")
