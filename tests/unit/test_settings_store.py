"""
Unit Tests - Settings Store
"""
import json

import pytest

from pos_dashboard.serving.settings_store import (
    LEGACY_THRESHOLD_KEY,
    SETTINGS_KEY,
    SettingsStore,
)


class TestLowStockThreshold:
    """Tests for reading and writing the global low-stock default"""

    async def test_default_when_unset(self, redis_client):
        assert await SettingsStore(redis_client).get_low_stock_threshold() == 10

    async def test_reads_console_envelope(self, redis_client):
        redis_client.data[SETTINGS_KEY] = json.dumps(
            {"state": {"lowStockThreshold": 4, "storeName": "Main"}, "version": 0}
        )
        assert await SettingsStore(redis_client).get_low_stock_threshold() == 4

    async def test_reads_flat_document(self, redis_client):
        redis_client.data[SETTINGS_KEY] = json.dumps({"lowStockThreshold": "12"})
        assert await SettingsStore(redis_client).get_low_stock_threshold() == 12

    async def test_legacy_key_fallback(self, redis_client):
        redis_client.data[LEGACY_THRESHOLD_KEY] = "7"
        assert await SettingsStore(redis_client).get_low_stock_threshold() == 7

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", json.dumps({"state": {"lowStockThreshold": "lots"}})])
    async def test_malformed_document_uses_default(self, redis_client, raw):
        redis_client.data[SETTINGS_KEY] = raw
        assert await SettingsStore(redis_client, default_threshold=15).get_low_stock_threshold() == 15

    async def test_unreachable_store_uses_default(self, redis_client):
        redis_client.available = False
        assert await SettingsStore(redis_client).get_low_stock_threshold() == 10

    async def test_write_preserves_other_settings(self, redis_client):
        redis_client.data[SETTINGS_KEY] = json.dumps(
            {"state": {"lowStockThreshold": 4, "storeName": "Main"}, "version": 0}
        )
        store = SettingsStore(redis_client)

        await store.set_low_stock_threshold(20)

        document = json.loads(redis_client.data[SETTINGS_KEY])
        assert document == {"state": {"lowStockThreshold": 20, "storeName": "Main"}, "version": 0}
        assert await store.get_low_stock_threshold() == 20

    async def test_first_write_creates_envelope(self, redis_client):
        await SettingsStore(redis_client).set_low_stock_threshold(3)

        document = json.loads(redis_client.data[SETTINGS_KEY])
        assert document["state"]["lowStockThreshold"] == 3

    async def test_negative_rejected(self, redis_client):
        with pytest.raises(ValueError):
            await SettingsStore(redis_client).set_low_stock_threshold(-1)
        assert SETTINGS_KEY not in redis_client.data
