from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import StoreError
from app.services.delivery_zones import DEFAULT_ZONES, DeliveryZoneResolver, Zone


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestZone:
    def test_match_returns_zone_spelling(self):
        zone = Zone(id="z", name="Z", cities=["Thiès", "Saint-Louis"], cost=2500)
        assert zone.match("thies") == "Thiès"
        assert zone.match("saint-louis") == "Saint-Louis"
        assert zone.match("dakar") is None

    def test_threshold(self):
        zone = Zone(id="z", name="Z", cities=["Thiès"], cost=2500, free_delivery_threshold=50000)
        assert zone.delivery_cost_for(40000) == 2500
        assert zone.delivery_cost_for(50000) == 0


class TestDeliveryZoneResolver:
    @pytest.mark.asyncio
    async def test_paid_city_below_threshold(self, store):
        resolver = DeliveryZoneResolver(store)
        result = await resolver.validate_city("thiès", 40000)
        assert result.is_deliverable
        assert result.delivery_cost == 2500
        assert result.is_free_delivery is False
        assert result.city == "Thiès"
        assert "2 500 FCFA" in result.message

    @pytest.mark.asyncio
    async def test_paid_city_reaching_threshold_is_free(self, store):
        resolver = DeliveryZoneResolver(store)
        result = await resolver.validate_city("THIES", 60000)
        assert result.delivery_cost == 0
        assert result.is_free_delivery is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, 1000, 500000])
    async def test_free_zone_regardless_of_amount(self, store, amount):
        resolver = DeliveryZoneResolver(store)
        result = await resolver.validate_city("Dakar", amount)
        assert result.is_deliverable
        assert result.delivery_cost == 0
        assert result.is_free_delivery is True
        assert result.zone_name == "Dakar"

    @pytest.mark.asyncio
    async def test_unknown_city_is_declined(self, store):
        resolver = DeliveryZoneResolver(store)
        result = await resolver.validate_city("  Paris ", 10000)
        assert not result.is_deliverable
        assert "Paris" in result.message

    @pytest.mark.asyncio
    async def test_blank_city(self, store):
        resolver = DeliveryZoneResolver(store)
        result = await resolver.validate_city("   ")
        assert not result.is_deliverable

    @pytest.mark.asyncio
    async def test_store_failure_falls_back_to_defaults(self):
        failing = AsyncMock()
        failing.select.side_effect = StoreError("db down")
        resolver = DeliveryZoneResolver(failing)

        result = await resolver.validate_city("Dakar")
        assert result.is_free_delivery
        # Not cached: the next call retries the store
        await resolver.validate_city("Dakar")
        assert failing.select.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_expires(self):
        fake_store = AsyncMock()
        fake_store.select.return_value = [
            {"id": "z", "name": "Zone", "cities": ["Mbour"], "cost": 1000, "is_active": True}
        ]
        clock = FakeClock()
        resolver = DeliveryZoneResolver(fake_store, cache_seconds=60, clock=clock)

        await resolver.validate_city("Mbour")
        await resolver.validate_city("Mbour")
        assert fake_store.select.await_count == 1

        clock.now += 61
        await resolver.validate_city("Mbour")
        assert fake_store.select.await_count == 2

        resolver.clear_cache()
        await resolver.validate_city("Mbour")
        assert fake_store.select.await_count == 3

    @pytest.mark.asyncio
    async def test_no_active_zones_uses_defaults(self):
        fake_store = AsyncMock()
        fake_store.select.return_value = []
        resolver = DeliveryZoneResolver(fake_store)
        cities = await resolver.get_deliverable_cities()
        assert len(cities) == sum(len(zone.cities) for zone in DEFAULT_ZONES)

    @pytest.mark.asyncio
    async def test_deliverable_cities_and_free_city(self, store):
        resolver = DeliveryZoneResolver(store)
        cities = await resolver.get_deliverable_cities()
        assert "Dakar" in cities
        assert "Thiès" in cities
        assert await resolver.is_free_delivery_city("dakar")
        assert not await resolver.is_free_delivery_city("Thiès")
        assert not await resolver.is_free_delivery_city("Paris")
