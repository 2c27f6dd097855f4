import asyncio

import pytest

from threatguard.config.models import GeoBlockingConfig
from threatguard.services.geo import ChainedGeoResolver, GeoBlockingService, GeoResolver, HttpGeoResolver
from threatguard.utils.exceptions import ConfigurationError, ResolutionFailure
from threatguard.utils.models import GeoLocation


class StaticResolver(GeoResolver):
    name = "static"

    def __init__(self, mapping):
        self.mapping = mapping
        self.calls = 0

    async def resolve(self, ip):
        self.calls += 1
        if ip not in self.mapping:
            raise ResolutionFailure(ip, "not found")
        return GeoLocation(country_code=self.mapping[ip])


class SlowResolver(GeoResolver):
    async def resolve(self, ip):
        await asyncio.sleep(1)
        return GeoLocation(country_code="KP")


@pytest.fixture
def resolver():
    return StaticResolver({"1.1.1.1": "KP", "2.2.2.2": "US", "3.3.3.3": "DE", "4.4.4.4": ""})


def _service(resolver, event_log, clock, **overrides):
    return GeoBlockingService(
        config=GeoBlockingConfig(**overrides), resolver=resolver, event_log=event_log, clock=clock
    )


@pytest.mark.asyncio
async def test_blocked_country_is_cached(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, blocked_countries=["KP"])
    assert await service.is_blocked("1.1.1.1") is True
    assert await service.is_blocked("1.1.1.1") is True
    assert resolver.calls == 1

    events = await event_log.get_recent_events()
    assert events[0].type == "geo_block"
    assert events[0].details["reason"] == "blocked_country"


@pytest.mark.asyncio
async def test_cache_expires_after_update_interval(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, update_interval_seconds=60)
    await service.is_blocked("2.2.2.2")
    clock.advance(61)
    await service.is_blocked("2.2.2.2")
    assert resolver.calls == 2


@pytest.mark.asyncio
async def test_allow_list(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, allowed_countries=["US"])
    assert await service.is_blocked("2.2.2.2") is False
    assert await service.is_blocked("3.3.3.3") is True
    events = await event_log.get_recent_events()
    assert events[0].details["reason"] == "not_allowed_country"


@pytest.mark.asyncio
async def test_unknown_location_policy(resolver, event_log, clock):
    assert await _service(resolver, event_log, clock).is_blocked("4.4.4.4") is True
    lenient = _service(resolver, event_log, clock, block_unknown_locations=False)
    assert await lenient.is_blocked("4.4.4.4") is False


@pytest.mark.asyncio
async def test_resolution_failure_follows_unknown_policy(resolver, event_log, clock):
    strict = _service(resolver, event_log, clock)
    assert await strict.is_blocked("9.9.9.9") is True
    events = await event_log.get_recent_events()
    assert events[0].details["reason"] == "location_error"

    lenient = _service(resolver, event_log, clock, block_unknown_locations=False)
    assert await lenient.is_blocked("9.9.9.9") is False


@pytest.mark.asyncio
async def test_slow_lookup_fails_open(event_log, clock):
    service = GeoBlockingService(
        config=GeoBlockingConfig(blocked_countries=["KP"], lookup_timeout_seconds=0.05),
        resolver=SlowResolver(),
        event_log=event_log,
        clock=clock,
    )
    assert await service.is_blocked("1.1.1.1") is False


@pytest.mark.asyncio
async def test_update_config_merges_and_invalidates_cache(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, blocked_countries=["KP"])
    await service.is_blocked("2.2.2.2")

    await service.update_config(allowed_countries=["de"])
    assert service.get_blocked_countries() == ["KP"]
    assert service.get_allowed_countries() == ["DE"]
    assert "2.2.2.2" in service.get_location_cache()

    await service.update_config(update_interval_seconds=10)
    assert service.get_location_cache() == {}
    assert await service.is_blocked("2.2.2.2") is True
    assert resolver.calls == 2

    events = await event_log.get_recent_events()
    assert "geo_block_config_update" in {e.type for e in events}


@pytest.mark.asyncio
async def test_invalid_update_is_rejected(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, blocked_countries=["KP"])
    with pytest.raises(ConfigurationError):
        await service.update_config(update_interval_seconds="daily")
    assert service.config.update_interval_seconds == 86400
    assert service.get_blocked_countries() == ["KP"]


@pytest.mark.asyncio
async def test_location_cache_returns_only_valid_entries(resolver, event_log, clock):
    service = _service(resolver, event_log, clock, update_interval_seconds=60)
    await service.is_blocked("2.2.2.2")
    clock.advance(30)
    await service.is_blocked("3.3.3.3")
    clock.advance(40)
    assert set(service.get_location_cache()) == {"3.3.3.3"}

    service.clear_location_cache()
    assert service.get_location_cache() == {}


@pytest.mark.asyncio
async def test_chain_falls_back():
    primary = StaticResolver({})
    fallback = StaticResolver({"1.1.1.1": "FR"})
    chain = ChainedGeoResolver([primary, fallback])
    location = await chain.resolve("1.1.1.1")
    assert location.country_code == "FR"
    assert primary.calls == 1 and fallback.calls == 1

    with pytest.raises(ResolutionFailure):
        await chain.resolve("8.8.8.8")


@pytest.mark.asyncio
async def test_http_resolver_parses_ipapi_payload():
    class FakeHttp:
        async def get(self, url, timeout=None):
            assert url == "https://ipapi.co/8.8.8.8/json/"
            return {
                "country_name": "United States",
                "country_code": "us",
                "region": "California",
                "city": "Mountain View",
                "latitude": 37.4,
                "longitude": -122.1,
                "org": "GOOGLE",
            }

    resolver = HttpGeoResolver(FakeHttp(), "https://ipapi.co/{ip}/json/")
    location = await resolver.resolve("8.8.8.8")
    assert location.country_code == "US"
    assert location.country == "United States"
    assert location.organization == "GOOGLE"


@pytest.mark.asyncio
async def test_http_resolver_error_payload():
    class FakeHttp:
        async def get(self, url, timeout=None):
            return {"error": True, "reason": "Reserved IP Address"}

    with pytest.raises(ResolutionFailure):
        await HttpGeoResolver(FakeHttp(), "https://ipapi.co/{ip}/json/").resolve("127.0.0.1")
