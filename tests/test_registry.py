import asyncio

import httpx
import pytest

from geoturtle.geo.registry import SRID_PROJ, ProjectionRegistry, epsg_code, to_srid

UTM31N = "+proj=utm +zone=31 +datum=WGS84 +units=m +no_defs"


def run_with(registry, coro_fn):
    async def scenario():
        try:
            return await coro_fn(registry)
        finally:
            await registry.aclose()
    return asyncio.run(scenario())


def test_builtins_are_seeded():
    registry = ProjectionRegistry()
    for srid in (4326, 3857, 31370, 4258, 3035, 25832, 25833):
        assert registry.has(srid)
        assert registry.get(srid) == SRID_PROJ[srid]
    assert not registry.has(9999)
    assert registry.get(9999) is None


def test_unseeded_registry_is_empty():
    assert ProjectionRegistry(seed=False).srids() == []


def test_srid_spellings():
    assert to_srid("31370") == to_srid("EPSG:31370") == to_srid(31370) == 31370
    assert epsg_code("4326") == "EPSG:4326"
    with pytest.raises(ValueError):
        to_srid(0)
    with pytest.raises(ValueError):
        to_srid("CRS84")


def test_register_overwrites_last_write_wins():
    registry = ProjectionRegistry()
    registry.register(31370, "first")
    registry.register("31370", "second")
    assert registry.get(31370) == "second"


def test_ensure_registered_fetches_and_registers(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text=UTM31N + "\n"))
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(32631))

    assert calls == ["https://epsg.io/32631.proj4"]
    assert registry.get(32631) == UTM31N


def test_ensure_registered_known_srid_does_no_io(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text="unused"))
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(31370))

    assert calls == []
    assert registry.get(31370) == SRID_PROJ[31370]


def test_concurrent_lookups_share_one_request(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text=UTM31N))
    registry = ProjectionRegistry(transport=transport)

    async def twice(r):
        await asyncio.gather(r.ensure_registered(32631), r.ensure_registered("32631"))

    run_with(registry, twice)

    assert len(calls) == 1
    assert registry.has(32631)


def test_schedule_twice_returns_the_same_task(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text=UTM31N))
    registry = ProjectionRegistry(transport=transport)

    async def scenario(r):
        first, second = r.schedule(32631), r.schedule(32631)
        assert first is second
        assert r.pending() == [32631]
        await r.drain()
        assert r.pending() == []
        assert r.schedule(32631) is None

    run_with(registry, scenario)
    assert len(calls) == 1


@pytest.mark.parametrize("status", [404, 500])
def test_failed_lookup_registers_nothing(mock_transport, status):
    transport, calls = mock_transport(lambda req: httpx.Response(status, text="nope"))
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(9999))

    assert len(calls) == 1
    assert not registry.has(9999)


def test_transport_error_is_swallowed(mock_transport):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport, calls = mock_transport(boom)
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(9999))

    assert len(calls) == 1
    assert not registry.has(9999)


def test_empty_body_is_not_a_definition(mock_transport):
    transport, _ = mock_transport(lambda req: httpx.Response(200, text="  \n"))
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(9999))

    assert not registry.has(9999)


def test_failures_are_not_cached(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(404))
    registry = ProjectionRegistry(transport=transport)

    async def again(r):
        await r.ensure_registered(9999)
        await r.ensure_registered(9999)

    run_with(registry, again)
    assert len(calls) == 2


def test_custom_url_template(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text=UTM31N))
    registry = ProjectionRegistry(url_template="http://proj.local/defs/{srid}", transport=transport)

    run_with(registry, lambda r: r.ensure_registered(32631))

    assert calls == ["http://proj.local/defs/32631"]


def test_schedule_without_event_loop_does_nothing():
    registry = ProjectionRegistry()
    assert registry.schedule(9999) is None
    assert registry.pending() == []


def test_registry_survives_successive_event_loops(mock_transport):
    transport, calls = mock_transport(lambda req: httpx.Response(200, text=UTM31N))
    registry = ProjectionRegistry(transport=transport)

    async def lookup(srid):
        await registry.ensure_registered(srid)
        return registry.client

    first_client = asyncio.run(lookup(32631))
    second_client = asyncio.run(lookup(32632))

    assert first_client is not second_client
    assert registry.has(32631) and registry.has(32632)
    assert calls == ["https://epsg.io/32631.proj4", "https://epsg.io/32632.proj4"]
    asyncio.run(registry.aclose())


def test_unexpected_lookup_error_is_swallowed(mock_transport):
    def boom(request):
        raise RuntimeError("Event loop is closed")

    transport, calls = mock_transport(boom)
    registry = ProjectionRegistry(transport=transport)

    run_with(registry, lambda r: r.ensure_registered(9999))

    assert len(calls) == 1
    assert not registry.has(9999)


def test_invalid_url_template_is_swallowed():
    registry = ProjectionRegistry(url_template="http://[bad-host/{srid}")

    run_with(registry, lambda r: r.ensure_registered(9999))

    assert not registry.has(9999)
