"""
FederationTokenCache tests.

Mock: token generator (AsyncMock) and an injectable clock
Test: reuse within TTL, refresh after expiry, capacity compression,
failure classification, federation probe.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from gis_admin.errors import (
    FederationError,
    FederationUnreachableError,
    NotFederatedError,
    RequestTimeoutError,
    TransportError,
    UpstreamError,
)
from gis_admin.federation import (
    FederationTokenCache,
    PortalTokenGenerator,
    is_server_federated,
    normalize_server_url,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def generator():
    counter = {"n": 0}

    async def issue(session, server_url):
        counter["n"] += 1
        return f"token-{counter['n']}"

    return AsyncMock(side_effect=issue)


@pytest.fixture
def cache(generator, clock, fast_settings):
    return FederationTokenCache(generator=generator, clock=clock, settings=fast_settings)


class TestCaching:

    @pytest.mark.asyncio
    async def test_reuses_token_within_ttl(self, cache, generator, portal_session):
        first = await cache.get_federated_token(portal_session, "https://gis.example.com/arcgis")
        second = await cache.get_federated_token(portal_session, "https://gis.example.com/arcgis")

        assert first == second == "token-1"
        generator.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_urls_share_entry_by_origin(self, cache, generator, portal_session):
        await cache.get_federated_token(portal_session, "https://gis.example.com/arcgis/rest/services")
        await cache.get_federated_token(portal_session, "https://gis.example.com/server")

        assert generator.await_count == 1
        assert generator.await_args.args[1] == "https://gis.example.com"
        assert cache.stats()["keys"] == ["https://gis.example.com"]

    @pytest.mark.asyncio
    async def test_regenerates_once_inside_expiry_buffer(self, cache, generator, clock, portal_session):
        await cache.get_federated_token(portal_session, "https://gis.example.com")

        # 3600s TTL, 120s buffer
        clock.now += 3600 - 120
        refreshed = await cache.get_federated_token(portal_session, "https://gis.example.com")
        again = await cache.get_federated_token(portal_session, "https://gis.example.com")

        assert refreshed == again == "token-2"
        assert generator.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_request(self, cache, generator, portal_session):
        tokens = await asyncio.gather(*[
            cache.get_federated_token(portal_session, "https://gis.example.com") for _ in range(5)
        ])

        assert set(tokens) == {"token-1"}
        generator.assert_awaited_once()


class TestCompression:

    @pytest.mark.asyncio
    async def test_size_never_exceeds_capacity(self, cache, clock, portal_session):
        for i in range(6):
            clock.now += 1
            await cache.get_federated_token(portal_session, f"https://server{i}.example.com")
            assert len(cache) <= cache.capacity

        assert cache.stats()["keys"] == [
            "https://server3.example.com",
            "https://server4.example.com",
            "https://server5.example.com",
        ]

    @pytest.mark.asyncio
    async def test_expired_entries_removed_on_insert(self, cache, clock, portal_session):
        await cache.get_federated_token(portal_session, "https://a.example.com")
        await cache.get_federated_token(portal_session, "https://b.example.com")

        clock.now += 4000
        await cache.get_federated_token(portal_session, "https://c.example.com")

        assert cache.stats() == {"size": 1, "keys": ["https://c.example.com"]}

    @pytest.mark.asyncio
    async def test_refresh_counts_as_newest(self, cache, clock, portal_session):
        for name in ("a", "b", "c"):
            await cache.get_federated_token(portal_session, f"https://{name}.example.com")

        clock.now += 3500
        await cache.get_federated_token(portal_session, "https://a.example.com")
        await cache.get_federated_token(portal_session, "https://d.example.com")

        assert "https://a.example.com" in cache.stats()["keys"]
        assert len(cache) <= cache.capacity

    @pytest.mark.asyncio
    async def test_clear(self, cache, portal_session):
        await cache.get_federated_token(portal_session, "https://gis.example.com")
        cache.clear()

        assert len(cache) == 0


class TestFailureClassification:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,expected", [
        (TransportError("Server is not federated with this portal"), NotFederatedError),
        (UpstreamError(498, "Invalid token"), NotFederatedError),
        (httpx.ConnectError("Connection refused"), FederationUnreachableError),
        (RequestTimeoutError("Request timeout after 30s"), FederationUnreachableError),
        (ValueError("unexpected"), FederationError),
    ])
    async def test_generator_failure_is_classified(self, clock, fast_settings, portal_session, error, expected):
        cache = FederationTokenCache(generator=AsyncMock(side_effect=error), clock=clock, settings=fast_settings)

        with pytest.raises(expected) as exc_info:
            await cache.get_federated_token(portal_session, "https://gis.example.com/arcgis")

        assert type(exc_info.value) is expected
        assert exc_info.value.server_url == "https://gis.example.com"
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_poison_cache(self, clock, fast_settings, portal_session):
        generator = AsyncMock(side_effect=[httpx.ConnectError("down"), "fresh-token"])
        cache = FederationTokenCache(generator=generator, clock=clock, settings=fast_settings)

        with pytest.raises(FederationUnreachableError):
            await cache.get_federated_token(portal_session, "https://gis.example.com")

        assert await cache.get_federated_token(portal_session, "https://gis.example.com") == "fresh-token"


class TestPortalTokenGenerator:

    @staticmethod
    def client_for(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_posts_to_generate_token(self, portal_session):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"token": "server-token", "expires": 0})

        client = self.client_for(handler)
        generator = PortalTokenGenerator(expiration_minutes=60, client=client)

        token = await generator(portal_session, "https://gis.example.com")
        await client.aclose()

        assert token == "server-token"
        assert seen["url"] == "https://portal.example.com/portal/sharing/rest/generateToken"
        assert "serverUrl=https%3A%2F%2Fgis.example.com" in seen["body"]
        assert "token=portal-token" in seen["body"]
        assert "expiration=60" in seen["body"]

    @pytest.mark.asyncio
    async def test_498_envelope_becomes_not_federated(self, clock, fast_settings, portal_session):
        def handler(request):
            return httpx.Response(200, json={"error": {"code": 498, "message": "Invalid token."}})

        client = self.client_for(handler)
        cache = FederationTokenCache(generator=PortalTokenGenerator(client=client),
                                     clock=clock, settings=fast_settings)

        with pytest.raises(NotFederatedError):
            await cache.get_federated_token(portal_session, "https://gis.example.com")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_error_becomes_unreachable(self, clock, fast_settings, portal_session):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = self.client_for(handler)
        cache = FederationTokenCache(generator=PortalTokenGenerator(client=client),
                                     clock=clock, settings=fast_settings)

        with pytest.raises(FederationUnreachableError):
            await cache.get_federated_token(portal_session, "https://gis.example.com")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        async with PortalTokenGenerator() as generator:
            pass

        assert generator._client.is_closed

    @pytest.mark.asyncio
    async def test_shared_client_is_left_open(self):
        client = self.client_for(lambda request: httpx.Response(200, json={}))

        await PortalTokenGenerator(client=client).aclose()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_cache_closes_its_default_generator(self, fast_settings):
        async with FederationTokenCache(settings=fast_settings) as cache:
            pass

        assert cache.generator._client.is_closed

    @pytest.mark.asyncio
    async def test_cache_leaves_injected_generator_alone(self, generator, fast_settings):
        generator.aclose = AsyncMock()

        await FederationTokenCache(generator=generator, settings=fast_settings).aclose()

        generator.aclose.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_token_is_generic_failure(self, portal_session):
        client = self.client_for(lambda request: httpx.Response(200, json={}))
        generator = PortalTokenGenerator(client=client)

        with pytest.raises(TransportError):
            await generator(portal_session, "https://gis.example.com")
        await client.aclose()


class TestIsServerFederated:

    @pytest.fixture
    def fetcher(self):
        fetcher = MagicMock()
        fetcher.fetch_json = AsyncMock(return_value={"owningSystemUrl": "https://portal.example.com"})
        fetcher.aclose = AsyncMock()
        return fetcher

    @pytest.mark.asyncio
    async def test_matching_portal(self, fetcher):
        federated = await is_server_federated(
            "https://portal.example.com/portal", "https://gis.example.com/arcgis/", fetcher=fetcher
        )

        assert federated is True
        fetcher.fetch_json.assert_awaited_once_with("https://gis.example.com/arcgis/rest/info")
        fetcher.aclose.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_portal(self, fetcher):
        assert await is_server_federated("https://other.example.com", "https://gis.example.com",
                                         fetcher=fetcher) is False

    @pytest.mark.asyncio
    async def test_standalone_server(self, fetcher):
        fetcher.fetch_json.return_value = {"currentVersion": 11.3}

        assert await is_server_federated("https://portal.example.com", "https://gis.example.com",
                                         fetcher=fetcher) is False

    @pytest.mark.asyncio
    async def test_probe_failure_is_false(self, fetcher):
        fetcher.fetch_json.side_effect = TransportError("connection refused")

        assert await is_server_federated("https://portal.example.com", "https://gis.example.com",
                                         fetcher=fetcher) is False


@pytest.mark.parametrize("url,expected", [
    ("https://gis.example.com/arcgis/rest", "https://gis.example.com"),
    ("https://gis.example.com:6443/arcgis", "https://gis.example.com:6443"),
    ("not-a-url", "not-a-url"),
])
def test_normalize_server_url(url, expected):
    assert normalize_server_url(url) == expected
