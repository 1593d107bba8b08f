"""Tests for gateway fetching and the read-through metadata resolver."""

import httpx
import pytest
from fakes import FakeCache, InMemoryLedgerStore

from launchpad_indexer.app.domain.models import ContentCacheRecord
from launchpad_indexer.app.infrastructure.metadata.content_fetcher import GatewayContentFetcher
from launchpad_indexer.app.infrastructure.metadata.resolver import (
    METADATA_KEY_PREFIX,
    IpfsMetadataResolver,
    extract_content_hash,
)

GATEWAYS = ["https://gw-one.test/ipfs", "https://gw-two.test/ipfs/"]
DOC = {"name": "Moon", "symbol": "MOON", "description": "<b>to the moon</b>", "image": "ipfs://QmImage"}


def _fetcher(handler) -> GatewayContentFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GatewayContentFetcher(GATEWAYS, timeout=1.0, client=client)


class TestExtractContentHash:
    @pytest.mark.parametrize(
        ("uri", "expected"),
        [
            ("ipfs://QmHash", "QmHash"),
            ("ipfs://ipfs/QmHash", "QmHash"),
            ("https://gateway.pinata.cloud/ipfs/QmHash/meta.json", "QmHash"),
            ("QmHash", "QmHash"),
            ("https://example.com/meta.json", None),
            ("", None),
            (None, None),
        ],
    )
    def test_forms(self, uri, expected) -> None:
        assert extract_content_hash(uri) == expected


class TestGatewayContentFetcher:
    @pytest.mark.asyncio
    async def test_falls_back_to_second_gateway(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.host == "gw-one.test":
                return httpx.Response(502)
            return httpx.Response(200, json=DOC)

        result = await _fetcher(handler).fetch_json("QmHash")

        assert result == (DOC, "https://gw-two.test/ipfs/QmHash")
        assert seen == ["https://gw-one.test/ipfs/QmHash", "https://gw-two.test/ipfs/QmHash"]

    @pytest.mark.asyncio
    async def test_non_json_body_tries_next(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "gw-one.test":
                return httpx.Response(200, text="<html>captcha</html>")
            return httpx.Response(200, json=DOC)

        result = await _fetcher(handler).fetch_json("QmHash")

        assert result is not None
        assert result[1].startswith("https://gw-two.test")

    @pytest.mark.asyncio
    async def test_all_gateways_failing_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        assert await _fetcher(handler).fetch_json("QmHash") is None

    def test_display_url_uses_first_gateway(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(404))
        assert fetcher.display_url("QmImage") == "https://gw-one.test/ipfs/QmImage"


class TestIpfsMetadataResolver:
    @pytest.mark.asyncio
    async def test_fetches_sanitizes_and_caches(self, clock) -> None:
        store, cache = InMemoryLedgerStore(), FakeCache()
        resolver = IpfsMetadataResolver(
            fetcher=_fetcher(lambda request: httpx.Response(200, json=DOC)),
            store=store,
            cache=cache,
            now=clock,
        )

        metadata = await resolver.fetch_metadata("ipfs://QmHash")

        assert metadata is not None
        assert metadata.description == "to the moon"
        assert store.content["QmHash"].content_type == "json"
        assert store.content["QmHash"].data == metadata.to_document()
        assert cache.values[METADATA_KEY_PREFIX + "QmHash"] == metadata.to_document()

    @pytest.mark.asyncio
    async def test_kv_cache_hit_skips_network_and_store(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("network must not be used")

        store, cache = InMemoryLedgerStore(), FakeCache()
        cache.values[METADATA_KEY_PREFIX + "QmHash"] = {"name": "Cached"}
        resolver = IpfsMetadataResolver(fetcher=_fetcher(handler), store=store, cache=cache)

        metadata = await resolver.fetch_metadata("QmHash")

        assert metadata is not None
        assert metadata.name == "Cached"
        assert store.touched == []

    @pytest.mark.asyncio
    async def test_content_cache_hit_touches_and_warms(self, clock) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("network must not be used")

        store, cache = InMemoryLedgerStore(), FakeCache()
        await store.put_cached_content(
            ContentCacheRecord(content_hash="QmHash", content_type="json", data={"name": "Stored"}, url=None)
        )
        resolver = IpfsMetadataResolver(fetcher=_fetcher(handler), store=store, cache=cache, now=clock)

        metadata = await resolver.fetch_metadata("https://ipfs.io/ipfs/QmHash")

        assert metadata is not None
        assert metadata.name == "Stored"
        assert store.touched == ["QmHash"]
        assert store.content["QmHash"].last_accessed_at == clock()
        assert cache.values[METADATA_KEY_PREFIX + "QmHash"]["name"] == "Stored"

    @pytest.mark.asyncio
    async def test_total_gateway_failure_is_not_found(self) -> None:
        resolver = IpfsMetadataResolver(
            fetcher=_fetcher(lambda request: httpx.Response(500)),
            store=InMemoryLedgerStore(),
            cache=FakeCache(),
        )
        assert await resolver.fetch_metadata("ipfs://QmHash") is None

    @pytest.mark.asyncio
    async def test_unresolvable_uri(self) -> None:
        resolver = IpfsMetadataResolver(
            fetcher=_fetcher(lambda request: httpx.Response(200, json=DOC)),
            store=InMemoryLedgerStore(),
            cache=FakeCache(),
        )
        assert await resolver.fetch_metadata("https://example.com/meta.json") is None

    @pytest.mark.asyncio
    async def test_image_urls(self) -> None:
        store = InMemoryLedgerStore()
        resolver = IpfsMetadataResolver(
            fetcher=_fetcher(lambda request: httpx.Response(404)),
            store=store,
            cache=FakeCache(),
        )

        assert await resolver.resolve_image_url("ipfs://QmImage") == "https://gw-one.test/ipfs/QmImage"
        assert store.content["QmImage"].content_type == "image"
        assert await resolver.resolve_image_url("https://cdn.test/logo.png") == "https://cdn.test/logo.png"
        assert await resolver.resolve_image_url(None) is None
