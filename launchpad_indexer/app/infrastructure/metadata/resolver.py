from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone

from launchpad_indexer.app.domain.metadata import TokenMetadata
from launchpad_indexer.app.domain.models import ContentCacheRecord
from launchpad_indexer.app.domain.ports.out import (
    ContentFetcher,
    KeyValueCache,
    LedgerStore,
    MetadataResolver,
)

logger = logging.getLogger(__name__)

METADATA_KEY_PREFIX = "ipfs:metadata:"

_GATEWAY_PATH_RE = re.compile(r"/ipfs/([a-zA-Z0-9]+)")
_BARE_HASH_RE = re.compile(r"^[a-zA-Z0-9]+$")


def extract_content_hash(uri: str | None) -> str | None:
    """
    Accepts ipfs://<hash>, https://<gateway>/ipfs/<hash>[/...] and a bare hash.
    Anything else is not resolvable.
    """
    if not uri:
        return None
    uri = uri.strip()

    if uri.startswith("ipfs://"):
        rest = uri[len("ipfs://"):]
        if rest.startswith("ipfs/"):
            rest = rest[len("ipfs/"):]
        return rest or None

    match = _GATEWAY_PATH_RE.search(uri)
    if match:
        return match.group(1)

    if _BARE_HASH_RE.match(uri):
        return uri

    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IpfsMetadataResolver(MetadataResolver):
    """
    Read-through resolver for off-chain token metadata.

    Lookup order: key/value cache, then the content_cache table (touching
    last_accessed_at and warming the key/value cache), then the gateways.
    Documents are sanitized before they are cached anywhere. Every failure
    path ends in None; metadata is never required for indexing to proceed.
    """

    def __init__(
        self,
        *,
        fetcher: ContentFetcher,
        store: LedgerStore,
        cache: KeyValueCache,
        cache_ttl: int = 3600,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._now = now

    async def fetch_metadata(self, uri: str) -> TokenMetadata | None:
        content_hash = extract_content_hash(uri)
        if content_hash is None:
            logger.warning("Unresolvable metadata URI: %r", uri)
            return None

        key = METADATA_KEY_PREFIX + content_hash

        cached = await self._cache.get(key)
        if isinstance(cached, dict):
            logger.debug("Metadata cache hit: %s", content_hash)
            return TokenMetadata.from_document(cached)

        stored = await self._from_content_cache(content_hash)
        if stored is not None:
            await self._cache.set(key, stored.to_document(), self._cache_ttl)
            return stored

        fetched = await self._fetcher.fetch_json(content_hash)
        if fetched is None:
            return None

        document, url = fetched
        metadata = TokenMetadata.from_document(document)
        if metadata is None:
            logger.warning("Metadata document for %s is not a JSON object", content_hash)
            return None

        await self._save_content_cache(
            ContentCacheRecord(
                content_hash=content_hash,
                content_type="json",
                data=metadata.to_document(),
                url=url,
                last_accessed_at=self._now(),
            )
        )
        await self._cache.set(key, metadata.to_document(), self._cache_ttl)
        logger.info("Metadata fetched for %s", content_hash)
        return metadata

    async def resolve_image_url(self, uri: str | None) -> str | None:
        content_hash = extract_content_hash(uri)
        if content_hash is None:
            # Plain http(s) image links are passed through untouched.
            if uri and uri.strip().lower().startswith(("https://", "http://")):
                return uri.strip()
            return None

        url = self._fetcher.display_url(content_hash)
        await self._save_content_cache(
            ContentCacheRecord(
                content_hash=content_hash,
                content_type="image",
                data=None,
                url=url,
                last_accessed_at=self._now(),
            )
        )
        return url

    async def _from_content_cache(self, content_hash: str) -> TokenMetadata | None:
        try:
            record = await self._store.get_cached_content(content_hash)
            if record is None or not record.data:
                return None
            await self._store.touch_cached_content(content_hash, self._now())
        except Exception:
            logger.exception("Content cache lookup failed for %s", content_hash)
            return None
        return TokenMetadata.from_document(record.data)

    async def _save_content_cache(self, record: ContentCacheRecord) -> None:
        try:
            await self._store.put_cached_content(record)
        except Exception:
            logger.exception("Failed to store content cache entry %s", record.content_hash)
