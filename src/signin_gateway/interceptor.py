"""
Offline Response Interceptor
============================
Routes every request the kiosk page makes:

1. Third-party fonts      -> cache first, network fallback, cache the result
2. Writes / record API    -> network only; offline becomes {"error": "offline"}
3. Everything else        -> cache first, network fallback, cache the result

Callers of the record API always get structured JSON back, so the page can
show "saved offline, will sync" instead of handling a network exception.
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional
from urllib.parse import urlsplit

from .storage import AssetCache, StorageError
from .transport import InterceptedResponse, OutgoingRequest, TransportError

logger = logging.getLogger(__name__)

FONT_HOSTS = frozenset({"fonts.googleapis.com", "fonts.gstatic.com"})
OFFLINE_BODY = {"error": "offline"}

Fetch = Callable[[OutgoingRequest], Awaitable[InterceptedResponse]]


class RequestKind:
    FONT = "font"
    API = "api"
    STATIC = "static"


class OfflineInterceptor:
    """
    Usage:
        interceptor = OfflineInterceptor(cache, fetcher.fetch, record_hosts={"api.example.org"})
        response = await interceptor.handle(OutgoingRequest("GET", url))
    """

    def __init__(
        self,
        cache: AssetCache,
        fetch: Fetch,
        record_hosts: Iterable[str] = (),
        font_hosts: Iterable[str] = FONT_HOSTS
    ):
        self.cache = cache
        self.fetch = fetch
        self.record_hosts = {h.lower() for h in record_hosts}
        self.font_hosts = {h.lower() for h in font_hosts}

    def classify(self, request: OutgoingRequest) -> str:
        host = (urlsplit(request.url).hostname or "").lower()
        if host in self.font_hosts:
            return RequestKind.FONT
        if request.method.upper() not in ("GET", "HEAD"):
            return RequestKind.API
        if host in self.record_hosts:
            return RequestKind.API
        return RequestKind.STATIC

    async def handle(self, request: OutgoingRequest) -> InterceptedResponse:
        kind = self.classify(request)
        if kind == RequestKind.API:
            return await self._network_only(request)
        if kind == RequestKind.FONT:
            return await self._cache_first(request, offline=InterceptedResponse(status=503))
        return await self._cache_first(request)

    async def _network_only(self, request: OutgoingRequest) -> InterceptedResponse:
        try:
            return await self.fetch(request)
        except TransportError as e:
            logger.info(f"[OFFLINE] {request.method} {request.url} answered offline: {e}")
            return InterceptedResponse.json(OFFLINE_BODY)

    async def _cache_first(
        self,
        request: OutgoingRequest,
        offline: Optional[InterceptedResponse] = None
    ) -> InterceptedResponse:
        """
        Serve from cache, else fetch and store OK responses.

        Only GET responses are read from or written to the cache; a HEAD
        goes to the network and its empty body is never stored.
        Without an ``offline`` fallback a transport failure propagates as
        TransportError.
        """
        cacheable = request.method.upper() == "GET"
        if cacheable:
            cached = self._match(request.url)
            if cached is not None:
                return cached

        try:
            response = await self.fetch(request)
        except TransportError:
            if offline is None:
                raise
            logger.info(f"[OFFLINE] {request.url} unavailable and not cached")
            return offline

        if cacheable and response.ok:
            self._store(request.url, response)
        return response

    def _match(self, url: str) -> Optional[InterceptedResponse]:
        try:
            return self.cache.match(url)
        except StorageError as e:
            logger.warning(f"[CACHE] Lookup skipped for {url}: {e}")
            return None

    def _store(self, url: str, response: InterceptedResponse):
        try:
            self.cache.put(url, response)
        except StorageError as e:
            logger.warning(f"[CACHE] Could not store {url}: {e}")
