"""
Versioned asset cache.

Responses are stored under a namespace such as ``deleon-signin-v33``.
Releasing a new client version changes the namespace; activating it purges
every other namespace so only one generation of assets is ever kept.
"""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from .models import CachedAsset
from .store import LocalStore
from ..transport import InterceptedResponse, OutgoingRequest

logger = logging.getLogger(__name__)


def cache_namespace(prefix: str, version: str) -> str:
    return f"{prefix}-v{version}"


class AssetCache:
    """Request-URL to response mapping inside one cache namespace."""

    def __init__(self, store: LocalStore, namespace: str):
        self.store = store
        self.namespace = namespace

    def match(self, url: str) -> Optional[InterceptedResponse]:
        """Return the cached response for a URL, if any."""
        with self.store.get_session() as session:
            asset = session.query(CachedAsset).filter_by(
                namespace=self.namespace, url=url
            ).first()
            if asset is None:
                return None
            headers = {"Content-Type": asset.content_type} if asset.content_type else {}
            return InterceptedResponse(status=asset.status, headers=headers, body=asset.body)

    def put(self, url: str, response: InterceptedResponse):
        """Store (or replace) the response for a URL."""
        with self.store.get_session() as session:
            asset = session.query(CachedAsset).filter_by(
                namespace=self.namespace, url=url
            ).first()
            if asset is None:
                asset = CachedAsset(namespace=self.namespace, url=url)
                session.add(asset)
            asset.status = response.status
            asset.content_type = response.content_type
            asset.body = response.body
            session.commit()
        logger.debug(f"[CACHE] Stored {url} in {self.namespace}")

    async def precache(
        self,
        urls: Iterable[str],
        fetch: Callable[[OutgoingRequest], Awaitable[InterceptedResponse]]
    ) -> int:
        """
        Fetch and store a fixed list of URLs at install time.

        Failed or non-OK fetches are logged and skipped; installation is
        best effort so the kiosk still starts without a network.
        """
        stored = 0
        for url in urls:
            try:
                response = await fetch(OutgoingRequest("GET", url))
            except Exception as e:
                logger.warning(f"[CACHE] Precache failed for {url}: {e}")
                continue
            if response.ok:
                self.put(url, response)
                stored += 1
            else:
                logger.warning(f"[CACHE] Precache got {response.status} for {url}")
        logger.info(f"[CACHE] Precached {stored} assets into {self.namespace}")
        return stored

    def namespaces(self) -> List[str]:
        with self.store.get_session() as session:
            rows = session.query(CachedAsset.namespace).distinct().all()
            return sorted(r[0] for r in rows)

    def activate(self) -> List[str]:
        """Purge every namespace except this one; returns the purged names."""
        stale = [ns for ns in self.namespaces() if ns != self.namespace]
        if stale:
            with self.store.get_session() as session:
                session.query(CachedAsset).filter(
                    CachedAsset.namespace.in_(stale)
                ).delete(synchronize_session=False)
                session.commit()
            logger.info(f"[CACHE] Activated {self.namespace}, purged {stale}")
        return stale
