"""
Sign-in Kiosk Gateway
=====================
Local Tornado server the kiosk page talks to.

Flow:
1. Page submits a check-in -> written to the durable queue immediately
2. Response confirms at once; a flush is scheduled on the IOLoop
3. Delivered entries leave the queue; failed ones wait for the next trigger
4. Page assets and record API reads go through the offline interceptor
"""

import json
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import tornado.httpserver
import tornado.ioloop
import tornado.web

from . import config
from .backend_client import RecordApiClient
from .interceptor import OfflineInterceptor
from .storage import (
    AssetCache, CheckinQueue, LocalStore, StorageError, SyncIntentStore, cache_namespace
)
from .sync_engine import BackgroundSync, ConnectivityMonitor, SyncEngine
from .transport import Fetcher, InterceptedResponse, OutgoingRequest, TransportError

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    """Everything the request handlers share."""
    queue: CheckinQueue
    engine: SyncEngine
    background: BackgroundSync
    interceptor: OfflineInterceptor
    backend_url: str
    asset_origin: str


class GatewayHandler(tornado.web.RequestHandler):

    def initialize(self, ctx: GatewayContext):
        self.ctx = ctx

    def write_json(self, data: dict, status: int = 200):
        self.set_status(status)
        self.set_header("Content-Type", "application/json")
        self.write(json.dumps(data))

    def write_intercepted(self, response: InterceptedResponse):
        self.set_status(response.status)
        for name, value in response.headers.items():
            self.set_header(name, value)
        self.write(response.body)


class CheckinHandler(GatewayHandler):
    def post(self):
        try:
            payload = json.loads(self.request.body or b"{}")
        except ValueError:
            self.write_json({"error": "Request body must be JSON"}, status=400)
            return
        if not isinstance(payload, dict):
            self.write_json({"error": "Request body must be a JSON object"}, status=400)
            return

        payload.setdefault("action", "checkin")

        try:
            entry_id = self.ctx.queue.enqueue(payload)
        except StorageError as e:
            logger.error(f"[QUEUE] Check-in not saved: {e}")
            self.write_json({"error": f"Could not save check-in: {e}"}, status=500)
            return

        try:
            self.ctx.background.register()
        except StorageError as e:
            logger.warning(f"[SYNC] Deferred retry not registered: {e}")

        tornado.ioloop.IOLoop.current().add_callback(self.ctx.engine.flush)
        self.write_json({"ok": True, "queued": True, "id": entry_id})

    def get(self):
        self.write("This is a POST-only endpoint.")


class SyncHandler(GatewayHandler):
    """Foreground trigger: the page became visible or came back online."""

    async def post(self):
        report = await self.ctx.engine.flush()
        self.write_json(report.to_dict())


class QueueHandler(GatewayHandler):
    def get(self):
        try:
            pending = self.ctx.queue.count()
        except StorageError as e:
            self.write_json({"pending": None, "error": str(e)}, status=503)
            return
        self.write_json({"pending": pending})


class ApiHandler(GatewayHandler):
    """Record API proxy; unreachable backend answers {"error": "offline"}."""

    async def get(self):
        query = self.request.query
        url = f"{self.ctx.backend_url}/" + (f"?{query}" if query else "")
        await self._forward(OutgoingRequest("GET", url))

    async def post(self):
        headers = {"Content-Type": self.request.headers.get("Content-Type", "application/json")}
        await self._forward(OutgoingRequest(
            "POST", f"{self.ctx.backend_url}/", headers=headers, body=self.request.body
        ))

    async def _forward(self, request: OutgoingRequest):
        response = await self.ctx.interceptor.handle(request)
        self.write_intercepted(response)


class AssetHandler(GatewayHandler):
    """Kiosk page assets, cache first."""

    async def get(self, path: str):
        url = f"{self.ctx.asset_origin}/{path}"
        if self.request.query:
            url = f"{url}?{self.request.query}"
        try:
            response = await self.ctx.interceptor.handle(OutgoingRequest("GET", url))
        except TransportError as e:
            logger.warning(f"Asset unavailable offline: {url}: {e}")
            self.set_status(504)
            self.write({"error": "offline", "asset": path})
            return
        self.write_intercepted(response)


def make_app(ctx: GatewayContext) -> tornado.web.Application:
    handler_args = dict(ctx=ctx)
    return tornado.web.Application([
        (r'/checkin', CheckinHandler, handler_args),
        (r'/sync', SyncHandler, handler_args),
        (r'/queue', QueueHandler, handler_args),
        (r'/api', ApiHandler, handler_args),
        (r'/(.*)', AssetHandler, handler_args),
    ])


def build_context(store: LocalStore, client: RecordApiClient, fetcher: Fetcher) -> GatewayContext:
    queue = CheckinQueue(store)
    engine = SyncEngine(queue, client)
    cache = AssetCache(store, cache_namespace(config.CACHE_PREFIX, config.CLIENT_VERSION))
    record_host = urlsplit(config.BACKEND_URL).hostname or ""
    return GatewayContext(
        queue=queue,
        engine=engine,
        background=BackgroundSync(engine, SyncIntentStore(store)),
        interceptor=OfflineInterceptor(cache, fetcher.fetch, record_hosts=[record_host]),
        backend_url=config.BACKEND_URL.rstrip('/'),
        asset_origin=config.ASSET_ORIGIN.rstrip('/')
    )


async def install_assets(ctx: GatewayContext, fetcher: Fetcher):
    """Precache the kiosk shell and drop every older cache generation."""
    cache = ctx.interceptor.cache
    urls = [f"{ctx.asset_origin}/{asset[2:]}" for asset in config.STATIC_ASSETS]
    try:
        await cache.precache(urls, fetcher.fetch)
        cache.activate()
    except StorageError as e:
        logger.error(f"[CACHE] Install skipped: {e}")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    store = LocalStore(config.QUEUE_DB_PATH)
    try:
        store.initialize()
    except StorageError:
        logger.error("Local storage unavailable - check-ins cannot be queued until it is fixed")

    client = RecordApiClient(config.BACKEND_URL, config.KIOSK_TOKEN, config.REQUEST_TIMEOUT_SECONDS)
    fetcher = Fetcher(config.REQUEST_TIMEOUT_SECONDS)
    ctx = build_context(store, client, fetcher)

    http_server = tornado.httpserver.HTTPServer(make_app(ctx))
    http_server.listen(config.GATEWAY_PORT, address="0.0.0.0")

    logger.info('=' * 60)
    logger.info('*** Sign-in Kiosk Gateway ***')
    logger.info('=' * 60)
    logger.info(f'Record API: {config.BACKEND_URL}')
    logger.info(f'Assets: {config.ASSET_ORIGIN} (cache {ctx.interceptor.cache.namespace})')
    logger.info(f'Queue: {store.db_path}')
    logger.info(f'Kiosk: http://localhost:{config.GATEWAY_PORT}/')
    logger.info('=' * 60)

    io_loop = tornado.ioloop.IOLoop.current()
    io_loop.run_sync(lambda: install_assets(ctx, fetcher))

    monitor = ConnectivityMonitor(client.ping, ctx.engine.flush, config.PING_INTERVAL_SECONDS)
    monitor.start()

    try:
        io_loop.start()
    finally:
        monitor.stop()
        io_loop.run_sync(client.close)
        io_loop.run_sync(fetcher.close)
        store.close()


if __name__ == "__main__":
    main()
