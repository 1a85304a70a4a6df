"""HTTP Health Endpoint for the presence bot farm.

Provides a small aiohttp server on the farm's own event loop so container
orchestrators and uptime monitors can see the process is alive.  It must
be started before the pool begins connecting.

Endpoints:
    GET /        -- Plain-text banner (always 200).
    GET /health  -- JSON liveness with connected/total counts (always 200).
    GET /status  -- JSON list of per-bot snapshots.
"""

import logging
from typing import Optional

from aiohttp import web

from core.pool import ConnectionPool

logger = logging.getLogger(__name__)

POOL_KEY = web.AppKey("pool", ConnectionPool)


async def handle_index(request: web.Request) -> web.Response:
    """Handle root endpoint -- static banner."""
    return web.Response(text="Presence bot farm is running!\n")


async def handle_health(request: web.Request) -> web.Response:
    """Handle ``/health`` endpoint.

    Liveness only: the process answering is what matters, so the status
    code is 200 even when no bot is connected.
    """
    pool = request.app[POOL_KEY]
    return web.json_response({
        "status": "ok",
        "connected": pool.connected_count(),
        "total": len(pool),
    })


async def handle_status(request: web.Request) -> web.Response:
    """Handle ``/status`` endpoint -- per-bot snapshots."""
    pool = request.app[POOL_KEY]
    return web.json_response([entry.to_dict() for entry in pool.snapshot()])


def create_app(pool: ConnectionPool) -> web.Application:
    app = web.Application()
    app[POOL_KEY] = pool
    app.router.add_get("/", handle_index)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/status", handle_status)
    return app


class HealthServer:
    """Start/stop wrapper around an :class:`aiohttp.web.AppRunner`."""

    def __init__(self, pool: ConnectionPool, host: str = "0.0.0.0", port: int = 3000):
        self.pool = pool
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (useful when started with port 0)."""
        if self._runner is None:
            return None
        for address in self._runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return address[1]
        return None

    async def start(self) -> None:
        runner = web.AppRunner(create_app(self.pool), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info(f"✅ Web server running on port {self.bound_port}")
        logger.info("🌐 Health checks will now work")

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health endpoint stopped")
