from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

from .cooldown import CooldownTracker
from .store import ConfessionStore

log = logging.getLogger(__name__)


class HealthServer:
    """Tiny aiohttp app answering GET /health for uptime pingers."""

    def __init__(self, store: ConfessionStore, cooldowns: CooldownTracker, port: int, host: str = "0.0.0.0"):
        self.store = store
        self.cooldowns = cooldowns
        self.port = port
        self.host = host
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.handle_health)
        app.router.add_get("/health", self.handle_health)
        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "total": self.store.count(),
            "cooldowns": len(self.cooldowns),
            "storage_ok": self.store.last_write_ok,
        })

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("Health server up on %s:%d (GET /health)", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
