"""Runtime context: the router, supervisor and bridge of one kernel session.

There is exactly one ``Runtime`` per session. Instead of looking components up
by a well-known global name, the runtime handle is passed to every factory
that needs to register sources or start widgets.

    async with Runtime() as rt:
        button = control.button(rt, "Run")
        frame = Frame.new(rt)
"""

from __future__ import annotations

import logging
from typing import Any

from .bridge import Bridge, HttpBridge, build_bridge
from .config import default_config, validate_config
from .output import Renderer, to_output
from .router import EventRouter
from .supervisor import Supervisor

LOGGER = logging.getLogger(__name__)


class Runtime:
    """Owns the session-wide ``EventRouter``, ``Supervisor`` and ``Bridge``."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        bridge: Bridge | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        self.config = validate_config(config) if config is not None else default_config()
        router_config = self.config["router"]
        self.router = EventRouter(
            name=router_config["name"],
            prune_closed=router_config["prune_closed_subscribers"],
        )
        self.supervisor = Supervisor()
        self._owns_bridge = bridge is None
        self.bridge: Bridge = bridge if bridge is not None else build_bridge(self.config["bridge"])
        self.renderer: Renderer = renderer or to_output
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> Runtime:
        if not self._started:
            self.router.start()
            self._started = True
            LOGGER.info(
                "runtime.started",
                extra={"event": "runtime.started", "bridge": type(self.bridge).__name__},
            )
        return self

    async def stop(self) -> None:
        """Stop every widget and background task, then the router."""
        if not self._started:
            return
        timeout = self.config["widgets"]["shutdown_timeout_seconds"]
        await self.supervisor.shutdown(timeout=timeout)
        await self.router.stop()
        if self._owns_bridge and isinstance(self.bridge, HttpBridge):
            self.bridge.close()
        self._started = False
        LOGGER.info("runtime.stopped", extra={"event": "runtime.stopped"})

    async def __aenter__(self) -> Runtime:
        return await self.start()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
