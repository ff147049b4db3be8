"""Registry of live dashboard sessions, each owning its own enrichment pipeline."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fleetwatch.config import settings
from fleetwatch.dashboard import FleetDashboardController
from fleetwatch.data_sources import build_data_source
from fleetwatch.enrichment import EnrichmentPipeline
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

ControllerFactory = Callable[[], FleetDashboardController]


@dataclass
class _SessionSlot:
    controller: FleetDashboardController
    created_at: float
    expires_at: float


class DashboardSessionRegistry:
    """Idle-TTL registry; expired sessions are torn down lazily on access."""

    def __init__(
        self,
        factory: ControllerFactory,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self.ttl = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, _SessionSlot] = {}

    def create(self) -> str:
        """Create a session with a fresh controller and return its id."""
        sid = str(uuid.uuid4())
        now = self._clock()
        self._sessions[sid] = _SessionSlot(self._factory(), created_at=now, expires_at=now + self.ttl)
        logger.info("Dashboard session created", extra={"session_id": sid, "sessions": len(self._sessions)})
        return sid

    async def get(self, session_id: str) -> Optional[FleetDashboardController]:
        """Return the session's controller, refreshing its TTL, or None if missing/expired."""
        slot = self._sessions.get(session_id)
        if slot is None:
            return None
        now = self._clock()
        if slot.expires_at < now:
            await self.close(session_id)
            return None
        slot.expires_at = now + self.ttl
        return slot.controller

    async def close(self, session_id: str) -> bool:
        """Tear down a session; False if it did not exist."""
        slot = self._sessions.pop(session_id, None)
        if slot is None:
            return False
        await slot.controller.aclose()
        logger.info("Dashboard session closed", extra={"session_id": session_id})
        return True

    async def reap_expired(self) -> int:
        """Close every session idle past its TTL; returns how many were closed."""
        now = self._clock()
        expired = [sid for sid, slot in self._sessions.items() if slot.expires_at < now]
        for sid in expired:
            await self.close(sid)
        return len(expired)

    async def close_all(self) -> None:
        for sid in list(self._sessions):
            await self.close(sid)

    def __len__(self) -> int:
        return len(self._sessions)


def _default_factory() -> ControllerFactory:
    data_source = build_data_source(settings)

    def _factory() -> FleetDashboardController:
        return FleetDashboardController(EnrichmentPipeline.from_settings(settings, data_source=data_source))

    return _factory


_registry: Optional[DashboardSessionRegistry] = None


def get_registry() -> DashboardSessionRegistry:
    """Return the process-wide registry, building it from settings on first use."""
    global _registry
    if _registry is None:
        _registry = DashboardSessionRegistry(_default_factory(), ttl_seconds=settings.session_ttl_seconds)
    return _registry


def use_registry_for_tests(registry: Optional[DashboardSessionRegistry]) -> None:
    """Override the registry for tests to ensure isolation and determinism."""
    global _registry
    _registry = registry
