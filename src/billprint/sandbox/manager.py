"""Sandbox manager: creates sandboxes and destroys each exactly once."""

import logging
from typing import Callable, Dict, List, Optional

from billprint.core.events import EventBus
from billprint.sandbox.base import RenderingSandbox

logger = logging.getLogger(__name__)

SandboxFactory = Callable[[EventBus], RenderingSandbox]


class SandboxManager:
    """Owns the set of open sandboxes, keyed by sandbox id."""

    def __init__(self, event_bus: EventBus, factory: SandboxFactory) -> None:
        self._event_bus = event_bus
        self._factory = factory
        self._open: Dict[str, RenderingSandbox] = {}

    @property
    def open_count(self) -> int:
        return len(self._open)

    def get(self, sandbox_id: str) -> Optional[RenderingSandbox]:
        return self._open.get(sandbox_id)

    def create(self) -> RenderingSandbox:
        """Create a fresh sandbox for one job."""
        sandbox = self._factory(self._event_bus)
        self._open[sandbox.id] = sandbox
        logger.debug(f"Sandbox {sandbox.id[:8]} created ({self.open_count} open)")
        return sandbox

    async def destroy(self, sandbox: RenderingSandbox) -> bool:
        """Close a sandbox if it is still open.

        Returns:
            True if this call closed it, False if it was already gone
        """
        owned = self._open.pop(sandbox.id, None)
        if owned is None or sandbox.is_destroyed:
            return False

        try:
            await sandbox.close()
        except Exception as e:
            logger.error(f"Error closing sandbox {sandbox.id[:8]}: {e}")
        return True

    async def close_all(self) -> None:
        """Close every open sandbox (shutdown)."""
        sandboxes: List[RenderingSandbox] = list(self._open.values())
        for sandbox in sandboxes:
            await self.destroy(sandbox)
