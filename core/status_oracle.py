# core/status_oracle.py

import logging

from core.contracts import LifecycleState
from core.errors import ControlPlaneError

logger = logging.getLogger("StatusOracle")


class StatusOracle:
    """Authoritative lifecycle state of the backend, as reported by the panel."""

    def __init__(self, control_plane):
        self.control_plane = control_plane

    async def get_status(self) -> LifecycleState:
        """Single attempt; any failure is reported as UNKNOWN rather than raised."""
        try:
            raw = await self.control_plane.fetch_current_state()
        except ControlPlaneError as e:
            logger.error(f"[Pterodactyl] Error fetching server status: {e.message} (HTTP: {e.status})")
            return LifecycleState.UNKNOWN

        state = LifecycleState.from_raw(raw)
        if state is LifecycleState.UNKNOWN:
            logger.warning(f"[Pterodactyl] Unrecognized server state {raw!r}; treating as unknown.")
        else:
            logger.debug(f"[Pterodactyl] Server status is: {state.value}")
        return state
