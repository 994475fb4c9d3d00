import asyncio
import logging
from typing import Optional, Tuple

from core.contracts import (
    Acquired,
    EffectiveStatus,
    EventKind,
    LifecycleState,
    LoginOutcome,
    ProbeResult,
    StatusPayload,
)
from core.errors import StartCommandError
from core.response_composer import (
    DEFAULT_MAX_PLAYERS,
    DEFAULT_VERSION_NAME,
    compose_login_outcome,
    compose_ping_payload,
)

logger = logging.getLogger("DecisionEngine")


class DecisionEngine:
    """
    Per-handshake orchestration:
      • fetch the panel's lifecycle state
      • probe the backend when the panel claims it is running
      • reconcile both into an EffectiveStatus
      • operate the start gate (login events only) and issue the start command
      • hand the result to the pure response composer
    """

    def __init__(
        self,
        status_oracle,
        liveness_probe,
        start_gate,
        control_plane,
        public_address: str,
        version_name: str = DEFAULT_VERSION_NAME,
        max_players: int = DEFAULT_MAX_PLAYERS,
    ):
        self.status_oracle = status_oracle
        self.liveness_probe = liveness_probe
        self.start_gate = start_gate
        self.control_plane = control_plane
        self.public_address = public_address
        self.version_name = version_name
        self.max_players = max_players

    async def resolve_status(self) -> Tuple[EffectiveStatus, Optional[ProbeResult]]:
        lifecycle = await self.status_oracle.get_status()
        if lifecycle is not LifecycleState.RUNNING:
            return EffectiveStatus.from_lifecycle(lifecycle), None

        result = await self.liveness_probe.probe()
        if result.reachable:
            return EffectiveStatus.RUNNING_REACHABLE, result
        logger.info("[Server] Server is unresponsive (zombie). Treating as offline to trigger a start.")
        return EffectiveStatus.RUNNING_UNREACHABLE, result

    def _observe(self, kind: EventKind, status: EffectiveStatus) -> int:
        """Gate bookkeeping shared by both event kinds. Returns elapsed minutes for display."""
        logger.debug("[%s] effective status=%s gate=%s", kind.value, status.value, self.start_gate.state)
        if status is EffectiveStatus.RUNNING_REACHABLE:
            self.start_gate.release()
        elif status is EffectiveStatus.STARTING:
            self.start_gate.mark_starting()
        return self.start_gate.elapsed_minutes()

    async def handle_ping(self, protocol_version: int) -> StatusPayload:
        status, probe = await self.resolve_status()
        elapsed = self._observe(EventKind.PING, status)
        real = probe.status if probe is not None and probe.reachable else None
        logger.debug("[Ping] status=%s elapsed=%dmin protocol=%s", status.value, elapsed, protocol_version)
        return compose_ping_payload(
            status,
            elapsed,
            protocol_version,
            real,
            version_name=self.version_name,
            max_players=self.max_players,
        )

    async def handle_login(
        self,
        username: Optional[str] = None,
        protocol_version: Optional[int] = None,
        peer: Optional[str] = None,
    ) -> LoginOutcome:
        logger.info(f"[Server] Login attempt from {peer or '?'} (username: {username}, version: {protocol_version})")
        status, _ = await self.resolve_status()
        logger.info(f"[Pterodactyl] Effective server status is: {status.value}")

        if not status.needs_start:
            elapsed = self._observe(EventKind.LOGIN, status)
            outcome = compose_login_outcome(status, None, elapsed, self.public_address)
            logger.info(f"[Server] Disconnecting {peer or '?'}: {type(outcome).__name__}")
            return outcome

        decision = self.start_gate.try_acquire()
        started = True
        if isinstance(decision, Acquired):
            logger.info("[Server] Server is %s. Starting now due to login attempt...", status.value)
            # An issued start is never cancelled, even if the client hangs up or times out
            started = await asyncio.shield(self._issue_start())

        outcome = compose_login_outcome(
            status,
            decision,
            self.start_gate.elapsed_minutes(),
            self.public_address,
            start_succeeded=started,
        )
        logger.info(f"[Server] Disconnecting {peer or '?'}: {type(outcome).__name__}")
        return outcome

    async def _issue_start(self) -> bool:
        try:
            await self.control_plane.send_start()
        except StartCommandError as e:
            logger.error(f"[Server] Start command failed; releasing gate: {e.message}")
            self.start_gate.release()
            return False
        except Exception:
            logger.exception("[Server] Unexpected error while sending the start command; releasing gate.")
            self.start_gate.release()
            return False
        return True
