import asyncio
import logging
import time
from typing import Optional

from mcstatus import JavaServer

from core.contracts import ProbeResult
from core.errors import ProbeConnectionError, ProbeTimeout

logger = logging.getLogger("LivenessProbe")


class LivenessProbe:
    """
    Direct status query against the backend's game port.

    A panel can report "running" for a process that has crashed, hung, or is
    still loading the world. A server list ping is the cheapest round trip that
    only a live server can answer, and its JSON body doubles as the real
    discovery payload for the gateway's own ping responses.
    """

    def __init__(self, host: str, port: int, timeout_sec: float = 2.5):
        self.host = host
        self.port = int(port)
        self.timeout_sec = float(timeout_sec)

    @classmethod
    def from_config(cls, config) -> "LivenessProbe":
        return cls(config.MINECRAFT_SERVER_HOST, config.MINECRAFT_SERVER_PORT, config.PROBE_TIMEOUT_SEC)

    def _server(self) -> JavaServer:
        return JavaServer(self.host, self.port, timeout=self.timeout_sec)

    async def _query(self) -> dict:
        try:
            response = await asyncio.wait_for(self._server().async_status(), timeout=self.timeout_sec)
        except asyncio.TimeoutError as e:
            raise ProbeTimeout(f"{self.host}:{self.port} did not answer within {self.timeout_sec:.1f}s") from e
        except Exception as e:
            raise ProbeConnectionError(f"{self.host}:{self.port} status query failed: {e!r}") from e
        raw = getattr(response, "raw", None)
        return dict(raw) if isinstance(raw, dict) else {}

    async def probe(self) -> ProbeResult:
        started = time.time()
        try:
            raw: Optional[dict] = await self._query()
        except (ProbeTimeout, ProbeConnectionError) as e:
            logger.info(f"[Probe] Backend unreachable: {e}")
            return ProbeResult(reachable=False)
        latency_ms = (time.time() - started) * 1000.0
        logger.debug("[Probe] Backend answered in %.0fms", latency_ms)
        return ProbeResult(reachable=True, status=raw, latency_ms=latency_ms)
