import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from core.errors import ControlPlaneError, StartCommandError


class ControlPlaneClient:
    """
    Thin aiohttp client for the Pterodactyl client API.

    Only two calls are needed: the resource usage endpoint (which carries the
    server's ``current_state``) and the power endpoint used to send ``start``.
    Every call is a single attempt; callers decide what a failure means.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        server_id: str,
        timeout_sec: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.server_id = server_id
        self.timeout_sec = float(timeout_sec)
        self.logger = logger or logging.getLogger("ControlPlane")
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config) -> "ControlPlaneClient":
        return cls(
            base_url=config.PTERO_HOST,
            api_key=config.PTERO_API_KEY,
            server_id=config.PTERO_SERVER_ID,
            timeout_sec=config.CONTROL_PLANE_TIMEOUT_SEC,
        )

    @property
    def is_started(self) -> bool:
        return self.session is not None and not self.session.closed

    async def start(self):
        """Canonical lifecycle entrypoint."""
        if self.is_started:
            return
        self.session = aiohttp.ClientSession(
            timeout=ClientTimeout(total=self.timeout_sec),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": "craft-on-demand/1.0",
            },
        )
        self.logger.info("Control plane client ready (panel=%s, server=%s).", self.base_url, self.server_id)

    async def close(self):
        """Canonical lifecycle exit."""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
        self.logger.info("Control plane client closed.")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------- unified HTTP wrapper -------------
    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        if not self.is_started:
            await self.start()

        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(method, url, json=payload) as response:
                body = await response.read()
                try:
                    text = body.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise ControlPlaneError(
                        f"{method} {path} returned a body that is not UTF-8: {e}", status=response.status
                    ) from e
                if response.status >= 400:
                    # Surface the panel's own error body when there is one
                    try:
                        detail = json.dumps(json.loads(text)) if text else response.reason
                    except ValueError:
                        detail = text
                    raise ControlPlaneError(f"{method} {path} failed: {detail}", status=response.status)
                if not text:
                    return {}
                try:
                    return json.loads(text)
                except ValueError as e:
                    raise ControlPlaneError(f"{method} {path} returned invalid JSON: {e}", status=response.status) from e
        except aiohttp.ClientError as e:
            raise ControlPlaneError(f"{method} {path} network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise ControlPlaneError(f"{method} {path} timed out after {self.timeout_sec:.1f}s") from e

    # ------------- endpoints -------------
    async def fetch_current_state(self) -> str:
        """Return the raw ``attributes.current_state`` string. Raises ControlPlaneError."""
        data = await self._request("GET", f"/api/client/servers/{self.server_id}/resources")
        try:
            state = data["attributes"]["current_state"]
        except (KeyError, TypeError) as e:
            raise ControlPlaneError(f"resources response missing current_state: {e!r}") from e
        if not isinstance(state, str):
            raise ControlPlaneError(f"current_state is not a string: {state!r}")
        return state

    async def send_start(self) -> None:
        """Send the ``start`` power signal. Raises StartCommandError on any failure."""
        try:
            await self._request("POST", f"/api/client/servers/{self.server_id}/power", {"signal": "start"})
        except ControlPlaneError as e:
            self.logger.error(f"[Pterodactyl] Error sending start command: {e.message}")
            raise StartCommandError(e.message, status=e.status) from e
        self.logger.info("[Pterodactyl] Start command sent successfully.")
