import os
import logging
from typing import Mapping, Optional

from core.errors import ConfigError


logger = logging.getLogger("Config")
MASK = "****"


class Config:
        """
        Centralized configuration registry for the CraftOnDemand gateway.
        - Everything is read from the environment (main.py loads .env first)
        - Missing required values raise ConfigError before any socket is bound
        """

        # ---------- Static (class-level) ----------
        REQUIRED_VARS = [
            "LISTEN_PORT",
            "PTERO_HOST",
            "PTERO_API_KEY",
            "PTERO_SERVER_ID",
            "MINECRAFT_SERVER_HOST",
            "MINECRAFT_SERVER_PORT",
        ]

        LISTEN_HOST = "0.0.0.0"
        START_COOLDOWN_SEC = 30.0
        PROBE_TIMEOUT_SEC = 2.5
        CONTROL_PLANE_TIMEOUT_SEC = 10.0
        CLIENT_TIMEOUT_SEC = 30.0
        MAX_PLAYERS = 20
        STATUS_VERSION_NAME = "CraftOnDemand"
        LOG_LEVEL = "INFO"

        # ----- helper -----
        @staticmethod
        def _mask(s: str, head: int = 4, tail: int = 2) -> str:
            if not s:
                return ""
            if len(s) <= head + tail:
                return MASK
            return f"{s[:head]}{MASK}{s[-tail:]}"

        def __init__(self, env: Optional[Mapping[str, str]] = None):
            self._env = os.environ if env is None else env

            missing = [v for v in Config.REQUIRED_VARS if not (self._env.get(v) or "").strip()]
            if missing:
                raise ConfigError(
                    f"Missing required environment variable(s): {', '.join(missing)}. Please check your .env file.",
                    missing=missing,
                )

            # ---------- Listener ----------
            self.LISTEN_HOST = self._get("LISTEN_HOST", Config.LISTEN_HOST)
            self.LISTEN_PORT = self._port("LISTEN_PORT")

            # ---------- Control plane (Pterodactyl) ----------
            self.PTERO_HOST = self._get("PTERO_HOST").rstrip("/")
            self.PTERO_API_KEY = self._get("PTERO_API_KEY")
            self.PTERO_SERVER_ID = self._get("PTERO_SERVER_ID")
            self.CONTROL_PLANE_TIMEOUT_SEC = self._float("CONTROL_PLANE_TIMEOUT_SEC", Config.CONTROL_PLANE_TIMEOUT_SEC)

            # ---------- Backend ----------
            self.MINECRAFT_SERVER_HOST = self._get("MINECRAFT_SERVER_HOST")
            self.MINECRAFT_SERVER_PORT = self._port("MINECRAFT_SERVER_PORT")
            # Accepted for compatibility; has no effect on start decisions.
            self.MINECRAFT_SERVER_ONLINE_MODE = self._bool("MINECRAFT_SERVER_ONLINE_MODE", True)
            self.MINECRAFT_PUBLIC_ADDRESS = self._get("MINECRAFT_PUBLIC_ADDRESS", self.backend_address)

            # ---------- Decision engine knobs ----------
            self.START_COOLDOWN_SEC = self._float("START_COOLDOWN_SEC", Config.START_COOLDOWN_SEC)
            self.PROBE_TIMEOUT_SEC = self._float("PROBE_TIMEOUT_SEC", Config.PROBE_TIMEOUT_SEC)
            self.CLIENT_TIMEOUT_SEC = self._float("CLIENT_TIMEOUT_SEC", Config.CLIENT_TIMEOUT_SEC)

            # ---------- Status payload ----------
            self.MAX_PLAYERS = self._int("MAX_PLAYERS", Config.MAX_PLAYERS)
            self.STATUS_VERSION_NAME = self._get("STATUS_VERSION_NAME", Config.STATUS_VERSION_NAME)

            # ---------- Logging ----------
            self.LOG_LEVEL = self._get("LOG_LEVEL", Config.LOG_LEVEL).upper()
            self.LOG_FILE = self._get("LOG_FILE", "") or None

            logger.info(
                "⚙️ Config loaded → listen=%s:%s | panel=%s | server_id=%s | api_key=%s",
                self.LISTEN_HOST,
                self.LISTEN_PORT,
                self.PTERO_HOST,
                self.PTERO_SERVER_ID,
                self._mask(self.PTERO_API_KEY),
            )
            logger.info(
                "🎮 Backend → %s:%s | public=%s | online_mode=%s (inert)",
                self.MINECRAFT_SERVER_HOST,
                self.MINECRAFT_SERVER_PORT,
                self.MINECRAFT_PUBLIC_ADDRESS,
                self.MINECRAFT_SERVER_ONLINE_MODE,
            )
            logger.info(
                "⏳ Start gate cooldown=%.1fs | probe_timeout=%.1fs | panel_timeout=%.1fs | client_timeout=%.1fs",
                self.START_COOLDOWN_SEC,
                self.PROBE_TIMEOUT_SEC,
                self.CONTROL_PLANE_TIMEOUT_SEC,
                self.CLIENT_TIMEOUT_SEC,
            )

        # ---------- env parsing ----------
        def _get(self, key: str, default: str = "") -> str:
            v = self._env.get(key)
            if v is None:
                return default
            v = v.strip()
            return v if v else default

        def _int(self, key: str, default: int) -> int:
            raw = self._get(key, str(default))
            try:
                return int(raw)
            except ValueError:
                raise ConfigError(f"{key} must be an integer (got {raw!r})")

        def _float(self, key: str, default: float) -> float:
            raw = self._get(key, str(default))
            try:
                value = float(raw)
            except ValueError:
                raise ConfigError(f"{key} must be a number (got {raw!r})")
            if value <= 0:
                raise ConfigError(f"{key} must be positive (got {raw!r})")
            return value

        def _port(self, key: str) -> int:
            raw = self._get(key)
            try:
                port = int(raw)
            except ValueError:
                raise ConfigError(f"{key} must be a port number (got {raw!r})")
            if not 1 <= port <= 65535:
                raise ConfigError(f"{key} must be between 1 and 65535 (got {port})")
            return port

        def _bool(self, key: str, default: bool) -> bool:
            s = self._get(key, "").lower()
            if not s:
                return default
            if s in ("1", "true", "yes", "y", "on"):
                return True
            if s in ("0", "false", "no", "n", "off"):
                return False
            raise ConfigError(f"{key} must be true or false (got {s!r})")

        @property
        def backend_address(self) -> str:
            return f"{self.MINECRAFT_SERVER_HOST}:{self.MINECRAFT_SERVER_PORT}"
