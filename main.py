from dotenv import load_dotenv, find_dotenv
# Load the .env closest to the working directory before anything reads os.environ
load_dotenv(dotenv_path=find_dotenv(usecwd=True))

import asyncio
import logging
import signal
import sys

from core.config import Config
from core.control_plane import ControlPlaneClient
from core.decision_engine import DecisionEngine
from core.errors import ConfigError
from core.gateway import GatewayServer
from core.liveness_probe import LivenessProbe
from core.start_gate import StartGate
from core.status_oracle import StatusOracle
from utils.logging_setup import setup_logging

logger = logging.getLogger("Main")


class AppContext:
    def __init__(self, config: Config):
        self.config = config
        self.control_plane = None
        self.status_oracle = None
        self.liveness_probe = None
        self.start_gate = None
        self.decision_engine = None
        self.gateway = None

    async def __aenter__(self):
        await self.initialize_all()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def initialize_all(self):
        self.control_plane = ControlPlaneClient.from_config(self.config)
        await self.control_plane.start()

        self.status_oracle = StatusOracle(self.control_plane)
        self.liveness_probe = LivenessProbe.from_config(self.config)
        # One gate for the lifetime of the process
        self.start_gate = StartGate(cooldown_sec=self.config.START_COOLDOWN_SEC)
        self.decision_engine = DecisionEngine(
            status_oracle=self.status_oracle,
            liveness_probe=self.liveness_probe,
            start_gate=self.start_gate,
            control_plane=self.control_plane,
            public_address=self.config.MINECRAFT_PUBLIC_ADDRESS,
            version_name=self.config.STATUS_VERSION_NAME,
            max_players=self.config.MAX_PLAYERS,
        )
        self.gateway = GatewayServer.from_config(self.decision_engine, self.config)

    async def run(self):
        await self.gateway.serve_forever()

    async def shutdown(self):
        logger.info("Shutting down gateway.")
        if self.gateway:
            await self.gateway.close()
        if self.start_gate:
            self.start_gate.release()
        if self.control_plane:
            await self.control_plane.close()
        logger.info("AppContext shutdown complete.")


async def main(config: Config):
    async with AppContext(config) as app:
        serve = asyncio.create_task(app.run())
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, serve.cancel)
            except (NotImplementedError, RuntimeError):
                # add_signal_handler is unavailable on Windows event loops
                pass
        try:
            await serve
        except asyncio.CancelledError:
            logger.info("Shutdown signal received.")


def run() -> int:
    setup_logging()
    try:
        config = Config()
    except ConfigError as e:
        logger.critical(f"[Error] {e.message}")
        return 1

    setup_logging(config.LOG_FILE, config.LOG_LEVEL)
    try:
        asyncio.run(main(config))
    except OSError as e:
        logger.critical(f"[Server] Could not bind {config.LISTEN_HOST}:{config.LISTEN_PORT}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
