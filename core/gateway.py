import asyncio
import logging
from typing import Optional, Set

from core import wire
from core.errors import ProtocolError
from core.response_composer import render_login_message

logger = logging.getLogger("Gateway")


class GatewayServer:
    """
    TCP listener speaking the handshake, status and login-start states only.

    Every connection ends with either a status response (+ pong) or a login
    disconnect message. The socket is never handed to the backend.
    """

    def __init__(self, engine, host: str = "0.0.0.0", port: int = 25565, client_timeout_sec: float = 30.0):
        self.engine = engine
        self.host = host
        self.port = int(port)
        self.client_timeout_sec = float(client_timeout_sec)
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, engine, config) -> "GatewayServer":
        return cls(engine, config.LISTEN_HOST, config.LISTEN_PORT, config.CLIENT_TIMEOUT_SEC)

    @property
    def bound_port(self) -> Optional[int]:
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self):
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._on_connect, self.host, self.port)
        logger.info(f"[CraftOnDemand] Listening for Minecraft pings on {self.host}:{self.bound_port}...")

    async def serve_forever(self):
        await self.start()
        logger.info("[Server] Minecraft listener is fully operational.")
        await self._server.serve_forever()

    async def close(self):
        if self._server is None:
            return
        self._server.close()
        # In-flight connections first, wait_closed() waits for them on 3.12+
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        logger.info("Gateway listener closed.")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ---------------- per-connection ----------------

    async def _on_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        peer = writer.get_extra_info("peername")
        peer_str = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) and len(peer) >= 2 else str(peer)
        try:
            await asyncio.wait_for(self._handle(reader, writer, peer_str), timeout=self.client_timeout_sec)
        except asyncio.TimeoutError:
            logger.debug("[Server] %s timed out mid-handshake.", peer_str)
        except (ProtocolError, asyncio.IncompleteReadError) as e:
            logger.debug("[Server] Dropping %s: %s", peer_str, e)
        except ConnectionError as e:
            logger.debug("[Server] Connection from %s lost: %s", peer_str, e)
        except Exception:
            logger.exception("[Server] An error occurred while handling %s", peer_str)
        finally:
            if task is not None:
                self._tasks.discard(task)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, peer: str):
        first = (await reader.readexactly(1))[0]
        if first == wire.LEGACY_PING_BYTE:
            logger.debug("[Server] Legacy ping from %s ignored.", peer)
            return

        conn = wire.ClientConnection(reader, writer, self.client_timeout_sec, prefix=bytes([first]))
        packet_id, buf = await wire.read_raw_packet(conn)
        if packet_id != wire.HANDSHAKE_ID:
            raise ProtocolError(f"expected handshake, got packet 0x{packet_id:02x}")
        handshake = wire.Handshake.decode(buf)

        if handshake.next_state == wire.STATE_STATUS:
            await self._handle_status(conn, handshake)
        elif handshake.next_state in (wire.STATE_LOGIN, wire.STATE_TRANSFER):
            await self._handle_login(conn, handshake, peer)
        else:
            raise ProtocolError(f"unknown next state {handshake.next_state}")

    async def _handle_status(self, conn: wire.ClientConnection, handshake: wire.Handshake):
        request = await wire.read_status_packet(conn)
        if not isinstance(request, wire.StatusRequest):
            raise ProtocolError(f"expected status request, got {type(request).__name__}")

        payload = await self.engine.handle_ping(handshake.protocol_version)
        await wire.send_status(conn, payload.to_dict())

        # Answer the follow-up ping so the client can show latency instead of a protocol error.
        # Plain status queries hang up here instead.
        try:
            ping = await wire.read_status_packet(conn)
        except ProtocolError:
            return
        if isinstance(ping, wire.PingPong):
            await wire.send_pong(conn, ping.payload)

    async def _handle_login(self, conn: wire.ClientConnection, handshake: wire.Handshake, peer: str):
        packet_id, buf = await wire.read_raw_packet(conn)
        if packet_id != wire.LOGIN_START_ID:
            raise ProtocolError(f"expected login start, got packet 0x{packet_id:02x}")
        username = wire.decode_login_start(buf)

        outcome = await self.engine.handle_login(
            username=username,
            protocol_version=handshake.protocol_version,
            peer=peer,
        )
        await wire.send_login_disconnect(conn, render_login_message(outcome))
