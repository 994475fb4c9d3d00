"""
Server side of the handshake, status and login-start states, on top of
mcproto's connection, buffer and packet classes. Compression and encryption
are never negotiated, so every packet travels uncompressed.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from mcproto.buffer import Buffer
from mcproto.connection import TCPAsyncConnection
from mcproto.packets import GameState, PacketDirection, async_read_packet, async_write_packet, generate_packet_map
from mcproto.packets.login.login import LoginDisconnect
from mcproto.packets.status.ping import PingPong
from mcproto.packets.status.status import StatusRequest, StatusResponse
from mcproto.protocol.base_io import StructFormat
from mcproto.types.chat import ChatMessage

from core.errors import ProtocolError

LEGACY_PING_BYTE = 0xFE
MAX_USERNAME_LENGTH = 16

# Handshake next-state values
STATE_STATUS = 1
STATE_LOGIN = 2
STATE_TRANSFER = 3

HANDSHAKE_ID = 0x00
LOGIN_START_ID = 0x00


class ClientConnection(TCPAsyncConnection):
    """mcproto TCP connection that first replays bytes already taken off the stream."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, timeout: float, prefix: bytes = b""):
        super().__init__(reader, writer, timeout)
        self._prefix = bytearray(prefix)

    async def _read(self, length: int) -> bytes:
        if not self._prefix:
            return await super()._read(length)
        head = bytes(self._prefix[:length])
        del self._prefix[:length]
        if len(head) == length:
            return head
        return head + await super()._read(length - len(head))

    async def _write(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()


async def _guarded(coro):
    # mcproto reports short reads as IOError, bad ids as KeyError and bad text as ValueError
    try:
        return await coro
    except asyncio.TimeoutError:
        raise
    except (IOError, KeyError, ValueError) as e:
        raise ProtocolError(f"{type(e).__name__}: {e}") from e


async def read_raw_packet(conn: ClientConnection) -> Tuple[int, Buffer]:
    """Next packet as (packet id, body buffer), for packets decoded by hand."""
    async def _read():
        buf = Buffer(await conn.read_bytearray())
        return buf.read_varint(), buf
    return await _guarded(_read())


async def read_status_packet(conn: ClientConnection):
    """Next serverbound status-state packet: StatusRequest or PingPong."""
    packets = generate_packet_map(PacketDirection.SERVERBOUND, GameState.STATUS)
    return await _guarded(async_read_packet(conn, packets))


@dataclass(frozen=True)
class Handshake:
    protocol_version: int
    server_address: str
    server_port: int
    next_state: int

    @classmethod
    def decode(cls, buf: Buffer) -> "Handshake":
        # mcproto's Handshake packet refuses the transfer intent, so read the fields directly
        try:
            return cls(
                protocol_version=buf.read_varint(),
                server_address=buf.read_utf(),
                server_port=buf.read_value(StructFormat.USHORT),
                next_state=buf.read_varint(),
            )
        except (IOError, ValueError) as e:
            raise ProtocolError(f"malformed handshake: {e}") from e


def decode_login_start(buf: Buffer) -> str:
    # Newer clients append a UUID, older ones do not; only the name matters
    try:
        username = buf.read_utf()
    except (IOError, ValueError) as e:
        raise ProtocolError(f"malformed login start: {e}") from e
    if len(username) > MAX_USERNAME_LENGTH:
        raise ProtocolError(f"username longer than {MAX_USERNAME_LENGTH} characters")
    return username


async def send_status(conn: ClientConnection, payload: Dict[str, Any]) -> None:
    await async_write_packet(conn, StatusResponse(data=payload))


async def send_pong(conn: ClientConnection, payload: int) -> None:
    await async_write_packet(conn, PingPong(payload=payload))


async def send_login_disconnect(conn: ClientConnection, message: Any) -> None:
    await async_write_packet(conn, LoginDisconnect(reason=ChatMessage(message)))


__all__ = [
    "ClientConnection",
    "HANDSHAKE_ID",
    "Handshake",
    "LOGIN_START_ID",
    "LEGACY_PING_BYTE",
    "PingPong",
    "STATE_LOGIN",
    "STATE_STATUS",
    "STATE_TRANSFER",
    "StatusRequest",
    "decode_login_start",
    "read_raw_packet",
    "read_status_packet",
    "send_login_disconnect",
    "send_pong",
    "send_status",
]
