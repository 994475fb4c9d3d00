import asyncio
import contextlib
import uuid

import pytest
from mcproto.buffer import Buffer
from mcproto.connection import TCPAsyncConnection
from mcproto.packets import GameState, PacketDirection, async_read_packet, async_write_packet, generate_packet_map
from mcproto.packets.handshaking.handshake import Handshake, NextState
from mcproto.packets.login.login import LoginDisconnect, LoginStart
from mcproto.packets.status.ping import PingPong
from mcproto.packets.status.status import StatusRequest, StatusResponse
from mcproto.protocol.base_io import StructFormat
from mcproto.types.uuid import UUID

from core.contracts import EffectiveStatus, StartTriggered
from core.gateway import GatewayServer
from core.liveness_probe import LivenessProbe
from core.response_composer import PING_OFFLINE, compose_ping_payload

STATUS_REPLIES = generate_packet_map(PacketDirection.CLIENTBOUND, GameState.STATUS)
LOGIN_REPLIES = generate_packet_map(PacketDirection.CLIENTBOUND, GameState.LOGIN)


class StubEngine:
    def __init__(self, delay=0.0):
        self.delay = delay
        self.pings = []
        self.logins = []

    async def handle_ping(self, protocol_version):
        self.pings.append(protocol_version)
        return compose_ping_payload(EffectiveStatus.OFFLINE, 0, protocol_version)

    async def handle_login(self, username=None, protocol_version=None, peer=None):
        self.logins.append((username, protocol_version, peer))
        await asyncio.sleep(self.delay)
        return StartTriggered(is_restart=False)


@contextlib.asynccontextmanager
async def running_gateway(engine, client_timeout_sec=5.0):
    gateway = GatewayServer(engine, "127.0.0.1", 0, client_timeout_sec=client_timeout_sec)
    await gateway.start()
    try:
        yield gateway
    finally:
        await gateway.close()


async def client_for(gateway):
    return await TCPAsyncConnection.make_client(("127.0.0.1", gateway.bound_port), 2.0)


def handshake(next_state, protocol=765):
    return Handshake(protocol_version=protocol, server_address="localhost", server_port=25565, next_state=next_state)


async def write_raw(conn, packet_id, body):
    inner = Buffer()
    inner.write_varint(packet_id)
    inner.write(body)
    await conn.write_bytearray(inner)


async def hung_up(conn):
    return await asyncio.wait_for(conn.reader.read(), timeout=2.0) == b""


@pytest.mark.asyncio
async def test_status_request_and_ping_pong():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        conn = await client_for(gw)
        await async_write_packet(conn, handshake(NextState.STATUS))
        await async_write_packet(conn, StatusRequest())

        response = await async_read_packet(conn, STATUS_REPLIES)
        assert isinstance(response, StatusResponse)
        assert response.data["description"] == {"text": "Server is Offline — join to start it!"}
        assert response.data["version"]["protocol"] == 765

        await async_write_packet(conn, PingPong(payload=424242))
        pong = await async_read_packet(conn, STATUS_REPLIES)
        assert pong == PingPong(payload=424242)
        await conn.close()
    assert engine.pings == [765]


@pytest.mark.asyncio
async def test_login_ends_with_disconnect_message():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        conn = await client_for(gw)
        await async_write_packet(conn, handshake(NextState.LOGIN, protocol=763))
        await async_write_packet(conn, LoginStart(username="Steve", uuid=UUID(bytes=uuid.uuid4().bytes)))

        reply = await async_read_packet(conn, LOGIN_REPLIES)
        assert isinstance(reply, LoginDisconnect)
        assert reply.reason.raw == {"text": "The server is starting up! Refresh and try again shortly."}
        assert await hung_up(conn)
        await conn.close()

    username, protocol, peer = engine.logins[0]
    assert (username, protocol) == ("Steve", 763)
    assert peer.startswith("127.0.0.1:")


@pytest.mark.asyncio
async def test_transfer_handshake_and_uuidless_login_start():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        conn = await client_for(gw)
        body = Buffer()
        body.write_varint(766)
        body.write_utf("localhost")
        body.write_value(StructFormat.USHORT, 25565)
        body.write_varint(3)
        await write_raw(conn, 0x00, body)
        name = Buffer()
        name.write_utf("Notch")
        await write_raw(conn, 0x00, name)

        reply = await async_read_packet(conn, LOGIN_REPLIES)
        assert isinstance(reply, LoginDisconnect)
        await conn.close()
    assert engine.logins[0][:2] == ("Notch", 766)


@pytest.mark.asyncio
async def test_legacy_ping_is_dropped():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        conn = await client_for(gw)
        await conn.write(b"\xfe\x01")
        assert await hung_up(conn)
        await conn.close()
    assert engine.pings == [] and engine.logins == []


@pytest.mark.asyncio
async def test_garbage_does_not_kill_the_listener():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        conn = await client_for(gw)
        await write_raw(conn, 0x05, b"junk")
        assert await hung_up(conn)
        await conn.close()

        conn = await client_for(gw)
        await async_write_packet(conn, handshake(NextState.STATUS))
        await async_write_packet(conn, StatusRequest())
        assert isinstance(await async_read_packet(conn, STATUS_REPLIES), StatusResponse)
        await conn.close()


@pytest.mark.asyncio
async def test_stalled_client_is_disconnected():
    engine = StubEngine()
    async with running_gateway(engine, client_timeout_sec=0.1) as gw:
        conn = await client_for(gw)
        await async_write_packet(conn, handshake(NextState.STATUS))
        assert await hung_up(conn)
        await conn.close()
    assert engine.pings == []


@pytest.mark.asyncio
async def test_liveness_check_reads_gateway_status_over_loopback():
    engine = StubEngine()
    async with running_gateway(engine) as gw:
        result = await LivenessProbe("127.0.0.1", gw.bound_port, timeout_sec=2.0).probe()

    assert result.reachable
    assert result.status["description"] == {"text": PING_OFFLINE}
    assert result.status["players"]["max"] == 20
    assert len(engine.pings) == 1
