import asyncio
from types import SimpleNamespace

import pytest

from core import liveness_probe as probe_module
from core.liveness_probe import LivenessProbe


def fake_java_server(behaviour):
    class FakeJavaServer:
        instances = []

        def __init__(self, host, port, timeout=3):
            self.host = host
            self.port = port
            self.timeout = timeout
            FakeJavaServer.instances.append(self)

        async def async_status(self):
            return await behaviour()

    return FakeJavaServer


@pytest.mark.asyncio
async def test_reachable_backend_returns_raw_status(monkeypatch, real_status):
    async def answer():
        return SimpleNamespace(raw=real_status)

    server_cls = fake_java_server(answer)
    monkeypatch.setattr(probe_module, "JavaServer", server_cls)

    result = await LivenessProbe("mc.internal", 25566, timeout_sec=1.0).probe()

    assert result.reachable
    assert result.status == real_status
    assert result.latency_ms is not None
    assert server_cls.instances[0].host == "mc.internal"
    assert server_cls.instances[0].port == 25566


@pytest.mark.asyncio
async def test_connection_error_is_unreachable(monkeypatch):
    async def refuse():
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(probe_module, "JavaServer", fake_java_server(refuse))

    result = await LivenessProbe("mc.internal", 25566).probe()
    assert not result.reachable
    assert result.status is None


@pytest.mark.asyncio
async def test_slow_backend_times_out(monkeypatch):
    async def hang():
        await asyncio.sleep(5)

    monkeypatch.setattr(probe_module, "JavaServer", fake_java_server(hang))

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await LivenessProbe("mc.internal", 25566, timeout_sec=0.05).probe()
    assert not result.reachable
    assert loop.time() - started < 1.0
