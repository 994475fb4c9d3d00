"""
Shared fakes for the gateway tests.

The engine only talks to its collaborators through small async methods, so
plain classes are enough to script lifecycle sequences, probe outcomes and
start-command failures.
"""
import asyncio

import pytest

from core.contracts import LifecycleState, ProbeResult
from core.decision_engine import DecisionEngine
from core.errors import StartCommandError
from core.start_gate import StartGate

REAL_STATUS = {
    "version": {"name": "Paper 1.20.4", "protocol": 765},
    "players": {"max": 50, "online": 3, "sample": [{"name": "Alex", "id": "00000000-0000-0000-0000-000000000001"}]},
    "description": {"text": "A Minecraft Server"},
    "favicon": "data:image/png;base64,AAAA",
}


class FakeOracle:
    """Returns the scripted states in order, repeating the last one."""

    def __init__(self, *states):
        self.states = list(states) or [LifecycleState.OFFLINE]
        self.calls = 0

    async def get_status(self):
        self.calls += 1
        await asyncio.sleep(0)
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]


class FakeProbe:
    def __init__(self, reachable=True, status=None):
        self.reachable = reachable
        self.status = REAL_STATUS if status is None else status
        self.calls = 0

    async def probe(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.reachable:
            return ProbeResult(reachable=True, status=self.status, latency_ms=1.0)
        return ProbeResult(reachable=False)


class FakeControlPlane:
    def __init__(self, fail=False, error=None):
        self.fail = fail
        self.error = error
        self.start_calls = 0

    async def send_start(self):
        self.start_calls += 1
        await asyncio.sleep(0.01)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise StartCommandError("panel said no", status=500)


class ManualHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Records expiry timers instead of arming them; tests fire them by hand."""

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def last(self):
        return self.handles[-1]

    def fire(self, handle=None):
        handle = handle or self.last
        if not handle.cancelled:
            handle.callback()


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def real_status():
    return REAL_STATUS


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def gate(clock, scheduler):
    return StartGate(cooldown_sec=30.0, clock=clock, scheduler=scheduler)


@pytest.fixture
def make_engine(gate):
    def _make(*states, reachable=True, fail_start=False, start_error=None, oracle=None, probe_status=None):
        control_plane = FakeControlPlane(fail=fail_start, error=start_error)
        engine = DecisionEngine(
            status_oracle=oracle or FakeOracle(*states),
            liveness_probe=FakeProbe(reachable=reachable, status=probe_status),
            start_gate=gate,
            control_plane=control_plane,
            public_address="play.example.net:25565",
        )
        return engine, control_plane
    return _make
