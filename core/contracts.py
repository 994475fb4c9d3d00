# core/contracts.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class LifecycleState(str, Enum):
    OFFLINE = "offline"
    STARTING = "starting"
    STOPPING = "stopping"
    RUNNING = "running"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: Any) -> "LifecycleState":
        if not isinstance(value, str):
            return cls.UNKNOWN
        s = value.strip().lower()
        for member in cls:
            if member.value == s:
                return member
        return cls.UNKNOWN


class EffectiveStatus(str, Enum):
    RUNNING_REACHABLE = "running_reachable"
    RUNNING_UNREACHABLE = "running_unreachable"
    STARTING = "starting"
    STOPPING = "stopping"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @classmethod
    def from_lifecycle(cls, state: LifecycleState) -> "EffectiveStatus":
        """Carry a non-running lifecycle state through unchanged."""
        if state is LifecycleState.RUNNING:
            raise ValueError("running must be reconciled against a liveness probe")
        return cls(state.value)

    @property
    def needs_start(self) -> bool:
        return self in (EffectiveStatus.OFFLINE, EffectiveStatus.RUNNING_UNREACHABLE)


class EventKind(str, Enum):
    PING = "ping"
    LOGIN = "login"


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    status: Optional[Dict[str, Any]] = None
    latency_ms: Optional[float] = None


# ---------- start gate decisions ----------

@dataclass(frozen=True)
class Acquired:
    in_flight_since: float


@dataclass(frozen=True)
class AlreadyInFlight:
    in_flight_since: float


GateDecision = Union[Acquired, AlreadyInFlight]


# ---------- login outcomes ----------

@dataclass(frozen=True)
class ConnectDirectly:
    address: str


@dataclass(frozen=True)
class StartTriggered:
    is_restart: bool = False


@dataclass(frozen=True)
class AlreadyStarting:
    elapsed_minutes: int = 0


@dataclass(frozen=True)
class Busy:
    reason: str = "stopping"


@dataclass(frozen=True)
class Unavailable:
    reason: str = ""


LoginOutcome = Union[ConnectDirectly, StartTriggered, AlreadyStarting, Busy, Unavailable]


@dataclass(frozen=True)
class StatusPayload:
    """Server list ping response body, built in one step and never mutated."""
    version_name: str
    protocol: int
    max_players: int
    online_players: int
    description: Any
    sample: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)
    favicon: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "version": {"name": self.version_name, "protocol": self.protocol},
            "players": {
                "max": self.max_players,
                "online": self.online_players,
                "sample": [dict(p) for p in self.sample],
            },
            "description": self.description,
        }
        if self.favicon:
            body["favicon"] = self.favicon
        return body

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
