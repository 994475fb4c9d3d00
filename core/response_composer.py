"""
Pure mapping from a reconciled status to the two outbound shapes: the server
list ping payload and the login disconnect message. Nothing here performs I/O
or touches the start gate.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from core.contracts import (
    Acquired,
    AlreadyInFlight,
    AlreadyStarting,
    Busy,
    ConnectDirectly,
    EffectiveStatus,
    GateDecision,
    LoginOutcome,
    StartTriggered,
    StatusPayload,
    Unavailable,
)

DEFAULT_VERSION_NAME = "CraftOnDemand"
DEFAULT_MAX_PLAYERS = 20

PING_OFFLINE = "Server is Offline — join to start it!"
PING_STARTING = "Server is starting… (started {minutes} min ago)"
PING_STOPPING = "Server is stopping — please wait before trying again."
PING_UNRESPONSIVE = "Server is unresponsive — join to attempt a restart."
PING_ERROR = "Error communicating with the control plane — contact an administrator."

LOGIN_CONNECT_DIRECTLY = "The server is online! Connect directly to {address}."
LOGIN_STARTING = "The server is starting up! Refresh and try again shortly."
LOGIN_RESTARTING = "The server was unresponsive; a restart has been triggered. Try again shortly."
LOGIN_ALREADY_STARTING = "The server is already starting (started {minutes} min ago) — please wait."
LOGIN_STOPPING = "The server is stopping — please wait before trying again."
LOGIN_UNAVAILABLE = "The server is currently unavailable — contact an administrator."


def describe_status(status: EffectiveStatus, elapsed_minutes: int = 0) -> str:
    if status is EffectiveStatus.OFFLINE:
        return PING_OFFLINE
    if status is EffectiveStatus.STARTING:
        return PING_STARTING.format(minutes=int(elapsed_minutes))
    if status is EffectiveStatus.STOPPING:
        return PING_STOPPING
    if status is EffectiveStatus.RUNNING_UNREACHABLE:
        return PING_UNRESPONSIVE
    if status is EffectiveStatus.UNKNOWN:
        return PING_ERROR
    raise ValueError(f"no placeholder description for {status!r}")


def _as_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _section(real: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = real.get(key)
    return value if isinstance(value, Mapping) else {}


def _from_real_payload(
    real: Mapping[str, Any],
    protocol_version: int,
    version_name: str,
    max_players: int,
) -> StatusPayload:
    # A backend mid-boot or behind a plugin can send odd shapes; fall back field by field
    version = _section(real, "version")
    players = _section(real, "players")
    sample = players.get("sample")
    if not isinstance(sample, (list, tuple)):
        sample = []
    favicon = real.get("favicon")
    return StatusPayload(
        version_name=str(version.get("name") or version_name),
        protocol=_as_int(version.get("protocol"), int(protocol_version)),
        max_players=_as_int(players.get("max"), int(max_players)),
        online_players=_as_int(players.get("online"), 0),
        sample=tuple(dict(p) for p in sample if isinstance(p, Mapping)),
        description=real.get("description", ""),
        favicon=favicon if isinstance(favicon, str) and favicon else None,
    )


def compose_ping_payload(
    status: EffectiveStatus,
    elapsed_minutes: int,
    protocol_version: int,
    real_payload: Optional[Mapping[str, Any]] = None,
    *,
    version_name: str = DEFAULT_VERSION_NAME,
    max_players: int = DEFAULT_MAX_PLAYERS,
) -> StatusPayload:
    if status is EffectiveStatus.RUNNING_REACHABLE:
        if real_payload is None:
            raise ValueError("a reachable backend needs its real discovery payload")
        return _from_real_payload(real_payload, protocol_version, version_name, max_players)

    # Echo the client's protocol so every client version renders the text
    return StatusPayload(
        version_name=version_name,
        protocol=int(protocol_version),
        max_players=int(max_players),
        online_players=0,
        description={"text": describe_status(status, elapsed_minutes)},
    )


def compose_login_outcome(
    status: EffectiveStatus,
    gate_decision: Optional[GateDecision],
    elapsed_minutes: int,
    backend_address: str,
    start_succeeded: bool = True,
) -> LoginOutcome:
    """
    Decide which message a login attempt gets.

    ``gate_decision`` only matters for statuses that need a start; it is the
    result of the engine's ``try_acquire``. ``start_succeeded`` reports the
    outcome of the start command the engine issued after acquiring.
    """
    if status is EffectiveStatus.RUNNING_REACHABLE:
        return ConnectDirectly(backend_address)

    if status.needs_start:
        if isinstance(gate_decision, AlreadyInFlight):
            return AlreadyStarting(int(elapsed_minutes))
        if isinstance(gate_decision, Acquired):
            if not start_succeeded:
                return Unavailable("start command failed")
            return StartTriggered(is_restart=status is EffectiveStatus.RUNNING_UNREACHABLE)
        raise ValueError(f"{status.value} login needs a gate decision")

    if status is EffectiveStatus.STARTING:
        return AlreadyStarting(int(elapsed_minutes))
    if status is EffectiveStatus.STOPPING:
        return Busy("stopping")
    return Unavailable("control plane error")


def render_login_message(outcome: LoginOutcome) -> Dict[str, str]:
    if isinstance(outcome, ConnectDirectly):
        text = LOGIN_CONNECT_DIRECTLY.format(address=outcome.address)
    elif isinstance(outcome, StartTriggered):
        text = LOGIN_RESTARTING if outcome.is_restart else LOGIN_STARTING
    elif isinstance(outcome, AlreadyStarting):
        text = LOGIN_ALREADY_STARTING.format(minutes=outcome.elapsed_minutes)
    elif isinstance(outcome, Busy):
        text = LOGIN_STOPPING
    elif isinstance(outcome, Unavailable):
        text = LOGIN_UNAVAILABLE
    else:
        raise TypeError(f"unknown login outcome: {outcome!r}")
    return {"text": text}
