# cybersuite/scanner/probe.py
"""
Single-port liveness probe.

One bounded, connect-based attempt against one port. The probe strategy
is chosen by port number:

    443        https   TLS handshake (no cert validation, SNI = hostname),
                       then HEAD / over TLS. Open only on an "HTTP/" reply.
    80, 8080   http    Same HEAD probe over plain TCP.
    other      tcp     Open if the peer sends anything (a banner) or keeps
                       the connection up for the grace window after connect.

Every path ends "open" or "closed". There is no unknown state and the
probe never raises: connect errors, resets, early closes and timeouts all
resolve to "closed".

Timers are modelled as events on a small state machine instead of
competing callbacks, so the first signal to resolve the probe wins and
anything arriving later is dropped:

    connecting ──connected──▶ awaiting_signal ──data/http_ok/grace_elapsed──▶ resolved(open)
        │                          │
        └──error/timeout/closed────┴──http_bad/closed/error/timeout─────────▶ resolved(closed)
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Grace window for non-HTTP ports: a connection that survives this long
# without being closed by the peer counts as open.
GRACE_WINDOW_SECONDS = 0.2

# Hard upper bound on top of the per-probe timeout
FALLBACK_SLACK_SECONDS = 0.5

HTTP_PORTS = {80, 8080}
HTTPS_PORTS = {443}

OPEN = "open"
CLOSED = "closed"


class ProbeStrategy(str, Enum):
    TCP = "tcp"
    HTTP = "http"
    HTTPS = "https"


class ProbeState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_SIGNAL = "awaiting_signal"
    RESOLVED = "resolved"


class ProbeEvent(str, Enum):
    CONNECTED = "connected"
    DATA = "data"
    HTTP_OK = "http_ok"
    HTTP_BAD = "http_bad"
    CLOSED = "closed"
    GRACE_ELAPSED = "grace_elapsed"
    ERROR = "error"
    TIMEOUT = "timeout"


# (state, event) → (next state, outcome). Outcome is set only when the
# transition resolves the probe.
TRANSITIONS: Dict[Tuple[ProbeState, ProbeEvent], Tuple[ProbeState, Optional[str]]] = {
    (ProbeState.CONNECTING, ProbeEvent.CONNECTED):           (ProbeState.AWAITING_SIGNAL, None),
    (ProbeState.CONNECTING, ProbeEvent.DATA):                (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.HTTP_OK):             (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.HTTP_BAD):            (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.CLOSED):              (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.GRACE_ELAPSED):       (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.ERROR):               (ProbeState.RESOLVED, CLOSED),
    (ProbeState.CONNECTING, ProbeEvent.TIMEOUT):             (ProbeState.RESOLVED, CLOSED),

    (ProbeState.AWAITING_SIGNAL, ProbeEvent.CONNECTED):      (ProbeState.AWAITING_SIGNAL, None),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.DATA):           (ProbeState.RESOLVED, OPEN),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.HTTP_OK):        (ProbeState.RESOLVED, OPEN),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.HTTP_BAD):       (ProbeState.RESOLVED, CLOSED),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.CLOSED):         (ProbeState.RESOLVED, CLOSED),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.GRACE_ELAPSED):  (ProbeState.RESOLVED, OPEN),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.ERROR):          (ProbeState.RESOLVED, CLOSED),
    (ProbeState.AWAITING_SIGNAL, ProbeEvent.TIMEOUT):        (ProbeState.RESOLVED, CLOSED),
}


class ProbeStateMachine:
    """Per-probe state. The first event that resolves it wins."""

    def __init__(self):
        self.state = ProbeState.CONNECTING
        self.outcome: Optional[str] = None
        self.events: List[ProbeEvent] = []

    @property
    def resolved(self) -> bool:
        return self.state is ProbeState.RESOLVED

    def fire(self, event: ProbeEvent) -> bool:
        """Apply an event. Returns False when the event was ignored."""
        if self.resolved:
            return False
        self.events.append(event)
        self.state, outcome = TRANSITIONS[(self.state, event)]
        if self.resolved:
            self.outcome = outcome
        return True

    def result(self) -> str:
        # Anything that never reached a verdict is closed
        return self.outcome if self.outcome is not None else CLOSED


@dataclass
class PortProbeResult:
    port: int
    status: str

    @property
    def is_open(self) -> bool:
        return self.status == OPEN

    def to_dict(self) -> Dict[str, object]:
        return {"port": self.port, "status": self.status}


def strategy_for_port(port: int) -> ProbeStrategy:
    if port in HTTPS_PORTS:
        return ProbeStrategy.HTTPS
    if port in HTTP_PORTS:
        return ProbeStrategy.HTTP
    return ProbeStrategy.TCP


def _insecure_tls_context() -> ssl.SSLContext:
    # Liveness only: we want the handshake even with a broken certificate
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _host_header(hostname: Optional[str], address: str) -> str:
    host = hostname or address
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

async def probe_port(
    port: int,
    address: str,
    timeout: float,
    hostname_for_header: Optional[str] = None,
    strategy: Optional[ProbeStrategy] = None,
) -> PortProbeResult:
    """
    Probe one port on an already resolved, SSRF-checked address.

    Args:
        port:                Target port
        address:             Resolved IP address to connect to
        timeout:             Per-operation timeout in seconds
        hostname_for_header: Original hostname, used for SNI and the Host header
        strategy:            Override the port-based strategy
    """
    strategy = strategy or strategy_for_port(port)
    machine = ProbeStateMachine()

    try:
        await asyncio.wait_for(
            _run_probe(machine, port, address, timeout, hostname_for_header, strategy),
            timeout + FALLBACK_SLACK_SECONDS,
        )
    except asyncio.TimeoutError:
        machine.fire(ProbeEvent.TIMEOUT)
    except Exception as e:
        logger.debug("Probe %s:%s (%s) failed: %s", address, port, strategy.value, e)
        machine.fire(ProbeEvent.ERROR)

    return PortProbeResult(port=port, status=machine.result())


async def _run_probe(
    machine: ProbeStateMachine,
    port: int,
    address: str,
    timeout: float,
    hostname: Optional[str],
    strategy: ProbeStrategy,
) -> None:
    writer: Optional[asyncio.StreamWriter] = None
    try:
        if strategy is ProbeStrategy.HTTPS:
            conn = asyncio.open_connection(
                address, port,
                ssl=_insecure_tls_context(),
                server_hostname=hostname or address,
            )
        else:
            conn = asyncio.open_connection(address, port)

        try:
            reader, writer = await asyncio.wait_for(conn, timeout)
        except asyncio.TimeoutError:
            machine.fire(ProbeEvent.TIMEOUT)
            return
        except OSError:
            # Refused, unreachable, TLS handshake failure (SSLError is an OSError)
            machine.fire(ProbeEvent.ERROR)
            return

        machine.fire(ProbeEvent.CONNECTED)

        if strategy is ProbeStrategy.TCP:
            await _await_banner_or_grace(machine, reader)
        else:
            await _await_http_reply(machine, reader, writer, _host_header(hostname, address), timeout)
    finally:
        if writer is not None:
            writer.close()


async def _await_banner_or_grace(machine: ProbeStateMachine, reader: asyncio.StreamReader) -> None:
    try:
        chunk = await asyncio.wait_for(reader.read(1), GRACE_WINDOW_SECONDS)
    except asyncio.TimeoutError:
        machine.fire(ProbeEvent.GRACE_ELAPSED)
        return
    except OSError:
        machine.fire(ProbeEvent.ERROR)
        return

    # EOF before the grace window ran out
    machine.fire(ProbeEvent.DATA if chunk else ProbeEvent.CLOSED)


async def _await_http_reply(
    machine: ProbeStateMachine,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    host_header: str,
    timeout: float,
) -> None:
    request = (
        f"HEAD / HTTP/1.0\r\n"
        f"Host: {host_header}\r\n"
        f"Connection: close\r\n\r\n"
    ).encode("ascii", errors="ignore")

    try:
        writer.write(request)
        await asyncio.wait_for(writer.drain(), timeout)
        chunk = await asyncio.wait_for(reader.read(1024), timeout)
    except asyncio.TimeoutError:
        machine.fire(ProbeEvent.TIMEOUT)
        return
    except OSError:
        machine.fire(ProbeEvent.ERROR)
        return

    if not chunk:
        machine.fire(ProbeEvent.CLOSED)
    elif chunk.startswith(b"HTTP/"):
        machine.fire(ProbeEvent.HTTP_OK)
    else:
        machine.fire(ProbeEvent.HTTP_BAD)
