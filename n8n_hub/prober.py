"""Connection prober: reachability and credential check for one instance.

``probe`` never raises; every outcome is folded into a ``ProbeResult`` whose
message is suitable for showing to the user as-is.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import socket
from dataclasses import dataclass

import httpx

from n8n_hub.instance_pool import N8nClientPool
from n8n_hub.models import Instance

logger = logging.getLogger("n8n_hub.prober")

PROBE_TIMEOUT = 5.0

MSG_SUCCESS = "Connection successful! API key is valid."
MSG_INVALID_KEY = "API key is invalid."
MSG_HOST_NOT_FOUND = "Could not resolve host. Please check the URL."
MSG_REFUSED = "Connection refused. Is the n8n instance running?"
MSG_TIMEOUT = "Connection timed out. Is the server responding?"

_HOST_NOT_FOUND_PATTERNS = (
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "name resolution",
    "no address associated",
)
_REFUSED_PATTERNS = ("econnrefused", "connection refused", "actively refused")
_TIMEOUT_PATTERNS = ("timeout", "timed out")


@dataclass(frozen=True)
class ProbeResult:
    success: bool
    message: str


def _exception_tree(exc: BaseException) -> list[BaseException]:
    """``exc`` plus everything chained under it, including exception-group members."""
    seen: set[int] = set()
    found: list[BaseException] = []
    pending = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        found.append(current)
        pending.extend(getattr(current, "exceptions", None) or ())
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                pending.append(linked)
    return found


def classify_network_error(exc: BaseException) -> str:
    """Map a transport-level exception onto a user-facing message.

    httpx wraps the socket error (``ConnectError("All connection attempts
    failed")``), so the chained causes are inspected before the text.
    """
    if isinstance(exc, httpx.TimeoutException):
        return MSG_TIMEOUT
    chain = _exception_tree(exc)
    for err in chain:
        if isinstance(err, socket.gaierror):
            return MSG_HOST_NOT_FOUND
        if isinstance(err, ConnectionRefusedError) or getattr(err, "errno", None) == errno.ECONNREFUSED:
            return MSG_REFUSED
        if isinstance(err, (socket.timeout, TimeoutError)):
            return MSG_TIMEOUT
    text = " ".join(str(err) for err in chain).lower()
    if any(p in text for p in _HOST_NOT_FOUND_PATTERNS):
        return MSG_HOST_NOT_FOUND
    if any(p in text for p in _REFUSED_PATTERNS):
        return MSG_REFUSED
    if any(p in text for p in _TIMEOUT_PATTERNS):
        return MSG_TIMEOUT
    return f"Connection error: {str(exc) or type(exc).__name__}"


class ConnectionProber:
    """Probes instances through the shared client pool.

    ``retries`` re-attempts network-level failures only (bad credentials
    and HTTP errors are answered immediately). The default of 0 keeps the
    single-shot behavior.
    """

    def __init__(
        self,
        pool: N8nClientPool,
        timeout: float = PROBE_TIMEOUT,
        retries: int = 0,
        retry_delay: float = 0.5,
    ) -> None:
        self._pool = pool
        self._timeout = timeout
        self._retries = max(0, retries)
        self._retry_delay = retry_delay

    async def probe(self, instance: Instance) -> ProbeResult:
        attempt = 0
        while True:
            result, transient = await self._probe_once(instance)
            if not transient or attempt >= self._retries:
                return result
            attempt += 1
            logger.info(
                "[ConnectionProber] %s: %s (retry %d/%d)",
                instance.id, result.message, attempt, self._retries,
            )
            await asyncio.sleep(self._retry_delay)

    async def _probe_once(self, instance: Instance) -> tuple[ProbeResult, bool]:
        try:
            client = self._pool.get(instance)
            response = await client.ping(self._timeout)
        except httpx.TransportError as exc:
            return ProbeResult(False, classify_network_error(exc)), True
        except Exception as exc:
            logger.warning("[ConnectionProber] %s: unexpected probe failure: %s", instance.id, exc)
            return ProbeResult(False, classify_network_error(exc)), False

        if response.is_success:
            return ProbeResult(True, MSG_SUCCESS), False
        if response.status_code == 401:
            return ProbeResult(False, MSG_INVALID_KEY), False
        return (
            ProbeResult(
                False,
                f"Server returned status {response.status_code}: {response.reason_phrase}",
            ),
            False,
        )
