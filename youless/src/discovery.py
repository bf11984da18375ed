"""
Local network discovery of YouLess meters.

Derives a /24 candidate network from every non-loopback IPv4 interface
address, then probes ``base.1`` .. ``base.254`` of each candidate
concurrently on one ``httpx.AsyncClient``. A semaphore caps the number of
in-flight probes; every address is still probed and ``discover()`` only
returns once all probes have finished.

A probe is an ordered chain of classification strategies, first match
wins:

1. model-info endpoint ``/d`` reports a ``model`` (and possibly ``mac``);
2. LS110 endpoint ``/a?f=j`` answers with ``cnt`` and ``pwr``;
3. LS120 endpoint ``/e?f=j`` answers with a list whose first element has
   ``pwr`` or ``net``.

Probes never raise: every network or parse failure just means "no meter
here" for that step.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-112)
- 2026-10-15: Cap probe concurrency with a semaphore (STORY-115)
- 2026-10-17: Reverse lookups on daemon threads so a stuck resolver
  cannot delay the end of a scan (STORY-121)

TODO:
- None
"""

import asyncio
import ipaddress
import logging
import socket
import threading
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import httpx
import psutil

from youless.src.client import (
    LS110_PATH,
    LS120_PATH,
    MODEL_INFO_PATH,
    build_headers,
    meter_url,
    parse_model_info,
    read_body,
)
from youless.src.config import DiscoverySettings
from youless.src.models import MeterModel, ProbeResult, SubnetCandidate

logger = logging.getLogger(__name__)

# Failures a single probe step absorbs.
_PROBE_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)


# ---------------------------------------------------------------------------
# Subnet enumeration
# ---------------------------------------------------------------------------


def enumerate_subnets() -> list[SubnetCandidate]:
    """Candidate /24 networks from the local interface table.

    One candidate per distinct first-three-octet prefix of a non-loopback
    IPv4 interface address, in interface order. Returns an empty list when
    the table cannot be read or holds no usable address.
    """
    try:
        interfaces = psutil.net_if_addrs()
    except OSError:
        logger.warning("Could not read network interfaces", exc_info=True)
        return []

    candidates: list[SubnetCandidate] = []
    seen: set[str] = set()
    for name, addresses in interfaces.items():
        for addr in addresses:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback:
                continue
            base = ".".join(str(ip).split(".")[:3])
            if base in seen:
                continue
            seen.add(base)
            logger.debug("Interface %s contributes network %s.0/24", name, base)
            candidates.append(SubnetCandidate(base=base, netmask=addr.netmask))
    return candidates


# ---------------------------------------------------------------------------
# Probe strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Classification:
    """Outcome of one probe strategy.

    Attributes:
        model: Confirmed model, or ``None`` to continue with the next
            strategy.
        mac: MAC address learned along the way, if any.
    """

    model: str | None = None
    mac: str = ""


ProbeStrategy = Callable[[httpx.AsyncClient, str], Awaitable[Classification]]

_NO_MATCH = Classification()


async def _get_body(client: httpx.AsyncClient, ip: str, path: str) -> Any:
    response = await client.get(meter_url(ip, path))
    if response.status_code != 200:
        return None
    return read_body(response)


async def check_model_info(client: httpx.AsyncClient, ip: str) -> Classification:
    """Confirm a meter that reports its model on ``/d``."""
    info = parse_model_info(await _get_body(client, ip, MODEL_INFO_PATH))
    if not info:
        return _NO_MATCH
    mac = str(info.get("mac") or "")
    model = info.get("model")
    return Classification(model=str(model) if model else None, mac=mac)


async def check_ls110_endpoint(client: httpx.AsyncClient, ip: str) -> Classification:
    """Confirm an LS110 by its ``cnt``/``pwr`` reading."""
    data = await _get_body(client, ip, LS110_PATH)
    if isinstance(data, dict) and "cnt" in data and "pwr" in data:
        return Classification(model=MeterModel.LS110.value)
    return _NO_MATCH


async def check_ls120_endpoint(client: httpx.AsyncClient, ip: str) -> Classification:
    """Confirm an LS120 by its energy array."""
    data = await _get_body(client, ip, LS120_PATH)
    if (
        isinstance(data, list)
        and data
        and isinstance(data[0], dict)
        and ("pwr" in data[0] or "net" in data[0])
    ):
        return Classification(model=MeterModel.LS120.value)
    return _NO_MATCH


PROBE_STRATEGIES: tuple[ProbeStrategy, ...] = (
    check_model_info,
    check_ls110_endpoint,
    check_ls120_endpoint,
)


def _resolve_in_daemon_thread(ip: str) -> asyncio.Future[str | None]:
    """Run ``gethostbyaddr`` for *ip* on a daemon thread.

    The resolver call cannot be interrupted, so it runs outside the event
    loop's executor: an abandoned lookup must not keep ``asyncio.run``
    (or interpreter exit) waiting for it.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str | None] = loop.create_future()

    def settle(hostname: str | None) -> None:
        if not future.done():
            future.set_result(hostname)

    def target() -> None:
        try:
            hostname: str | None = socket.gethostbyaddr(ip)[0]
        except OSError:
            hostname = None
        try:
            loop.call_soon_threadsafe(settle, hostname)
        except RuntimeError:
            # Loop already closed; nobody is waiting any more.
            pass

    threading.Thread(target=target, daemon=True, name=f"youless-dns-{ip}").start()
    return future


async def reverse_lookup(ip: str, timeout: float = 2.0) -> str | None:
    """Best-effort reverse DNS name for *ip*, ``None`` after *timeout*."""
    try:
        return await asyncio.wait_for(_resolve_in_daemon_thread(ip), timeout)
    except TimeoutError:
        logger.debug("Reverse lookup for %s timed out", ip)
        return None


async def probe(
    client: httpx.AsyncClient,
    ip: str,
    *,
    strategies: Iterable[ProbeStrategy] = PROBE_STRATEGIES,
    resolve_names: bool = True,
    dns_timeout: float = 2.0,
) -> ProbeResult | None:
    """Decide whether *ip* hosts a meter and which model.

    Args:
        client: Shared async client; its timeout bounds every request.
        ip: Address to probe.
        strategies: Ordered classification chain.
        resolve_names: Look up a display name for a confirmed meter.
        dns_timeout: Upper bound for the reverse lookup.

    Returns:
        A :class:`ProbeResult` for a confirmed meter, else ``None``.
    """
    mac = ""
    model: str | None = None
    for strategy in strategies:
        try:
            outcome = await strategy(client, ip)
        except _PROBE_ERRORS as exc:
            logger.debug("%s: %s failed: %r", ip, strategy.__name__, exc)
            continue
        mac = mac or outcome.mac
        if outcome.model is not None:
            model = outcome.model
            break

    if model is None:
        return None

    name = await reverse_lookup(ip, dns_timeout) if resolve_names else None
    logger.info("Found %s meter at %s", model, ip, extra={"host": ip, "model": model})
    return ProbeResult(ip=ip, name=name, model=model, mac=mac)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


async def discover(
    settings: DiscoverySettings | None = None,
    *,
    subnets: Iterable[SubnetCandidate] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ProbeResult]:
    """Scan every candidate network and return the meters found.

    Args:
        settings: Discovery options; loaded from the environment if omitted.
        subnets: Networks to scan; defaults to :func:`enumerate_subnets`.
        transport: Optional transport override (tests use
            ``httpx.MockTransport``).

    Returns:
        Confirmed meters in completion order.
    """
    settings = settings or DiscoverySettings()
    candidates = list(enumerate_subnets() if subnets is None else subnets)
    addresses = [ip for candidate in candidates for ip in candidate.hosts()]
    if not addresses:
        logger.info("No local IPv4 networks to scan")
        return []

    logger.info(
        "Scanning %d addresses in %d network(s): %s",
        len(addresses),
        len(candidates),
        ", ".join(f"{c.base}.0/24" for c in candidates),
    )

    results: list[ProbeResult] = []
    semaphore = asyncio.Semaphore(settings.max_concurrency)

    async with httpx.AsyncClient(
        timeout=settings.timeout_s,
        headers=build_headers(),
        transport=transport,
        limits=httpx.Limits(max_connections=settings.max_concurrency),
    ) as client:

        async def scan(ip: str) -> None:
            async with semaphore:
                result = await probe(
                    client,
                    ip,
                    resolve_names=settings.resolve_names,
                    dns_timeout=settings.timeout_s,
                )
            if result is not None:
                results.append(result)

        await asyncio.gather(*(scan(ip) for ip in addresses))

    logger.info("Discovery finished, found %d meter(s)", len(results))
    return results


def discover_blocking(settings: DiscoverySettings | None = None) -> list[ProbeResult]:
    """Synchronous wrapper around :func:`discover` for the daemon CLI."""
    return asyncio.run(discover(settings))
