from __future__ import annotations

import asyncio
import ipaddress
from typing import Awaitable, Callable
from urllib.parse import urlsplit, urlunsplit

import structlog

from synthetic_probe.config import MonitoringTarget
from synthetic_probe.errors import ResolutionError


logger = structlog.get_logger(__name__)

HostResolver = Callable[[str], Awaitable[set[str]]]
TargetBuilder = Callable[[str], MonitoringTarget]


def _dns_query_sync(*, host: str, record_type: str, timeout_seconds: float) -> list[str]:
    # dnspython is imported lazily; nothing needs it unless replica checking is enabled.
    import dns.resolver  # type: ignore

    r = dns.resolver.Resolver(configure=True)
    r.timeout = max(0.5, float(timeout_seconds))
    r.lifetime = max(0.5, float(timeout_seconds))
    try:
        ans = r.resolve(host, record_type)
    except dns.resolver.NoAnswer:
        # No AAAA (or A) record is a normal outcome.
        return []
    out: list[str] = []
    for rr in ans:
        s = str(rr or "").strip()
        if s:
            out.append(s)
    return out


async def resolve_host_ips(host: str, *, timeout_seconds: float = 5.0) -> set[str]:
    """Return every A and AAAA address of ``host``.

    Raises ``ResolutionError`` when neither record type yields an address.
    """
    cleaned = str(host or "").strip().strip("[]").lower()
    try:
        return {str(ipaddress.ip_address(cleaned))}
    except ValueError:
        pass

    ips: set[str] = set()
    errors: list[str] = []
    for record_type in ("A", "AAAA"):
        try:
            found = await asyncio.to_thread(
                _dns_query_sync, host=cleaned, record_type=record_type, timeout_seconds=timeout_seconds
            )
        except Exception as exc:
            errors.append(f"{record_type}: {type(exc).__name__}: {exc}")
            continue
        ips.update(found)

    if not ips:
        raise ResolutionError(cleaned, "; ".join(errors) or "no_dns_records")
    return ips


def replace_host(base_url: str, ip: str) -> str:
    """Swap the host of ``base_url`` for ``ip``, keeping scheme and port and dropping the rest."""
    parts = urlsplit(base_url)
    host = f"[{ip}]" if ":" in ip else ip
    netloc = f"{host}:{parts.port}" if parts.port is not None else host
    return urlunsplit((parts.scheme, netloc, "", "", ""))


def _ip_sort_key(ip: str) -> tuple[int, int]:
    addr = ipaddress.ip_address(ip)
    return addr.version, int(addr)


async def expand_target(
    target: MonitoringTarget,
    create_target: TargetBuilder,
    resolve: HostResolver = resolve_host_ips,
) -> list[MonitoringTarget]:
    """Turn one configured target into the concrete targets to check.

    Without ``check_domain_ips`` that is the target itself. Otherwise it is one
    target per distinct resolved address, built with ``create_target``.
    """
    if not target.check_domain_ips:
        return [target]

    ips = await resolve(target.host)
    try:
        expanded = [create_target(replace_host(target.base_url, ip)) for ip in sorted(ips, key=_ip_sort_key)]
    except ValueError as exc:
        raise ResolutionError(target.host, f"cannot build replica URL: {exc}") from exc
    logger.info("Resolved replicas", host=target.host, addresses=[t.base_url for t in expanded])
    return expanded
