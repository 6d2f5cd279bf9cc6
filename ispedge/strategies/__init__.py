"""Trace strategy registry.

The default chain, in order: in-process ICMP, the platform trace tool in
ICMP mode, TCP SYN to port 443, plain UDP traceroute, tracepath, mtr, and
finally the two remote trace services.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Optional

from ispedge.config import HOP_WAIT, TCP_PORT
from ispedge.parsers import HopFormat

if TYPE_CHECKING:
    import httpx

    from ispedge.models import ResolveConfig
    from ispedge.strategies.base import TraceStrategy


def local_strategies(config: ResolveConfig, platform: Optional[str] = None) -> list[TraceStrategy]:
    """Subprocess/in-process strategies for *platform* (default: this one)."""
    from ispedge.strategies.local import CommandStrategy, IcmplibStrategy

    platform = platform or sys.platform
    hops = str(config.hop_limit)
    timeout = config.trace_timeout
    strategies: list[TraceStrategy] = [IcmplibStrategy(config.hop_limit, timeout)]

    if platform == "win32":
        strategies.append(CommandStrategy(
            "tracert",
            "tracert",
            ["-d", "-h", hops, "-w", str(HOP_WAIT * 1000), "{target}"],
            HopFormat.TRACERT,
            timeout,
        ))
        return strategies

    strategies.extend([
        CommandStrategy(
            "traceroute-icmp",
            "traceroute",
            ["-n", "-I", "-m", hops, "-w", str(HOP_WAIT), "-q", "1", "{target}"],
            HopFormat.TRACEROUTE,
            timeout,
        ),
        CommandStrategy(
            f"traceroute-tcp{TCP_PORT}",
            "traceroute",
            ["-T", "-p", str(TCP_PORT), "-n", "-m", hops, "-w", str(HOP_WAIT), "-q", "1", "{target}"],
            HopFormat.TRACEROUTE,
            timeout,
        ),
        CommandStrategy(
            "traceroute-udp",
            "traceroute",
            ["-n", "-m", hops, "-w", str(HOP_WAIT), "-q", "1", "{target}"],
            HopFormat.TRACEROUTE,
            timeout,
        ),
        CommandStrategy(
            "tracepath",
            "tracepath",
            ["-n", "-m", hops, "{target}"],
            HopFormat.TRACEPATH,
            timeout,
        ),
        CommandStrategy(
            "mtr",
            "mtr",
            ["-n", "-r", "-c", "1", "-m", hops, "{target}"],
            HopFormat.MTR_REPORT,
            timeout,
        ),
    ])
    return strategies


def remote_strategies(config: ResolveConfig, client: httpx.AsyncClient) -> list[TraceStrategy]:
    """The two trace-as-a-service fallbacks, sharing *client*."""
    from ispedge.strategies.remote import HackerTargetStrategy, IPTraceStrategy

    return [
        IPTraceStrategy(client, config.http_timeout),
        HackerTargetStrategy(client, config.http_timeout),
    ]


def default_strategies(
    config: ResolveConfig,
    client: httpx.AsyncClient,
    platform: Optional[str] = None,
) -> list[TraceStrategy]:
    """The full ordered chain used by :class:`~ispedge.collector.TraceCollector`."""
    strategies = local_strategies(config, platform)
    if config.include_remote:
        strategies.extend(remote_strategies(config, client))
    return strategies
