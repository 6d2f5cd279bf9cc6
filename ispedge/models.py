"""Data models for ispedge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from ispedge.config import (
    DEFAULT_TARGETS,
    ENRICH_WORKERS,
    HOP_LIMIT,
    HTTP_TIMEOUT,
    MAX_CANDIDATES,
    ORG_DENYLIST,
    TRACE_TIMEOUT,
)


@dataclass(frozen=True)
class Hop:
    """A single hop reported by a trace strategy."""

    ip: Optional[str] = None  # None if hop timed out (*)
    rtt_ms: Optional[float] = None

    @property
    def is_timeout(self) -> bool:
        return self.ip is None


@dataclass(frozen=True)
class HopSequence:
    """Ordered hops produced by one strategy for one target.

    Build with :meth:`from_hops` so consecutive duplicate IPs are
    collapsed; timeout placeholders are kept to preserve hop alignment.
    """

    hops: tuple[Hop, ...] = ()
    source: Optional[str] = None  # strategy label
    vantage: Optional[str] = None  # "local" | "remote"

    @classmethod
    def from_hops(
        cls,
        hops: Iterable[Hop],
        source: Optional[str] = None,
        vantage: Optional[str] = None,
    ) -> HopSequence:
        return cls(hops=collapse_duplicates(hops), source=source, vantage=vantage)

    def __iter__(self) -> Iterator[Hop]:
        return iter(self.hops)

    def __len__(self) -> int:
        return len(self.hops)

    def __getitem__(self, index: int) -> Hop:
        return self.hops[index]

    @property
    def responding(self) -> list[Hop]:
        return [h for h in self.hops if h.ip is not None]

    @property
    def is_usable(self) -> bool:
        return bool(self.responding)

    @property
    def ips(self) -> list[Optional[str]]:
        return [h.ip for h in self.hops]


def collapse_duplicates(hops: Iterable[Hop]) -> tuple[Hop, ...]:
    """Drop a hop whose IP repeats the previous hop's IP.

    Timeouts never collapse into each other.
    """
    out: list[Hop] = []
    for hop in hops:
        if out and hop.ip is not None and hop.ip == out[-1].ip:
            continue
        out.append(hop)
    return tuple(out)


@dataclass
class EnrichmentRecord:
    """What is known about one IP: rDNS, ASN, org and rough location."""

    ip: str
    hostname: Optional[str] = None
    asn: Optional[str] = None  # normalised, e.g. "AS13335"
    org: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass
class TraceAttempt:
    """Diagnostic record of one strategy tried against one target."""

    strategy: str
    target: str
    ok: bool
    hop_count: int = 0
    raw_preview: str = ""
    note: Optional[str] = None


@dataclass
class EdgeResult:
    """Per-target classification outcome."""

    target: str
    gateway: Optional[Hop] = None
    provider: Optional[Hop] = None


@dataclass
class TargetReport:
    """Everything observed for one trace destination."""

    target: str
    target_ip: Optional[str] = None
    destination_asn: Optional[str] = None
    hops: HopSequence = field(default_factory=HopSequence)
    edge: Optional[EdgeResult] = None
    error: Optional[str] = None


@dataclass
class ResolveConfig:
    """Options for one resolution run."""

    targets: list[str] = field(default_factory=lambda: list(DEFAULT_TARGETS))
    allow_degraded: bool = False
    hop_limit: int = HOP_LIMIT
    trace_timeout: float = TRACE_TIMEOUT
    http_timeout: float = HTTP_TIMEOUT
    max_candidates: int = MAX_CANDIDATES
    enrich_workers: int = ENRICH_WORKERS
    org_denylist: tuple[str, ...] = ORG_DENYLIST
    include_remote: bool = True


@dataclass
class ResolutionResult:
    """Final answer of one resolution run."""

    targets: list[str] = field(default_factory=list)
    gateway: Optional[EnrichmentRecord] = None
    gateway_rtt_ms: Optional[float] = None
    provider: Optional[EnrichmentRecord] = None
    provider_rtt_ms: Optional[float] = None
    votes: dict[str, int] = field(default_factory=dict)
    gateway_votes: dict[str, int] = field(default_factory=dict)
    traces: list[TargetReport] = field(default_factory=list)
    diagnostics: list[TraceAttempt] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.provider is not None
