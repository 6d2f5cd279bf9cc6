"""Cross-target resolution: trace several neutral destinations and vote.

Public API:
    ProviderEdgeResolver  -- one configured resolver, injectable collaborators
    resolve               -- convenience wrapper for a single run
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import dns.asyncresolver
import dns.exception
import httpx

from ispedge.addresses import is_valid_host, looks_like_ip
from ispedge.collector import TraceCollector
from ispedge.config import USER_AGENT
from ispedge.enrich import EnrichmentService
from ispedge.errors import InvalidTarget
from ispedge.models import (
    EdgeResult,
    ResolutionResult,
    ResolveConfig,
    TargetReport,
)
from ispedge.selector import EdgeSelector, OrgDenylist
from ispedge.stats import VoteTally, add_vote, median_rtt, most_common, pick_winner
from ispedge.strategies import default_strategies
from ispedge.strategies.base import TraceStrategy

logger = logging.getLogger(__name__)

NO_PROVIDER_MESSAGE = "Could not identify provider-edge hop (intermediate hops likely filtered)."


def validate_targets(targets: Sequence[str]) -> list[str]:
    """Strip and check *targets*; raise :class:`InvalidTarget` on bad input."""
    cleaned = [t.strip() for t in targets if t and t.strip()]
    if not cleaned:
        raise InvalidTarget("at least one target is required")
    bad = [t for t in cleaned if not is_valid_host(t)]
    if bad:
        raise InvalidTarget(f"invalid target(s): {', '.join(bad)}")
    return cleaned


class ProviderEdgeResolver:
    """Run trace → classify per target, then vote across targets.

    Targets are processed one after another; each strategy attempt is
    individually time-bounded, so the run as a whole is too.  All state
    (enrichment cache, diagnostics) is created per :meth:`resolve` call.

    *strategies*, *client* and *dns_resolver* may be supplied to replace
    the default subprocess / network collaborators.
    """

    def __init__(
        self,
        config: Optional[ResolveConfig] = None,
        *,
        strategies: Optional[Sequence[TraceStrategy]] = None,
        client: Optional[httpx.AsyncClient] = None,
        dns_resolver: Any = None,
        geo_apis: Optional[Sequence[str]] = None,
    ):
        self.config = config or ResolveConfig()
        self.strategies = strategies
        self.client = client
        self.dns_resolver = dns_resolver
        self.geo_apis = geo_apis

    async def resolve(self, targets: Optional[Sequence[str]] = None) -> ResolutionResult:
        targets = validate_targets(targets if targets is not None else self.config.targets)

        client = self.client
        owns_client = client is None
        if owns_client:
            client = httpx.AsyncClient(
                timeout=self.config.http_timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        enricher_kwargs: dict = {
            "workers": self.config.enrich_workers,
            "resolver": self.dns_resolver,
        }
        if self.geo_apis is not None:
            enricher_kwargs["geo_apis"] = self.geo_apis
        enricher = EnrichmentService(client, **enricher_kwargs)

        try:
            return await self._run(targets, client, enricher)
        finally:
            # lookups must not outlive the client they use
            await enricher.aclose()
            if owns_client:
                await client.aclose()

    async def _run(
        self,
        targets: list[str],
        client: httpx.AsyncClient,
        enricher: EnrichmentService,
    ) -> ResolutionResult:
        strategies = self.strategies
        if strategies is None:
            strategies = default_strategies(self.config, client)

        collector = TraceCollector(strategies)
        selector = EdgeSelector(
            enricher,
            max_candidates=self.config.max_candidates,
            denylist=OrgDenylist(self.config.org_denylist),
            allow_degraded=self.config.allow_degraded,
        )

        reports: list[TargetReport] = []
        for target in targets:
            report = TargetReport(target=target)
            try:
                await self._trace_target(report, collector, selector, enricher)
            except Exception as exc:
                logger.warning("Resolution failed for %s: %s", target, exc)
                report.error = f"error: {exc}"
            reports.append(report)

        return await self._aggregate(targets, reports, collector, enricher)

    async def _trace_target(
        self,
        report: TargetReport,
        collector: TraceCollector,
        selector: EdgeSelector,
        enricher: EnrichmentService,
    ) -> None:
        report.target_ip = await self._resolve_host(report.target, enricher)
        report.hops = await collector.collect(report.target)
        if not report.hops.is_usable:
            report.error = "no-hops"
            return

        # The destination's own ASN, so its network is never taken for the ISP
        if report.target_ip:
            dst_meta = await enricher.enrich(report.target_ip)
            report.destination_asn = dst_meta.asn
        logger.debug("dst ASN for %s = %s", report.target, report.destination_asn)

        report.edge = await selector.select(
            report.target,
            report.hops,
            destination_asn=report.destination_asn,
            target_ip=report.target_ip,
        )
        if report.edge.provider is None:
            report.error = "no-candidate"

    async def _resolve_host(self, target: str, enricher: EnrichmentService) -> Optional[str]:
        """IP literal as-is; hostnames via an A query (None on failure)."""
        if looks_like_ip(target):
            return target.strip("[]")
        resolver = self.dns_resolver
        if resolver is None:
            resolver = dns.asyncresolver.Resolver()
            resolver.lifetime = enricher.timeout
        try:
            answer = await resolver.resolve(target, "A")
            return str(answer[0])
        except (dns.exception.DNSException, IndexError) as exc:
            logger.debug("Could not resolve %s: %s", target, exc)
            return None

    async def _aggregate(
        self,
        targets: list[str],
        reports: list[TargetReport],
        collector: TraceCollector,
        enricher: EnrichmentService,
    ) -> ResolutionResult:
        tally: VoteTally = {}
        gateway_ips: list[str] = []
        for report in reports:
            edge = report.edge or EdgeResult(target=report.target)
            if edge.provider is not None and edge.provider.ip:
                add_vote(tally, edge.provider.ip, edge.provider.rtt_ms)
            if edge.gateway is not None and edge.gateway.ip:
                gateway_ips.append(edge.gateway.ip)

        result = ResolutionResult(
            targets=list(targets),
            votes={ip: len(obs) for ip, obs in tally.items()},
            gateway_votes={ip: gateway_ips.count(ip) for ip in dict.fromkeys(gateway_ips)},
            traces=reports,
            diagnostics=list(collector.attempts),
        )

        provider_ip = pick_winner(tally)
        gateway_ip = most_common(gateway_ips)
        records = await enricher.enrich_many([ip for ip in (provider_ip, gateway_ip) if ip])

        if gateway_ip:
            result.gateway = records[gateway_ip]
            result.gateway_rtt_ms = next(
                (
                    r.edge.gateway.rtt_ms
                    for r in reports
                    if r.edge and r.edge.gateway and r.edge.gateway.ip == gateway_ip
                    and r.edge.gateway.rtt_ms is not None
                ),
                None,
            )
        if provider_ip:
            result.provider = records[provider_ip]
            result.provider_rtt_ms = median_rtt(tally[provider_ip])
        else:
            result.error = NO_PROVIDER_MESSAGE
        return result


async def resolve(
    targets: Optional[Sequence[str]] = None,
    config: Optional[ResolveConfig] = None,
) -> ResolutionResult:
    """Resolve the provider edge from this machine with default collaborators."""
    return await ProviderEdgeResolver(config).resolve(targets)
