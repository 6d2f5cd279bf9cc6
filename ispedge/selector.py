"""Gateway / provider-edge selection for a single hop sequence."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ispedge.addresses import is_non_internet
from ispedge.config import MAX_CANDIDATES, ORG_DENYLIST
from ispedge.enrich import EnrichmentService, normalize_asn
from ispedge.models import EdgeResult, Hop, HopSequence

logger = logging.getLogger(__name__)


class OrgDenylist:
    """Case-insensitive substring match of organisation names.

    A heuristic for spotting cloud/CDN/hosting networks: unlisted providers
    slip through and an ISP whose name contains a listed word is dropped.
    """

    def __init__(self, names: Iterable[str] = ORG_DENYLIST):
        self.names = tuple(n.lower() for n in names if n)

    def matches(self, org: Optional[str]) -> Optional[str]:
        """Return the first listed name found in *org*, or None."""
        if not org:
            return None
        lowered = org.lower()
        for name in self.names:
            if name in lowered:
                return name
        return None


class EdgeSelector:
    """Pick the gateway and the first plausible ISP hop from one trace.

    The gateway is the first non-Internet hop.  Candidates are the
    responding hops after it, minus the destination itself; the earliest
    candidate whose ASN differs from the destination's and whose
    organisation is not denylisted wins.  Only the first
    ``max_candidates`` candidates are enriched.
    """

    def __init__(
        self,
        enricher: EnrichmentService,
        *,
        max_candidates: int = MAX_CANDIDATES,
        denylist: Optional[OrgDenylist] = None,
        allow_degraded: bool = False,
    ):
        self.enricher = enricher
        self.max_candidates = max_candidates
        self.denylist = denylist if denylist is not None else OrgDenylist()
        self.allow_degraded = allow_degraded

    async def select(
        self,
        target: str,
        hops: HopSequence,
        destination_asn: Optional[str] = None,
        target_ip: Optional[str] = None,
    ) -> EdgeResult:
        result = EdgeResult(target=target)
        if not hops.is_usable:
            return result

        gw_idx = next(
            (i for i, h in enumerate(hops) if h.ip is not None and is_non_internet(h.ip)),
            None,
        )
        if gw_idx is not None:
            result.gateway = hops[gw_idx]
        gateway_ip = result.gateway.ip if result.gateway else None

        destination = {target, target_ip} - {None}
        start = gw_idx + 1 if gw_idx is not None else 0
        candidates: list[Hop] = [
            h for h in hops.hops[start:]
            if h.ip is not None and h.ip not in destination and h.ip != gateway_ip
        ]

        dst_asn = normalize_asn(destination_asn)
        degraded: Optional[Hop] = None

        for cand in candidates[:self.max_candidates]:
            if is_non_internet(cand.ip):
                if degraded is None:
                    degraded = cand
                continue

            meta = await self.enricher.enrich(cand.ip)
            if dst_asn and normalize_asn(meta.asn) == dst_asn:
                logger.debug("skip candidate %s (same ASN as destination: %s)", cand.ip, dst_asn)
                continue
            listed = self.denylist.matches(meta.org)
            if listed:
                logger.debug("skip candidate %s (org %r matches %r)", cand.ip, meta.org, listed)
                continue

            result.provider = cand
            return result

        if self.allow_degraded and degraded is not None:
            logger.debug("degraded fallback to non-Internet hop %s", degraded.ip)
            result.provider = degraded
            return result

        first_public = next((c for c in candidates if not is_non_internet(c.ip)), None)
        if first_public is not None:
            logger.debug("no candidate passed filters; using first public hop %s", first_public.ip)
            result.provider = first_public
        return result
