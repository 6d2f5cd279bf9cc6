"""Per-run IP enrichment: reverse DNS, ASN, organisation and rough location.

One :class:`EnrichmentService` lives for exactly one resolution run and
is closed with :meth:`EnrichmentService.aclose` when the run ends.  It
looks each IP up at most once; callers asking for an IP that is already
in flight share the same pending lookup.  Every external failure is
absorbed, so a lookup always returns a (possibly ip-only) record.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.reversename
import httpx

from ispedge.addresses import is_non_internet
from ispedge.config import (
    CYMRU_ASN_ZONE,
    CYMRU_ORIGIN_ZONE,
    ENRICH_TIMEOUT,
    ENRICH_WORKERS,
    GEO_APIS,
    USER_AGENT,
)
from ispedge.models import EnrichmentRecord

logger = logging.getLogger(__name__)

_ASN_RE = re.compile(r"^(?:AS)?\s*(\d+)", re.IGNORECASE)


def normalize_asn(value: Any) -> Optional[str]:
    """Normalise ``13335``, ``"13335"``, ``"as13335"`` or ``"AS13335 Cloudflare"`` to ``"AS13335"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return f"AS{value}"
    match = _ASN_RE.match(str(value).strip())
    return f"AS{match.group(1)}" if match else None


def _float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Geo/ASN API response parsers
# ---------------------------------------------------------------------------

def _parse_ipapi(data: dict) -> dict:
    """Parse ipapi.co response."""
    if data.get("error"):
        logger.debug("ipapi.co refused: %s", data.get("reason"))
        return {}
    return {
        "asn": normalize_asn(data.get("asn")),
        "org": data.get("org") or data.get("org_name") or data.get("asn_org"),
        "city": data.get("city"),
        "region": data.get("region"),
        "country": data.get("country_name") or data.get("country"),
        "lat": _float(data.get("latitude")),
        "lon": _float(data.get("longitude")),
    }


def _parse_ipapi_com(data: dict) -> dict:
    """Parse ip-api.com response."""
    if data.get("status") == "fail":
        logger.debug("ip-api.com refused: %s", data.get("message"))
        return {}

    as_field = data.get("as") or ""
    as_name = as_field.split(" ", 1)[1] if " " in as_field else None
    return {
        "asn": normalize_asn(as_field),
        "org": data.get("org") or data.get("isp") or as_name,
        "city": data.get("city"),
        "region": data.get("regionName"),
        "country": data.get("country"),
        "lat": _float(data.get("lat")),
        "lon": _float(data.get("lon")),
    }


def _parse_geo(url: str, data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    if "ip-api.com" in url:
        return _parse_ipapi_com(data)
    return _parse_ipapi(data)


def _merge(record: EnrichmentRecord, fields: dict) -> None:
    """Fill fields of *record* that are still unset; never overwrite."""
    for name, value in fields.items():
        if value in (None, ""):
            continue
        if getattr(record, name) is None:
            setattr(record, name, value)


class EnrichmentService:
    """Memoising, request-coalescing IP enrichment for one run.

    Parameters
    ----------
    client:
        Shared HTTP client for the geo/ASN APIs.
    workers:
        Upper bound on lookups running at the same time.
    resolver:
        dnspython-compatible async resolver for PTR and Team Cymru
        queries; a fresh :class:`dns.asyncresolver.Resolver` by default.
    cymru:
        Fall back to Team Cymru DNS when no API returned an ASN.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        workers: int = ENRICH_WORKERS,
        timeout: float = ENRICH_TIMEOUT,
        geo_apis: Sequence[str] = GEO_APIS,
        resolver: Any = None,
        cymru: bool = True,
    ):
        self.client = client
        self.timeout = timeout
        self.geo_apis = list(geo_apis)
        self.cymru = cymru
        self._resolver = resolver
        self._semaphore = asyncio.Semaphore(workers)
        self._tasks: dict[str, asyncio.Future] = {}

    @property
    def resolver(self) -> Any:
        if self._resolver is None:
            self._resolver = dns.asyncresolver.Resolver()
            self._resolver.lifetime = self.timeout
        return self._resolver

    @property
    def lookups(self) -> int:
        """Number of distinct IPs looked up so far."""
        return len(self._tasks)

    async def enrich(self, ip: str) -> EnrichmentRecord:
        task = self._tasks.get(ip)
        if task is None:
            task = asyncio.ensure_future(self._lookup(ip))
            self._tasks[ip] = task
        # shield: one cancelled caller must not cancel the lookup for the others
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel lookups still in flight and wait for them to finish."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("Cancelling %d unfinished lookup(s)", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    async def enrich_many(self, ips: Sequence[str]) -> dict[str, EnrichmentRecord]:
        unique = list(dict.fromkeys(ip for ip in ips if ip))
        records = await asyncio.gather(*(self.enrich(ip) for ip in unique))
        return dict(zip(unique, records))

    async def _lookup(self, ip: str) -> EnrichmentRecord:
        record = EnrichmentRecord(ip=ip)
        async with self._semaphore:
            if is_non_internet(ip):
                record.hostname = await self._reverse_dns(ip)
                return record

            # rDNS and the API chain are independent
            record.hostname, _ = await asyncio.gather(
                self._reverse_dns(ip),
                self._fill_from_apis(record),
            )
        return record

    async def _fill_from_apis(self, record: EnrichmentRecord) -> None:
        for url in self.geo_apis:
            _merge(record, await self._query_api(url, record.ip))
            if record.asn and record.org:
                return
        if self.cymru and record.asn is None:
            _merge(record, await self._cymru_lookup(record.ip))

    async def _query_api(self, url: str, ip: str) -> dict:
        target = url.format(ip=ip)
        try:
            resp = await self.client.get(
                target,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("Geo lookup %s failed for %s: %s", target, ip, exc)
            return {}
        return _parse_geo(url, data)

    async def _reverse_dns(self, ip: str) -> Optional[str]:
        """Return the PTR hostname for *ip*, or None on failure."""
        try:
            rev_name = dns.reversename.from_address(ip)
            answers = await self.resolver.resolve(rev_name, "PTR")
            return str(answers[0]).rstrip(".") or None
        except (dns.exception.DNSException, ValueError, IndexError) as exc:
            logger.debug("Reverse DNS lookup failed for %s: %s", ip, exc)
            return None

    async def _query_txt(self, qname: str) -> Optional[str]:
        try:
            answers = await self.resolver.resolve(qname, "TXT")
            return str(answers[0]).strip('"')
        except (dns.exception.DNSException, IndexError) as exc:
            logger.debug("TXT lookup failed for %s: %s", qname, exc)
            return None

    async def _cymru_lookup(self, ip: str) -> dict:
        """Team Cymru origin lookup; IPv4 only."""
        if ":" in ip:
            return {}

        # Format: "15169 | 8.8.8.0/24 | US | arin | 2000-03-30"
        txt = await self._query_txt(f"{'.'.join(reversed(ip.split('.')))}.{CYMRU_ORIGIN_ZONE}")
        if not txt:
            return {}
        parts = [p.strip() for p in txt.split("|")]
        asn = normalize_asn(parts[0].split()[0]) if parts[0] else None
        if asn is None:
            return {}
        result: dict = {"asn": asn, "country": parts[2] if len(parts) > 2 else None}

        # Format: "15169 | US | arin | 2000-03-30 | GOOGLE, US"
        name_txt = await self._query_txt(f"{asn}.{CYMRU_ASN_ZONE}")
        if name_txt:
            name_parts = [p.strip() for p in name_txt.split("|")]
            if len(name_parts) >= 5:
                result["org"] = name_parts[4]
        return result
