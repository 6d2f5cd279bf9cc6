"""Hop parsers, one per trace output grammar.

Each strategy declares a :class:`HopFormat`; :func:`parse_hops` dispatches
on it rather than sniffing the content.  Every parser returns the hops in
report order, with a placeholder ``Hop()`` for each timed-out or filtered
hop, and raises :class:`ParseFailure` when no hop line is recognised.
"""

from __future__ import annotations

import enum
import json
import re
from typing import Any, Callable, Optional

from ispedge.addresses import looks_like_ip
from ispedge.errors import ParseFailure
from ispedge.models import Hop


class HopFormat(enum.Enum):
    TRACEROUTE = "traceroute"
    TRACERT = "tracert"
    TRACEPATH = "tracepath"
    MTR_REPORT = "mtr"
    HACKERTARGET_MTR = "hackertarget"
    HOP_RECORDS = "records"


# ---------------------------------------------------------------------------
# Shared token helpers
# ---------------------------------------------------------------------------

_IPV6_BRACKET_RE = re.compile(r"\[([\w:.%]+)\]")
_IPV4_RE = re.compile(r"(?<![\d.])(\d{1,3}(?:\.\d{1,3}){3})(?![\d.])")
_IPV6_RE = re.compile(r"(?<![\w:])((?:[0-9A-Fa-f]{0,4}:){2,7}[0-9A-Fa-f]{0,4})(?![\w:])")

# "8.123 ms", "<1 ms", "0.512ms"
_RTT_RE = re.compile(r"<?\s*(\d+(?:\.\d+)?)\s*ms\b", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _find_ip(text: str) -> Optional[str]:
    """Return the first IPv4, bracketed IPv6 or colon-form IPv6 literal in *text*."""
    for regex in (_IPV6_BRACKET_RE, _IPV4_RE, _IPV6_RE):
        for match in regex.finditer(text):
            candidate = match.group(1)
            if regex is _IPV6_RE and not re.search(r"[0-9A-Fa-f]", candidate):
                continue
            if looks_like_ip(candidate):
                return candidate
    return None


def _min_rtt(text: str) -> Optional[float]:
    values = [float(m.group(1)) for m in _RTT_RE.finditer(text)]
    return min(values) if values else None


def _to_ms(value: Any) -> Optional[float]:
    """Coerce ``12``, ``12.5`` or ``"12.5 ms"`` to a float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group(0))
    return None


# ---------------------------------------------------------------------------
# traceroute (Linux/macOS) and tracert (Windows)
# ---------------------------------------------------------------------------

# " 3  96.120.68.137  8.432 ms"   /   "  2     *        *        *     Request timed out."
_NUMBERED_RE = re.compile(r"^\s*(\d+)\s+(.*)$")


def _parse_numbered(text: str) -> list[Hop]:
    hops: list[Hop] = []
    for line in text.splitlines():
        match = _NUMBERED_RE.match(line)
        if not match:
            continue
        body = match.group(2).strip()
        ip = _find_ip(body)
        if ip is None:
            # "* * *", "Request timed out.", "!H" etc.
            hops.append(Hop())
            continue
        hops.append(Hop(ip=ip, rtt_ms=_min_rtt(body.replace(ip, " "))))
    if not hops:
        raise ParseFailure("no hop lines recognised", raw=text)
    return hops


def parse_traceroute(text: str) -> list[Hop]:
    """Parse ``traceroute -n`` output."""
    return _parse_numbered(text)


def parse_tracert(text: str) -> list[Hop]:
    """Parse Windows ``tracert -d`` output (RTT columns precede the address)."""
    return _parse_numbered(text)


# ---------------------------------------------------------------------------
# tracepath
# ---------------------------------------------------------------------------

# " 1?: [LOCALHOST]   pmtu 1500"  /  " 2:  192.168.1.1   0.512ms"  /  " 3:  no reply"
_TRACEPATH_RE = re.compile(r"^\s*(\d+)(\?)?:\s+(.*)$")


def parse_tracepath(text: str) -> list[Hop]:
    """Parse ``tracepath -n`` output, skipping the local PMTU discovery lines."""
    hops: list[Hop] = []
    for line in text.splitlines():
        match = _TRACEPATH_RE.match(line)
        if not match or match.group(2):
            continue
        body = match.group(3).strip()
        ip = _find_ip(body)
        if ip is None:
            hops.append(Hop())
            continue
        hops.append(Hop(ip=ip, rtt_ms=_min_rtt(body.replace(ip, " "))))
    if not hops:
        raise ParseFailure("no tracepath hop lines recognised", raw=text)
    return hops


# ---------------------------------------------------------------------------
# mtr report (local and HackerTarget)
# ---------------------------------------------------------------------------

#   "  1.|-- 192.168.1.1   0.0%     1    0.5   0.5   0.5   0.5   0.0"
_MTR_RE = re.compile(
    r"^\s*(\d+)\.\s*(?:\|--|\|`-|`\|--)?\s*(\S+)\s+"   # hop, host
    r"(\d+(?:\.\d+)?)%?\s+(\d+)\s+"                     # loss, sent
    r"(\d+(?:\.\d+)?)\s+(\d+(?:\.\d+)?)\s+"            # last, avg
    r"(\d+(?:\.\d+)?)\s+(\d+(?:\.\d+)?)\s+"            # best, worst
    r"(\d+(?:\.\d+)?)"                                  # stdev
)


def parse_mtr_report(text: str) -> list[Hop]:
    """Parse ``mtr -r`` report text; only host and best RTT are used."""
    hops: list[Hop] = []
    for line in text.splitlines():
        match = _MTR_RE.match(line)
        if not match:
            continue
        host = match.group(2).strip("[]()")
        if not looks_like_ip(host):
            hops.append(Hop())
            continue
        loss = float(match.group(3))
        best = float(match.group(7))
        hops.append(Hop(ip=host, rtt_ms=None if loss >= 100.0 else best))
    if not hops:
        raise ParseFailure("no mtr report lines recognised", raw=text)
    return hops


_UPSTREAM_REFUSAL_RE = re.compile(r"exceeded|rate\s*limit", re.IGNORECASE)


def parse_hackertarget(text: str) -> list[Hop]:
    """Parse the HackerTarget MTR API body, rejecting quota/error replies."""
    stripped = text.strip()
    if not stripped:
        raise ParseFailure("empty response", raw=text)
    if stripped.lower().startswith("error") or _UPSTREAM_REFUSAL_RE.search(stripped):
        raise ParseFailure("rate limited or upstream error", raw=text)
    return parse_mtr_report(text)


# ---------------------------------------------------------------------------
# Structured hop records (iptrace.dev JSON, icmplib)
# ---------------------------------------------------------------------------


def parse_hop_records(data: Any) -> list[Hop]:
    """Parse ``{"hops": [{"ip"|"address": ..., "rtts"|"rtt": ...}, ...]}``."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError:
            raise ParseFailure("response is not JSON", raw=str(data)) from None

    records = data.get("hops") if isinstance(data, dict) else data
    if not isinstance(records, list) or not records:
        raise ParseFailure("no hop records in response", raw=json.dumps(data, default=str))

    hops: list[Hop] = []
    for record in records:
        if not isinstance(record, dict):
            hops.append(Hop())
            continue
        ip = record.get("ip") or record.get("address")
        if isinstance(ip, str):
            ip = ip.strip().strip("[]")
        if not isinstance(ip, str) or not looks_like_ip(ip):
            hops.append(Hop())
            continue
        rtts = record.get("rtts")
        if isinstance(rtts, list):
            values = [_to_ms(v) for v in rtts]
        else:
            values = [_to_ms(record.get("rtt"))]
        valid = [v for v in values if v is not None]
        hops.append(Hop(ip=ip, rtt_ms=min(valid) if valid else None))
    return hops


_PARSERS: dict[HopFormat, Callable[[Any], list[Hop]]] = {
    HopFormat.TRACEROUTE: parse_traceroute,
    HopFormat.TRACERT: parse_tracert,
    HopFormat.TRACEPATH: parse_tracepath,
    HopFormat.MTR_REPORT: parse_mtr_report,
    HopFormat.HACKERTARGET_MTR: parse_hackertarget,
    HopFormat.HOP_RECORDS: parse_hop_records,
}


def parse_hops(fmt: HopFormat, raw: Any) -> list[Hop]:
    """Parse *raw* strategy output with the parser registered for *fmt*."""
    return _PARSERS[fmt](raw)
