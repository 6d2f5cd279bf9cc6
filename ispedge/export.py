"""Structured and plain-text export of resolution results."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from typing import Optional

from ispedge.addresses import is_non_internet
from ispedge.config import UNKNOWN
from ispedge.models import EnrichmentRecord, Hop, ResolutionResult, TargetReport


def export_json(result: ResolutionResult, indent: int = 2) -> str:
    """Export the result as a JSON string (stable for identical inputs)."""
    return json.dumps(to_dict(result), indent=indent, default=str)


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w") as f:
        f.write(content)


def to_dict(result: ResolutionResult) -> dict:
    """Build a serialisable dict; every optional field is present, null when unknown."""
    gateway = _record_to_dict(result.gateway)
    if gateway is not None:
        gateway["rtt_ms"] = result.gateway_rtt_ms
        gateway["private"] = is_non_internet(gateway["ip"])

    provider = _record_to_dict(result.provider)
    if provider is not None:
        provider["rtt_ms"] = result.provider_rtt_ms

    return {
        "targets": list(result.targets),
        "gateway": gateway,
        "provider": provider,
        "votes": dict(result.votes),
        "gateway_votes": dict(result.gateway_votes),
        "traces": [_report_to_dict(r) for r in result.traces],
        "diagnostics": [asdict(a) for a in result.diagnostics],
        "error": result.error,
    }


def _record_to_dict(record: Optional[EnrichmentRecord]) -> Optional[dict]:
    return asdict(record) if record is not None else None


def _hop_to_dict(hop: Optional[Hop]) -> Optional[dict]:
    if hop is None:
        return None
    return {"ip": hop.ip, "rtt_ms": hop.rtt_ms}


def _report_to_dict(report: TargetReport) -> dict:
    edge = report.edge
    return {
        "target": report.target,
        "target_ip": report.target_ip,
        "destination_asn": report.destination_asn,
        "source": report.hops.source,
        "vantage": report.hops.vantage,
        "hops": [_hop_to_dict(h) for h in report.hops],
        "gateway": _hop_to_dict(edge.gateway) if edge else None,
        "provider": _hop_to_dict(edge.provider) if edge else None,
        "error": report.error,
    }


# ---------------------------------------------------------------------------
# Human-oriented summary
# ---------------------------------------------------------------------------

def _or_unknown(*parts: object, sep: str = ", ") -> str:
    shown = [str(p) for p in parts if p not in (None, "")]
    return sep.join(shown) if shown else UNKNOWN


def _fmt_rtt(rtt: Optional[float]) -> str:
    return f"~{rtt:.0f} ms" if rtt is not None else UNKNOWN


_INSTALL_ADVICE = {
    "win32": "tracert ships with Windows; allow outbound ICMP or run from an elevated prompt.",
    "darwin": "Install mtr (`brew install mtr`) or run with sudo.",
}
_DEFAULT_ADVICE = "Install traceroute/mtr (e.g. `sudo apt-get install traceroute mtr-tiny`) or run with sudo."


def hint_for(result: ResolutionResult, platform: Optional[str] = None) -> Optional[str]:
    """Advice line shown when no provider edge was found."""
    if result.found:
        return None
    if not any(r.hops.is_usable for r in result.traces):
        advice = _INSTALL_ADVICE.get(platform or sys.platform, _DEFAULT_ADVICE)
        return f"No trace tool produced hops. {advice}"
    return "Intermediate hops are likely filtered; try --allow-degraded or different --targets."


def summary_rows(result: ResolutionResult) -> list[tuple[str, str]]:
    """(label, value) pairs shared by the plain and rich renderers."""
    rows: list[tuple[str, str]] = [("Targets", ", ".join(result.targets))]

    gw = result.gateway
    rows.append(("Gateway", gw.ip if gw else UNKNOWN))
    if gw:
        rows.append(("Gateway host", _or_unknown(gw.hostname)))
        rows.append(("Gateway RTT", _fmt_rtt(result.gateway_rtt_ms)))

    pr = result.provider
    rows.append(("Provider edge", pr.ip if pr else UNKNOWN))
    if pr:
        rows.extend([
            ("Hostname", _or_unknown(pr.hostname)),
            ("ASN/Org", _or_unknown(pr.asn, pr.org, sep=" · ")),
            ("Location", _or_unknown(pr.city, pr.region, pr.country)),
            ("Lat/Lon", _or_unknown(pr.lat, pr.lon)),
            ("RTT", _fmt_rtt(result.provider_rtt_ms)),
            ("Votes", f"{result.votes.get(pr.ip, 0)}/{len(result.targets)}"),
        ])
    return rows


def format_text(result: ResolutionResult) -> str:
    """Multi-line plain-text summary."""
    rows = summary_rows(result)
    width = max(len(label) for label, _ in rows)
    lines = [f"{label.ljust(width)} : {value}" for label, value in rows]
    if result.error:
        lines.append(result.error)
    hint = hint_for(result)
    if hint:
        lines.append(f"Hint: {hint}")
    return "\n".join(lines)
