"""Shared fakes for the test suite."""

from __future__ import annotations

from typing import Any, Optional

import dns.resolver
import httpx
import pytest

from ispedge.errors import StrategyUnavailable
from ispedge.models import EnrichmentRecord
from ispedge.parsers import HopFormat
from ispedge.strategies.base import TraceStrategy


class FakeStrategy(TraceStrategy):
    """Strategy returning canned raw output (or raising) per target.

    ``outputs`` maps a target to raw output or an exception instance;
    the ``"*"`` key applies to any other target.
    """

    def __init__(
        self,
        label: str,
        outputs: dict[str, Any],
        hop_format: HopFormat = HopFormat.HOP_RECORDS,
        vantage: str = "local",
    ):
        self._label = label
        self._hop_format = hop_format
        self._vantage = vantage
        self.outputs = outputs
        self.calls: list[str] = []

    @property
    def label(self) -> str:
        return self._label

    @property
    def hop_format(self) -> HopFormat:
        return self._hop_format

    @property
    def vantage(self) -> str:
        return self._vantage

    async def fetch(self, target: str) -> Any:
        self.calls.append(target)
        out = self.outputs.get(target, self.outputs.get("*"))
        if isinstance(out, BaseException):
            raise out
        if out is None:
            raise StrategyUnavailable(f"{self._label} has no output for {target}")
        return out


class FakeDNS:
    """Async resolver stand-in keyed on ``(str(qname), rdtype)``."""

    def __init__(self, answers: Optional[dict[tuple[str, str], Any]] = None):
        self.answers = answers or {}
        self.queries: list[tuple[str, str]] = []

    async def resolve(self, qname: Any, rdtype: str = "A"):
        key = (str(qname), rdtype)
        self.queries.append(key)
        answer = self.answers.get(key)
        if isinstance(answer, BaseException):
            raise answer
        if answer is None:
            raise dns.resolver.NXDOMAIN()
        return answer if isinstance(answer, list) else [answer]


class FakeEnricher:
    """Enricher stand-in: fixed ``ip -> (asn, org)`` table, records calls."""

    def __init__(self, table: Optional[dict[str, tuple[Optional[str], Optional[str]]]] = None):
        self.table = table or {}
        self.calls: list[str] = []

    async def enrich(self, ip: str) -> EnrichmentRecord:
        self.calls.append(ip)
        asn, org = self.table.get(ip, (None, None))
        return EnrichmentRecord(ip=ip, asn=asn, org=org)


def hop_records(*hops: tuple[Optional[str], Optional[float]]) -> dict:
    """Build iptrace-style JSON: ``hop_records(("10.0.0.1", 1.0), (None, None))``."""
    return {"hops": [{"ip": ip, "rtt": rtt} for ip, rtt in hops]}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def fake_dns() -> FakeDNS:
    return FakeDNS()
