"""Trace-as-a-service strategies, used when no local tool produced hops.

These traces run from the service's vantage point, not the user's, so
they are only a last resort.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ispedge.config import HACKERTARGET_MTR_URL, HTTP_TIMEOUT, IPTRACE_URL, USER_AGENT
from ispedge.errors import ParseFailure, StrategyTimeout, StrategyUnavailable
from ispedge.parsers import HopFormat
from ispedge.strategies.base import TraceStrategy

logger = logging.getLogger(__name__)


class HttpTraceStrategy(TraceStrategy):
    """GET a trace from a remote service through a shared client."""

    url_template: str = ""

    def __init__(self, client: httpx.AsyncClient, timeout: float = HTTP_TIMEOUT):
        self.client = client
        self.timeout = timeout

    @property
    def vantage(self) -> str:
        return "remote"

    async def _get(self, target: str) -> httpx.Response:
        url = self.url_template.format(target=quote(target, safe=""))
        logger.debug("GET %s", url)
        try:
            resp = await self.client.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise StrategyTimeout(f"{self.label} exceeded {self.timeout:g}s") from None
        except httpx.HTTPError as exc:
            raise StrategyUnavailable(f"{self.label}: {exc}") from exc
        if resp.status_code != 200:
            raise StrategyUnavailable(f"{self.label}: HTTP {resp.status_code}")
        return resp


class IPTraceStrategy(HttpTraceStrategy):
    """iptrace.dev: JSON ``{"hops": [{"ip", "rtts"}, ...]}``."""

    url_template = IPTRACE_URL

    @property
    def label(self) -> str:
        return "iptrace.dev"

    @property
    def hop_format(self) -> HopFormat:
        return HopFormat.HOP_RECORDS

    async def fetch(self, target: str) -> Any:
        resp = await self._get(target)
        try:
            return resp.json()
        except ValueError:
            raise ParseFailure("response is not JSON", raw=resp.text) from None


class HackerTargetStrategy(HttpTraceStrategy):
    """HackerTarget MTR API: plain-text mtr report."""

    url_template = HACKERTARGET_MTR_URL

    @property
    def label(self) -> str:
        return "hackertarget-mtr"

    @property
    def hop_format(self) -> HopFormat:
        return HopFormat.HACKERTARGET_MTR

    async def fetch(self, target: str) -> str:
        resp = await self._get(target)
        return resp.text
