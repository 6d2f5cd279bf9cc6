"""Abstract base class for trace strategies."""

from __future__ import annotations

import abc
import json
from typing import Any

from ispedge.config import RAW_PREVIEW_CHARS, RAW_PREVIEW_LINES
from ispedge.models import Hop
from ispedge.parsers import HopFormat, parse_hops


class TraceStrategy(abc.ABC):
    """Base class that each way of obtaining a hop list must implement."""

    @property
    @abc.abstractmethod
    def label(self) -> str:
        """Short identifier shown in diagnostics (e.g. 'traceroute-tcp443')."""

    @property
    @abc.abstractmethod
    def hop_format(self) -> HopFormat:
        """Grammar of the raw output returned by :meth:`fetch`."""

    @property
    def vantage(self) -> str:
        """``local`` when packets leave this machine, ``remote`` otherwise."""
        return "local"

    @abc.abstractmethod
    async def fetch(self, target: str) -> Any:
        """Run the strategy against *target* and return its raw output.

        Implementations raise :class:`StrategyUnavailable`,
        :class:`StrategyTimeout` or :class:`ParseFailure` rather than
        returning partial data.
        """

    def parse(self, raw: Any) -> list[Hop]:
        return parse_hops(self.hop_format, raw)

    @staticmethod
    def preview(raw: Any) -> str:
        """First few lines of *raw*, for the diagnostic trail."""
        if raw is None:
            return ""
        text = raw if isinstance(raw, str) else json.dumps(raw, default=str)
        head = "\n".join(text.strip().splitlines()[:RAW_PREVIEW_LINES])
        return head[:RAW_PREVIEW_CHARS]
