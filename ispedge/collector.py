"""Trace collection: run strategies in order until one yields hops."""

from __future__ import annotations

import logging
from typing import Sequence

from ispedge.errors import ParseFailure, StrategyTimeout, StrategyUnavailable
from ispedge.models import HopSequence, TraceAttempt
from ispedge.strategies.base import TraceStrategy

logger = logging.getLogger(__name__)


class TraceCollector:
    """Produce one :class:`HopSequence` per target from an ordered strategy chain.

    Every strategy tried is appended to :attr:`attempts`, successful or
    not.  No failure escapes :meth:`collect`: a target whose whole chain
    fails yields an empty sequence.
    """

    def __init__(self, strategies: Sequence[TraceStrategy]):
        self.strategies = list(strategies)
        self.attempts: list[TraceAttempt] = []

    async def collect(self, target: str) -> HopSequence:
        for strategy in self.strategies:
            hops = await self._attempt(strategy, target)
            if hops is not None:
                return hops
        logger.debug("No strategy produced hops for %s", target)
        return HopSequence()

    async def _attempt(self, strategy: TraceStrategy, target: str) -> HopSequence | None:
        raw = None
        try:
            raw = await strategy.fetch(target)
            parsed = strategy.parse(raw)
        except StrategyUnavailable as exc:
            self._record(strategy, target, ok=False, note=f"unavailable: {exc}")
            return None
        except StrategyTimeout as exc:
            self._record(strategy, target, ok=False, note=f"timeout: {exc}")
            return None
        except ParseFailure as exc:
            preview = strategy.preview(exc.raw or raw)
            self._record(strategy, target, ok=False, note=f"parse failure: {exc}", preview=preview)
            return None
        except Exception as exc:
            logger.warning("Strategy %s failed for %s: %s", strategy.label, target, exc)
            self._record(
                strategy,
                target,
                ok=False,
                note=f"error: {exc}",
                preview=strategy.preview(raw),
            )
            return None

        hops = HopSequence.from_hops(parsed, source=strategy.label, vantage=strategy.vantage)
        preview = strategy.preview(raw)
        if not hops.is_usable:
            self._record(
                strategy,
                target,
                ok=False,
                hop_count=len(hops),
                note="no responding hops",
                preview=preview,
            )
            return None

        self._record(
            strategy,
            target,
            ok=True,
            hop_count=len(hops),
            note=f"found {len(hops)} hop(s)",
            preview=preview,
        )
        logger.debug("%s to %s succeeded (%d hops)", strategy.label, target, len(hops))
        return hops

    def _record(
        self,
        strategy: TraceStrategy,
        target: str,
        ok: bool,
        hop_count: int = 0,
        note: str | None = None,
        preview: str = "",
    ) -> None:
        self.attempts.append(
            TraceAttempt(
                strategy=strategy.label,
                target=target,
                ok=ok,
                hop_count=hop_count,
                raw_preview=preview,
                note=note,
            )
        )
        if not ok:
            logger.debug("%s to %s failed: %s", strategy.label, target, note)
