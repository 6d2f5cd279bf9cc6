"""Strategies that trace from this machine.

Subprocess strategies shell out to the system trace tools with a fixed
argument template.  Each run is bounded by a wall-clock timeout; a
process still running when the bound expires (or when the caller is
cancelled) is killed and reaped before the attempt returns.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from functools import partial
from typing import Optional

from icmplib import ICMPLibError, traceroute

from ispedge.config import HOP_LIMIT, HOP_WAIT, TRACE_TIMEOUT
from ispedge.errors import ParseFailure, StrategyTimeout, StrategyUnavailable
from ispedge.parsers import HopFormat
from ispedge.strategies.base import TraceStrategy

logger = logging.getLogger(__name__)

_SBIN_DIRS = ("/usr/sbin", "/usr/bin", "/sbin", "/usr/local/sbin")


def _which(binary: str) -> Optional[str]:
    """Locate *binary* on PATH or in the usual sbin directories."""
    found = shutil.which(binary)
    if found is not None:
        return found
    for directory in _SBIN_DIRS:
        candidate = shutil.which(f"{directory}/{binary}")
        if candidate is not None:
            return candidate
    return None


class CommandStrategy(TraceStrategy):
    """Run a local trace tool as a subprocess and return its stdout.

    *args* may contain ``{target}``, substituted per call.
    """

    def __init__(
        self,
        label: str,
        binary: str,
        args: list[str],
        hop_format: HopFormat,
        timeout: float = TRACE_TIMEOUT,
    ):
        self._label = label
        self._hop_format = hop_format
        self.binary = binary
        self.args = args
        self.timeout = timeout

    @property
    def label(self) -> str:
        return self._label

    @property
    def hop_format(self) -> HopFormat:
        return self._hop_format

    def command(self, target: str, path: Optional[str] = None) -> list[str]:
        return [path or self.binary, *(a.format(target=target) for a in self.args)]

    async def fetch(self, target: str) -> str:
        path = _which(self.binary)
        if path is None:
            raise StrategyUnavailable(f"{self.binary} not installed")

        cmd = self.command(target, path)
        logger.debug("exec: %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise StrategyUnavailable(f"{self.binary}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise StrategyTimeout(f"{self.binary} exceeded {self.timeout:g}s") from None
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        out = stdout.decode(errors="replace")
        if proc.returncode != 0:
            err_text = stderr.decode(errors="replace").strip()
            logger.debug("%s exited %d: %s", self.label, proc.returncode, err_text)
            if not out.strip():
                raise ParseFailure(f"exit status {proc.returncode}", raw=err_text)
        return out


class IcmplibStrategy(TraceStrategy):
    """In-process ICMP traceroute via icmplib.

    Needs raw-socket privileges (or unprivileged ICMP sockets); a
    permission error makes the strategy unavailable.  icmplib only reports
    responding hops, so gaps in the distance sequence are filled with
    empty records to keep timeouts visible.

    The worker thread cannot be cancelled, so the per-hop wait is sized
    for the whole trace to finish inside the wall-clock bound.
    """

    def __init__(self, hop_limit: int = HOP_LIMIT, timeout: float = TRACE_TIMEOUT):
        self.hop_limit = hop_limit
        self.timeout = timeout

    @property
    def label(self) -> str:
        return "icmplib"

    @property
    def hop_wait(self) -> float:
        """Per-hop reply wait, so that ``hop_limit`` unanswered hops end within ``timeout``."""
        return min(HOP_WAIT, self.timeout / self.hop_limit)

    @property
    def hop_format(self) -> HopFormat:
        return HopFormat.HOP_RECORDS

    async def fetch(self, target: str) -> dict:
        loop = asyncio.get_running_loop()
        try:
            icmp_hops = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    partial(
                        traceroute,
                        target,
                        count=1,
                        interval=0,
                        timeout=self.hop_wait,
                        max_hops=self.hop_limit,
                        fast=True,
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise StrategyTimeout(f"icmplib exceeded {self.timeout:g}s") from None
        except ICMPLibError as exc:
            raise StrategyUnavailable(f"icmplib: {exc}") from exc

        records: list[dict] = []
        for hop in icmp_hops:
            while len(records) < hop.distance - 1:
                records.append({"address": None})
            records.append({"address": hop.address, "rtts": list(hop.rtts)})
        return {"hops": records}
