import asyncio
import sys

import httpx
import pytest

from ispedge.errors import ParseFailure, StrategyTimeout, StrategyUnavailable
from ispedge.models import Hop, ResolveConfig
from ispedge.parsers import HopFormat
from ispedge.strategies import default_strategies, local_strategies
from ispedge.strategies import local
from ispedge.strategies.local import CommandStrategy, IcmplibStrategy
from ispedge.strategies.remote import HackerTargetStrategy, IPTraceStrategy
from tests.conftest import mock_client


def _labels(strategies):
    return [s.label for s in strategies]


def test_linux_chain_order():
    assert _labels(local_strategies(ResolveConfig(), platform="linux")) == [
        "icmplib",
        "traceroute-icmp",
        "traceroute-tcp443",
        "traceroute-udp",
        "tracepath",
        "mtr",
    ]


def test_windows_chain():
    assert _labels(local_strategies(ResolveConfig(), platform="win32")) == ["icmplib", "tracert"]


def test_remote_strategies_come_last_and_can_be_disabled():
    with_remote = default_strategies(ResolveConfig(), client=None, platform="linux")
    assert _labels(with_remote)[-2:] == ["iptrace.dev", "hackertarget-mtr"]
    assert all(s.vantage == "remote" for s in with_remote[-2:])

    without = default_strategies(ResolveConfig(include_remote=False), client=None, platform="linux")
    assert "iptrace.dev" not in _labels(without)


def test_command_template_uses_hop_limit():
    config = ResolveConfig(hop_limit=5)
    tcp = local_strategies(config, platform="linux")[2]
    assert tcp.command("1.1.1.1") == [
        "traceroute", "-T", "-p", "443", "-n", "-m", "5", "-w", "2", "-q", "1", "1.1.1.1",
    ]


def test_missing_binary_is_unavailable():
    strategy = CommandStrategy("nope", "definitely-not-a-trace-tool", ["{target}"], HopFormat.TRACEROUTE)
    with pytest.raises(StrategyUnavailable):
        asyncio.run(strategy.fetch("1.1.1.1"))


def test_command_output_is_returned():
    strategy = CommandStrategy(
        "echo",
        sys.executable,
        ["-c", "import sys; print(' 1  ' + sys.argv[1] + '  0.5 ms')", "{target}"],
        HopFormat.TRACEROUTE,
        timeout=10,
    )
    raw = asyncio.run(strategy.fetch("192.168.1.1"))
    assert strategy.parse(raw) == [Hop("192.168.1.1", 0.5)]


def test_slow_command_is_killed_on_timeout():
    strategy = CommandStrategy(
        "sleepy",
        sys.executable,
        ["-c", "import time; time.sleep(30)"],
        HopFormat.TRACEROUTE,
        timeout=0.5,
    )
    with pytest.raises(StrategyTimeout):
        asyncio.run(strategy.fetch("1.1.1.1"))


def test_failing_command_without_output_is_parse_failure():
    strategy = CommandStrategy(
        "failing",
        sys.executable,
        ["-c", "import sys; sys.stderr.write('unknown host'); sys.exit(2)"],
        HopFormat.TRACEROUTE,
        timeout=10,
    )
    with pytest.raises(ParseFailure) as excinfo:
        asyncio.run(strategy.fetch("1.1.1.1"))
    assert excinfo.value.raw == "unknown host"


def _fetch(strategy_cls, handler, target="1.1.1.1"):
    async def go():
        async with mock_client(handler) as client:
            strategy = strategy_cls(client, timeout=1.0)
            return strategy, await strategy.fetch(target)

    return asyncio.run(go())


def test_iptrace_returns_json():
    payload = {"hops": [{"ip": "45.33.32.1", "rtts": [0.4]}, {"ip": "1.1.1.1", "rtts": [1.1]}]}

    def handler(request):
        assert request.url.path == "/api/trace/1.1.1.1"
        return httpx.Response(200, json=payload)

    strategy, raw = _fetch(IPTraceStrategy, handler)
    assert strategy.parse(raw) == [Hop("45.33.32.1", 0.4), Hop("1.1.1.1", 1.1)]


def test_iptrace_non_json_is_parse_failure():
    with pytest.raises(ParseFailure):
        _fetch(IPTraceStrategy, lambda request: httpx.Response(200, text="<html>"))


def test_http_error_status_is_unavailable():
    with pytest.raises(StrategyUnavailable):
        _fetch(HackerTargetStrategy, lambda request: httpx.Response(500))


def test_http_timeout_is_strategy_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(StrategyTimeout):
        _fetch(HackerTargetStrategy, handler)


def test_hackertarget_rate_limit_fails_in_parse():
    strategy, raw = _fetch(
        HackerTargetStrategy,
        lambda request: httpx.Response(200, text="API count exceeded - Increase Quota with Membership"),
    )
    with pytest.raises(ParseFailure):
        strategy.parse(raw)


def _record_traceroute(monkeypatch, hops=()):
    seen = {}

    def fake_traceroute(address, **kwargs):
        seen["address"] = address
        seen.update(kwargs)
        return list(hops)

    monkeypatch.setattr(local, "traceroute", fake_traceroute)
    return seen


@pytest.mark.parametrize(
    "hop_limit,timeout",
    [(8, 12.0), (64, 12.0), (64, 1.0), (1, 0.5)],
)
def test_icmplib_worst_case_fits_inside_timeout(monkeypatch, hop_limit, timeout):
    seen = _record_traceroute(monkeypatch)
    strategy = IcmplibStrategy(hop_limit=hop_limit, timeout=timeout)
    asyncio.run(strategy.fetch("1.1.1.1"))

    assert seen["max_hops"] == hop_limit
    assert seen["interval"] == 0
    assert seen["timeout"] <= 2
    assert seen["max_hops"] * seen["count"] * seen["timeout"] <= timeout


def test_icmplib_gaps_become_empty_records(monkeypatch):
    class FakeHop:
        def __init__(self, distance, address, rtts):
            self.distance, self.address, self.rtts = distance, address, rtts

    _record_traceroute(monkeypatch, [FakeHop(1, "192.168.1.1", [0.5]), FakeHop(3, "80.81.82.9", [9.0])])
    strategy = IcmplibStrategy()
    raw = asyncio.run(strategy.fetch("1.1.1.1"))
    assert strategy.parse(raw) == [Hop("192.168.1.1", 0.5), Hop(), Hop("80.81.82.9", 9.0)]
