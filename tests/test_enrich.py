import asyncio

import httpx

from ispedge.config import GEO_APIS
from ispedge.enrich import EnrichmentService, normalize_asn
from tests.conftest import FakeDNS, mock_client

IPAPI = {
    "ip": "80.81.82.9",
    "asn": "AS3320",
    "org": "Deutsche Telekom AG",
    "city": "Frankfurt am Main",
    "region": "Hesse",
    "country_name": "Germany",
    "latitude": 50.1109,
    "longitude": 8.6821,
}


def _run(handler, coro_factory, dns=None, **kwargs):
    async def go():
        async with mock_client(handler) as client:
            service = EnrichmentService(client, resolver=dns or FakeDNS(), **kwargs)
            return service, await coro_factory(service)

    return asyncio.run(go())


def test_normalize_asn():
    assert normalize_asn(3320) == "AS3320"
    assert normalize_asn("3320") == "AS3320"
    assert normalize_asn("as3320") == "AS3320"
    assert normalize_asn("AS3320 Deutsche Telekom AG") == "AS3320"
    assert normalize_asn(None) is None
    assert normalize_asn("") is None
    assert normalize_asn("n/a") is None


def test_enrich_populates_fields_and_rdns():
    dns = FakeDNS({("9.82.81.80.in-addr.arpa.", "PTR"): "p5051520.dip0.t-ipconnect.de."})
    service, record = _run(
        lambda request: httpx.Response(200, json=IPAPI),
        lambda s: s.enrich("80.81.82.9"),
        dns=dns,
        geo_apis=["https://geo.test/{ip}/json/"],
    )
    assert record.hostname == "p5051520.dip0.t-ipconnect.de"
    assert record.asn == "AS3320"
    assert record.org == "Deutsche Telekom AG"
    assert record.city == "Frankfurt am Main"
    assert record.country == "Germany"
    assert record.lat == 50.1109


def test_concurrent_requests_for_same_ip_are_coalesced():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json=IPAPI)

    async def many(service):
        return await asyncio.gather(*(service.enrich("80.81.82.9") for _ in range(5)))

    service, records = _run(handler, many, geo_apis=["https://geo.test/{ip}/json/"])
    assert len(seen) == 1
    assert service.lookups == 1
    assert all(r is records[0] for r in records)


def test_enrich_many_dedupes_and_keeps_order():
    def handler(request):
        return httpx.Response(200, json={"asn": "AS1", "org": "Example"})

    service, records = _run(
        handler,
        lambda s: s.enrich_many(["80.81.82.9", "62.115.0.5", "80.81.82.9", ""]),
        geo_apis=["https://geo.test/{ip}/json/"],
    )
    assert list(records) == ["80.81.82.9", "62.115.0.5"]
    assert service.lookups == 2


def test_falls_back_to_ip_api_com():
    def handler(request):
        if request.url.host == "ipapi.co":
            return httpx.Response(200, json={"error": True, "reason": "RateLimited"})
        return httpx.Response(
            200,
            json={
                "status": "success",
                "as": "AS3320 Deutsche Telekom AG",
                "isp": "Deutsche Telekom AG",
                "city": "Frankfurt am Main",
                "regionName": "Hesse",
                "country": "Germany",
                "lat": 50.1,
                "lon": 8.7,
            },
        )

    _, record = _run(handler, lambda s: s.enrich("80.81.82.9"), geo_apis=GEO_APIS)
    assert record.asn == "AS3320"
    assert record.org == "Deutsche Telekom AG"
    assert record.region == "Hesse"


def test_failures_are_swallowed_and_cymru_fills_asn():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    dns = FakeDNS({
        ("5.0.115.62.origin.asn.cymru.com", "TXT"): '"1299 | 62.115.0.0/16 | SE | ripencc | 2000-01-01"',
        ("AS1299.asn.cymru.com", "TXT"): '"1299 | SE | ripencc | 2000-01-01 | TWELVE99 Arelion, SE"',
    })
    _, record = _run(handler, lambda s: s.enrich("62.115.0.5"), dns=dns, geo_apis=GEO_APIS)
    assert record.ip == "62.115.0.5"
    assert record.hostname is None
    assert record.asn == "AS1299"
    assert record.org == "TWELVE99 Arelion, SE"
    assert record.country == "SE"


def test_total_failure_returns_ip_only_record():
    _, record = _run(
        lambda request: httpx.Response(503),
        lambda s: s.enrich("80.81.82.9"),
        geo_apis=GEO_APIS,
    )
    assert record.ip == "80.81.82.9"
    assert record.asn is None and record.org is None and record.city is None


def test_non_json_body_is_swallowed():
    _, record = _run(
        lambda request: httpx.Response(200, text="<html>nope</html>"),
        lambda s: s.enrich("80.81.82.9"),
        geo_apis=["https://geo.test/{ip}/json/"],
        cymru=False,
    )
    assert record.asn is None


def test_non_internet_ip_skips_http():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=IPAPI)

    dns = FakeDNS({("1.1.168.192.in-addr.arpa.", "PTR"): "router.lan."})
    _, record = _run(handler, lambda s: s.enrich("192.168.1.1"), dns=dns)
    assert seen == []
    assert record.hostname == "router.lan"
    assert record.asn is None


async def _slow_geo(request):
    await asyncio.sleep(5)
    return httpx.Response(200, json=IPAPI)


def test_aclose_cancels_abandoned_lookups():
    async def go():
        async with mock_client(_slow_geo) as client:
            service = EnrichmentService(client, resolver=FakeDNS(), geo_apis=["https://geo.test/{ip}/json/"])
            try:
                await asyncio.wait_for(service.enrich("80.81.82.9"), 0.05)
            except asyncio.TimeoutError:
                pass
            task = service._tasks["80.81.82.9"]
            running_before = not task.done()
            await service.aclose()
            return running_before, task

    running_before, task = asyncio.run(go())
    assert running_before
    assert task.cancelled()


def test_aclose_leaves_finished_lookups_alone():
    async def go():
        async with mock_client(lambda request: httpx.Response(200, json=IPAPI)) as client:
            service = EnrichmentService(client, resolver=FakeDNS(), geo_apis=["https://geo.test/{ip}/json/"])
            record = await service.enrich("80.81.82.9")
            await service.aclose()
            return record, service._tasks["80.81.82.9"]

    record, task = asyncio.run(go())
    assert task.done() and not task.cancelled()
    assert task.result() is record
