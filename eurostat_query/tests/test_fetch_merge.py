from __future__ import annotations

import unittest
from unittest.mock import patch

import httpx
import zstandard

from eurostat_query.config import Settings
from eurostat_query.exceptions import (
    ProviderTimeoutError,
    ResponseFormatError,
    TransportError,
    UpstreamError,
)
from eurostat_query.services.fetch_merge import (
    FetchMergePipeline,
    extract_fault_message,
    fetch_and_merge,
    looks_like_xml,
)
from eurostat_query.services.tsv_parser import parse_tsv
from eurostat_query.tests.utils import (
    DEMO_TSV,
    MockAsyncClient,
    MockAsyncResponse,
    gzipped,
    run,
)

BASE = "https://ec.europa.eu/eurostat/api/dissemination/sdmx/2.1/data/demo_pjan"
SUFFIX = "format=TSV&compressed=true"
DIMENSIONS = ["freq", "unit", "sex", "age", "geo", "geo_level"]

HEADER = "freq,unit,sex,age,geo\\TIME_PERIOD\t2000\t2001\n"

SOAP_FAULT = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b'<S:Envelope xmlns:S="http://schemas.xmlsoap.org/soap/envelope/"><S:Body>'
    b"<S:Fault><faultcode>S:Server</faultcode><faultstring>No Results Found</faultstring></S:Fault>"
    b"</S:Body></S:Envelope>"
)

SDMX_ERROR = (
    b'<mes:Error xmlns:mes="http://www.sdmx.org/resources/sdmxml/schemas/v2_1/message" '
    b'xmlns:com="http://www.sdmx.org/resources/sdmxml/schemas/v2_1/common">'
    b'<mes:ErrorMessage code="100"><com:Text xml:lang="en">No Results Found</com:Text></mes:ErrorMessage>'
    b"</mes:Error>"
)

XML_HEADERS = {"Content-Type": "application/xml"}


def url(clause: str = "") -> str:
    if not clause:
        return f"{BASE}?{SUFFIX}"
    return f"{BASE}{clause}{SUFFIX}"


class FetchMergeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings()

    def pipeline(self, client: MockAsyncClient, settings: Settings = None) -> FetchMergePipeline:
        return FetchMergePipeline(
            "ESTAT",
            "demo_pjan",
            dimension_names=DIMENSIONS,
            derive_geo_level=True,
            settings=settings or self.settings,
            client=client,
        )

    def test_no_filters_issues_one_unfiltered_request(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(gzipped(DEMO_TSV))])
        table = run(self.pipeline(client).fetch_and_merge([], BASE))

        self.assertEqual(client.requested, [url()])
        self.assertEqual(table.cardinality, 4)
        self.assertEqual(table.dimension_names, tuple(DIMENSIONS))

    def test_zstd_body(self) -> None:
        body = zstandard.ZstdCompressor().compress(DEMO_TSV.encode("utf-8"))
        client = MockAsyncClient([MockAsyncResponse(body)])
        table = run(self.pipeline(client).fetch_and_merge(["/....AL?"], BASE))
        self.assertEqual(table.cardinality, 4)
        self.assertEqual(client.requested, [url("/....AL?")])

    def test_plain_body_with_bom(self) -> None:
        client = MockAsyncClient([MockAsyncResponse("\ufeff" + DEMO_TSV)])
        table = run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertEqual(table.dimension_names[0], "freq")

    def test_one_request_per_distinct_filter(self) -> None:
        client = MockAsyncClient(routes={
            url("/....AL?"): MockAsyncResponse(gzipped(HEADER + "A,NR,F,TOTAL,AL\t1\t2\n")),
            url("/....DE?"): MockAsyncResponse(gzipped(HEADER + "A,NR,F,TOTAL,DE\t3\t4\n")),
        })
        table = run(self.pipeline(client).fetch_and_merge(["/....AL?", "/....DE?", "/....AL?"], BASE))

        self.assertEqual(sorted(client.requested), sorted([url("/....AL?"), url("/....DE?")]))
        self.assertEqual([row[4] for row in table.rows()], ["AL", "AL", "DE", "DE"])

    def test_merging_identical_responses_is_idempotent(self) -> None:
        client = MockAsyncClient(routes={
            url("/....AL?"): MockAsyncResponse(gzipped(DEMO_TSV)),
            url("/.NR...AL?"): MockAsyncResponse(gzipped(DEMO_TSV)),
        })
        table = run(self.pipeline(client).fetch_and_merge(["/....AL?", "/.NR...AL?"], BASE))
        self.assertEqual(table, parse_tsv(DEMO_TSV, derive_geo_level=True))

    def test_first_query_wins_regardless_of_completion_order(self) -> None:
        slow_first = MockAsyncResponse(
            gzipped(HEADER + "A,NR,F,TOTAL,AL\t1\t:\n"), delay=0.05
        )
        fast_second = MockAsyncResponse(
            gzipped(HEADER + "A,NR,F,TOTAL,AL\t100\t200\nA,NR,F,TOTAL,DE\t3\t:\n")
        )
        client = MockAsyncClient(routes={url("/....AL?"): slow_first, url("/....AL+DE?"): fast_second})

        table = run(self.pipeline(client).fetch_and_merge(["/....AL?", "/....AL+DE?"], BASE))

        rows = [(row[4], row[6], row[7]) for row in table.rows()]
        self.assertEqual(rows, [("AL", "2000", 1.0), ("AL", "2001", 200.0), ("DE", "2000", 3.0)])

    def test_concurrency_is_bounded(self) -> None:
        settings = Settings(EUROSTAT_HTTP_MAX_CONCURRENCY=2)
        clauses = [f"/....C{i}?" for i in range(6)]
        client = MockAsyncClient(routes={
            url(c): MockAsyncResponse(gzipped(HEADER), delay=0.01) for c in clauses
        })
        table = run(self.pipeline(client, settings).fetch_and_merge(clauses, BASE))

        self.assertEqual(len(client.requested), 6)
        self.assertLessEqual(client.max_in_flight, 2)
        self.assertEqual(len(table), 0)

    def test_user_agent_is_sent(self) -> None:
        settings = Settings(EUROSTAT_HTTP_USER_AGENT="my-engine/1.0")
        client = MockAsyncClient([MockAsyncResponse(gzipped(DEMO_TSV))])
        run(self.pipeline(client, settings).fetch_and_merge([], BASE))
        self.assertEqual(client.request_headers[0]["User-Agent"], "my-engine/1.0")

    def test_single_query_fault_is_an_empty_result(self) -> None:
        client = MockAsyncClient([
            MockAsyncResponse(SOAP_FAULT, headers=XML_HEADERS, status_code=404)
        ])
        with self.assertLogs("eurostat_query.services.fetch_merge", level="WARNING") as logs:
            table = run(self.pipeline(client).fetch_and_merge(["/....XX?"], BASE))

        self.assertEqual(len(table), 0)
        self.assertEqual(table.dimension_names, tuple(DIMENSIONS))
        self.assertIn("No Results Found", logs.output[0])

    def test_single_query_sdmx_error_with_status_200_is_an_empty_result(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(gzipped(SDMX_ERROR.decode()))])
        table = run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertEqual(len(table), 0)

    def test_fault_in_multi_query_scan_is_fatal(self) -> None:
        client = MockAsyncClient(routes={
            url("/....AL?"): MockAsyncResponse(gzipped(DEMO_TSV)),
            url("/....XX?"): MockAsyncResponse(SOAP_FAULT, headers=XML_HEADERS, status_code=404),
        })
        with self.assertRaises(UpstreamError) as ctx:
            run(self.pipeline(client).fetch_and_merge(["/....AL?", "/....XX?"], BASE))

        error = ctx.exception
        self.assertEqual(error.status_code, 404)
        self.assertEqual(error.fault_message, "No Results Found")
        self.assertEqual(error.provider, "ESTAT")
        self.assertEqual(error.dataset, "demo_pjan")
        self.assertIn("provider='ESTAT'", error.message)
        self.assertIn("dataflow='demo_pjan'", error.message)

    def test_non_200_without_fault_is_fatal(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(b"oops", status_code=503)])
        with self.assertRaises(UpstreamError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIn("Service Unavailable", ctx.exception.message)

    def test_unexpected_xml_is_fatal(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(b"<html><body>maintenance</body></html>")])
        with self.assertRaises(UpstreamError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertIsNone(ctx.exception.fault_message)

    def test_timeout_maps_to_provider_timeout(self) -> None:
        client = MockAsyncClient([httpx.ReadTimeout("read timed out")])
        with self.assertRaises(ProviderTimeoutError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertIn("read timed out", ctx.exception.message)
        self.assertIn("demo_pjan", ctx.exception.message)

    def test_connection_failure_maps_to_transport_error(self) -> None:
        client = MockAsyncClient([httpx.ConnectError("connection refused")])
        with self.assertRaises(TransportError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertNotIsInstance(ctx.exception, ProviderTimeoutError)
        self.assertIn("connection refused", ctx.exception.message)

    def test_first_failure_in_query_order_is_raised(self) -> None:
        client = MockAsyncClient(routes={
            url("/....AL?"): httpx.ConnectError("first"),
            url("/....DE?"): MockAsyncResponse(b"oops", status_code=500),
        })
        with self.assertRaises(TransportError):
            run(self.pipeline(client).fetch_and_merge(["/....AL?", "/....DE?"], BASE))

    def test_malformed_body_carries_context(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(gzipped("no marker here\nA\t1\n"))])
        with self.assertRaises(ResponseFormatError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertEqual(ctx.exception.provider, "ESTAT")
        self.assertEqual(ctx.exception.line_number, 1)

    def test_corrupt_compression_is_a_format_error(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(b"\x1f\x8bnot really gzip")])
        with self.assertRaises(ResponseFormatError):
            run(self.pipeline(client).fetch_and_merge([], BASE))

    def test_corrupt_error_page_keeps_its_status(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(b"\x1f\x8bbroken", status_code=502)])
        with self.assertRaises(UpstreamError) as ctx:
            run(self.pipeline(client).fetch_and_merge([], BASE))
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertIn("(502) Bad Gateway", ctx.exception.message)

    def test_shared_client_is_used_when_none_injected(self) -> None:
        client = MockAsyncClient([MockAsyncResponse(gzipped(DEMO_TSV))])
        with patch("eurostat_query.services.fetch_merge.get_http_client", return_value=client):
            table = run(fetch_and_merge([], BASE, "ESTAT", "demo_pjan"))
        self.assertEqual(table.cardinality, 4)
        self.assertEqual(client.requested, [url()])


def test_extract_fault_message():
    assert extract_fault_message(SOAP_FAULT) == "No Results Found"
    assert extract_fault_message(SDMX_ERROR) == "No Results Found"
    assert extract_fault_message(b"<root><child/></root>") is None
    assert extract_fault_message(b"not xml") is None


def test_looks_like_xml():
    assert looks_like_xml("application/xml;charset=UTF-8", b"")
    assert looks_like_xml("", b"  <?xml version='1.0'?>")
    assert not looks_like_xml("text/tab-separated-values", b"freq,geo\\TIME_PERIOD")
