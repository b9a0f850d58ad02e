"""
Fetch/merge pipeline.

Issues one GET per distinct filter, decompresses and parses the TSV
bodies, and merges them into a single RowTable. Requests may run
concurrently (bounded by ``http_max_concurrency``) but bodies are merged
strictly in filter order, so deduplication is reproducible.
"""
from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import List, Optional, Sequence

import httpx

from ..config import Settings, get_settings
from ..exceptions import (
    ProviderTimeoutError,
    ResponseFormatError,
    TransportError,
    UpstreamError,
)
from ..models import RowTable
from .decompress import DecompressionError, decompress_payload
from .http_pool import get_http_client
from .query_builder import query_url, unfiltered_url
from .tsv_parser import RowTableBuilder

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def looks_like_xml(content_type: str, body: bytes) -> bool:
    if "xml" in content_type.lower():
        return True
    return body.lstrip()[:1] == b"<"


def extract_fault_message(body: bytes) -> Optional[str]:
    """Return the message of a SOAP fault or SDMX error document, or None.

    Handles both ``<S:Fault><faultstring>`` and
    ``<mes:Error><mes:ErrorMessage><com:Text>`` shapes.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None

    for element in root.iter():
        name = _local_name(element.tag)
        if name == "Fault":
            for child in element.iter():
                if _local_name(child.tag) == "faultstring":
                    return (child.text or "").strip()
            return ""
        if name == "ErrorMessage":
            texts = [
                (child.text or "").strip()
                for child in element.iter()
                if _local_name(child.tag) == "Text"
            ]
            return "; ".join(t for t in texts if t)
    return None


class FetchMergePipeline:
    """Retrieves and unions the rows of one scan.

    Timeout, concurrency and user agent are captured from Settings when
    the pipeline is built and are not re-read during the fetch.
    """

    def __init__(
        self,
        provider_id: str,
        dataset_id: str,
        dimension_names: Sequence[str] = (),
        derive_geo_level: bool = False,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_settings()
        self.provider_id = provider_id
        self.dataset_id = dataset_id
        self.dimension_names = list(dimension_names)
        self.derive_geo_level = derive_geo_level
        self.timeout = settings.http_timeout
        self.max_concurrency = settings.http_max_concurrency
        self.user_agent = settings.http_user_agent
        self.debug = settings.debug
        self._settings = settings
        self._client = client

    def request_urls(self, filters: Sequence[str], base_url: str) -> List[str]:
        """One URL per distinct filter, or the unfiltered URL when there are none."""
        urls: List[str] = []
        for clause in filters:
            url = query_url(base_url, clause)
            if url not in urls:
                urls.append(url)
        return urls or [unfiltered_url(base_url)]

    async def fetch_and_merge(self, filters: Sequence[str], base_url: str) -> RowTable:
        urls = self.request_urls(filters, base_url)
        single_query = len(urls) == 1
        client = self._client or get_http_client(self._settings)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch_with_semaphore(url: str) -> Optional[str]:
            async with semaphore:
                return await self._fetch_one(client, url, allow_empty=single_query)

        results = await asyncio.gather(
            *(fetch_with_semaphore(url) for url in urls), return_exceptions=True
        )

        # Surface the first failure in query order, not completion order.
        for result in results:
            if isinstance(result, BaseException):
                raise result

        builder = RowTableBuilder(
            dimension_names=self.dimension_names,
            derive_geo_level=self.derive_geo_level,
            dedupe=not single_query,
        )
        for url, body in zip(urls, results):
            if body is None:
                continue
            try:
                added = builder.add_response(body)
            except ResponseFormatError as e:
                raise ResponseFormatError(
                    f"Malformed TSV from provider='{self.provider_id}', dataflow='{self.dataset_id}': {e.message}",
                    provider=self.provider_id,
                    dataset=self.dataset_id,
                    line_number=e.line_number,
                ) from e
            if self.debug:
                logger.debug(f"{url}: {added} observations")

        if builder.duplicates_skipped:
            logger.debug(f"Skipped {builder.duplicates_skipped} duplicate observations across {len(urls)} queries")
        return builder.build()

    async def _fetch_one(self, client: httpx.AsyncClient, url: str, allow_empty: bool) -> Optional[str]:
        """GET one URL and return its decoded text, or None for a tolerated empty fault."""
        if self.debug:
            logger.debug(f"GET {url}")

        try:
            response = await client.get(
                url, timeout=self.timeout, headers={"User-Agent": self.user_agent}
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Timed out fetching EUROSTAT dataflow from provider='{self.provider_id}', "
                f"dataflow='{self.dataset_id}': {e}",
                provider=self.provider_id,
                dataset=self.dataset_id,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to fetch EUROSTAT dataflow from provider='{self.provider_id}', "
                f"dataflow='{self.dataset_id}': {e}",
                provider=self.provider_id,
                dataset=self.dataset_id,
            ) from e

        try:
            body = decompress_payload(response.content)
        except DecompressionError as e:
            # An error page that fails to decode still reports its status.
            if response.status_code != 200:
                self._raise_or_tolerate(response.status_code, "", b"", allow_empty=False)
            raise ResponseFormatError(
                str(e), provider=self.provider_id, dataset=self.dataset_id
            ) from e

        content_type = response.headers.get("content-type", "")
        if response.status_code != 200 or looks_like_xml(content_type, body):
            self._raise_or_tolerate(response.status_code, content_type, body, allow_empty)
            return None

        try:
            return body.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ResponseFormatError(
                f"Response is not UTF-8 text: {e}", provider=self.provider_id, dataset=self.dataset_id
            ) from e

    def _raise_or_tolerate(self, status_code: int, content_type: str, body: bytes, allow_empty: bool) -> None:
        fault = extract_fault_message(body) if looks_like_xml(content_type, body) else None

        if allow_empty and fault is not None:
            logger.warning(
                f"EUROSTAT returned a fault for provider='{self.provider_id}', "
                f"dataflow='{self.dataset_id}' ({status_code}): {fault or 'no message'}; "
                "treating as an empty result"
            )
            return

        if fault:
            reason = fault
        elif status_code == 200:
            reason = "unexpected XML document instead of TSV"
        else:
            reason = httpx.codes.get_reason_phrase(status_code) or "unexpected response"
        raise UpstreamError(
            f"Failed to fetch EUROSTAT dataflow dataset from provider='{self.provider_id}', "
            f"dataflow='{self.dataset_id}': ({status_code}) {reason}",
            provider=self.provider_id,
            dataset=self.dataset_id,
            status_code=status_code,
            fault_message=fault,
        )


async def fetch_and_merge(
    filters: Sequence[str],
    base_url: str,
    provider_id: str = "",
    dataset_id: str = "",
    **kwargs,
) -> RowTable:
    """Functional shortcut around :class:`FetchMergePipeline`."""
    pipeline = FetchMergePipeline(provider_id, dataset_id, **kwargs)
    return await pipeline.fetch_and_merge(filters, base_url)
