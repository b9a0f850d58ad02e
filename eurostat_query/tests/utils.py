from __future__ import annotations

import asyncio
import gzip
from typing import Dict, Iterable, List, Optional, Union

import httpx

DEMO_DIMENSIONS = [
    {"name": "freq", "position": 0, "label": "Time frequency"},
    {"name": "unit", "position": 1, "label": "Unit of measure"},
    {"name": "sex", "position": 2, "label": "Sex"},
    {"name": "age", "position": 3, "label": "Age class"},
    {"name": "geo", "position": 4, "label": "Geopolitical entity (reporting)"},
    {"name": "TIME_PERIOD", "position": 5, "label": "Time"},
]

DEMO_TSV = (
    "freq,unit,sex,age,geo\\TIME_PERIOD\t2000 \t2001 \n"
    "A,NR,F,TOTAL,AL\t1526762 \t1535822 \n"
    "A,NR,F,TOTAL,DE\t42108971 \t: \n"
    "A,NR,M,TOTAL,DE1\t5201007 p\t5210000 \n"
)


class MockAsyncResponse:
    def __init__(
        self,
        content: Union[bytes, str] = b"",
        *,
        headers: Optional[Dict[str, str]] = None,
        status_code: int = 200,
        delay: float = 0.0,
    ) -> None:
        self.content = content.encode("utf-8") if isinstance(content, str) else content
        self.headers = httpx.Headers(headers or {})
        self.status_code = status_code
        # Seconds to sleep before answering, to reorder concurrent completions
        self.delay = delay

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


class MockAsyncClient:
    """Stand-in for httpx.AsyncClient.

    Answers from ``routes`` when the requested URL is listed there,
    otherwise pops the next queued response. Every requested URL is
    recorded in ``requested``; an Exception queued as a response is raised.
    """

    def __init__(
        self,
        responses: Iterable[Union[MockAsyncResponse, Exception]] = (),
        routes: Optional[Dict[str, Union[MockAsyncResponse, Exception]]] = None,
    ) -> None:
        self._responses: List[Union[MockAsyncResponse, Exception]] = list(responses)
        self._routes = dict(routes or {})
        self.requested: List[str] = []
        self.request_headers: List[Dict[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.is_closed = False

    async def __aenter__(self) -> "MockAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def get(self, url: str, *, headers: Optional[Dict[str, str]] = None, **_kwargs) -> MockAsyncResponse:
        url = url if isinstance(url, str) else str(url)
        self.requested.append(url)
        self.request_headers.append(dict(headers or {}))

        if url in self._routes:
            response = self._routes[url]
        elif self._responses:
            response = self._responses.pop(0)
        else:
            raise AssertionError(f"No mock response available for {url}")

        if isinstance(response, Exception):
            raise response

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if response.delay:
                await asyncio.sleep(response.delay)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        return response


def gzipped(text: str) -> bytes:
    return gzip.compress(text.encode("utf-8"))


def run(coro):
    """Helper to run async functions in synchronous tests."""
    return asyncio.run(coro)
