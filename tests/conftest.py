"""
Shared fixtures: fake upstream client, controllable clock, orchestrator factory.
"""
import copy
import threading
import time

import pytest

from blogview.cache import CacheStore, FetchOrchestrator, RequestCoalescer
from blogview.telemetry import PerformanceMetrics

PRIMARY_URL = "https://cdn.test/graphql"
FALLBACK_URL = "https://content.test/graphql"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGraphQLClient:
    """
    Stands in for GraphQLClient.

    ``responses`` maps an endpoint URL to a payload dict, an exception instance
    to raise, or a callable receiving the variables.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []
        self._lock = threading.Lock()

    def post(self, url, query, variables=None, timeout=15.0, authenticated=False):
        with self._lock:
            self.calls.append({
                "url": url,
                "query": query,
                "variables": dict(variables or {}),
                "authenticated": authenticated,
            })
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(variables)
        return copy.deepcopy(response)

    def calls_to(self, url):
        with self._lock:
            return [call for call in self.calls if call["url"] == url]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return PerformanceMetrics(slow_query_threshold_ms=3000)


@pytest.fixture
def make_orchestrator(metrics):
    """Factory building orchestrators around a fake client."""

    def factory(client, store=None, coalescer=None, request_timeout=2.0, fallback_url=FALLBACK_URL, metrics_override=None):
        return FetchOrchestrator(
            store=store or CacheStore(namespace="test:"),
            coalescer=coalescer or RequestCoalescer(completed_ttl=5.0, timeout=10.0),
            client=client,
            metrics=metrics_override or metrics,
            primary_url=PRIMARY_URL,
            fallback_url=fallback_url,
            request_timeout=request_timeout,
        )

    return factory


def wait_until(predicate, timeout: float = 5.0) -> bool:
    """Poll until predicate() is true or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
