"""
Fetch orchestration: cache lookup, request coalescing, CDN -> Content API
fallback and graceful degradation to per-operation defaults.
"""
import logging
import threading
import time
from concurrent.futures import Future, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config.settings import settings
from blogview.exceptions import (
    SoftFailureError,
    TotalFailureError,
    UpstreamError,
    UpstreamTimeoutError,
)
from blogview.graphql_client import GraphQLClient
from blogview.telemetry import PerformanceMetrics, get_metrics
from blogview.utils.images import optimize_image_urls

from .backends import SQLiteBackend
from .coalescer import RequestCoalescer
from .core import OperationCategory, StorageError, generate_cache_key
from .store import CacheStore

logger = logging.getLogger("cache.orchestrator")


@dataclass(frozen=True)
class Operation:
    """
    A logical read operation against the content API.

    Attributes:
        name: Operation name, used as the cache key prefix
        query: GraphQL document
        category: Decides the cache TTL
        root_field: Top-level field a valid payload must carry
        default_factory: Builds the value returned when every endpoint fails
        propagate_errors: Raise TotalFailureError instead of returning a default
        transform: Optional reshaping of the root field value before caching
        optimize_images: Add quality parameters to image URLs in the value
    """
    name: str
    query: str
    category: OperationCategory
    root_field: str
    default_factory: Callable[[], Any] = list
    propagate_errors: bool = False
    transform: Optional[Callable[[Any], Any]] = None
    optimize_images: bool = False


class FetchOrchestrator:
    """
    Single entry point for content reads.

    For each call:
    1. Build the cache key from operation name + variables
    2. Serve a valid cache entry without touching the network
    3. On miss, run the upstream fetch through the coalescer
    4. Try the primary endpoint, then the fallback, each with a client-side timeout
    5. Write successes through to the cache
    6. When both endpoints fail, return the operation default (or raise)
    """

    def __init__(
        self,
        store: CacheStore,
        coalescer: RequestCoalescer,
        client,
        metrics: PerformanceMetrics,
        primary_url: str,
        fallback_url: Optional[str] = None,
        request_timeout: float = 15.0,
        image_quality: int = 80,
    ):
        """
        Args:
            store: Cache store for write-through results
            coalescer: Deduplicates concurrent misses
            client: Transport exposing post(url, query, variables, timeout, authenticated)
            metrics: Telemetry counters
            primary_url: Endpoint tried first (CDN)
            fallback_url: Endpoint tried when the primary fails (Content API)
            request_timeout: Seconds each attempt may take
            image_quality: Quality parameter added to image URLs
        """
        self._store = store
        self._coalescer = coalescer
        self._client = client
        self._metrics = metrics
        self._primary_url = primary_url
        self._fallback_url = fallback_url
        self._request_timeout = request_timeout
        self._image_quality = image_quality

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def coalescer(self) -> RequestCoalescer:
        return self._coalescer

    @property
    def metrics(self) -> PerformanceMetrics:
        return self._metrics

    def _endpoints(self) -> List[str]:
        endpoints = [self._primary_url]
        if self._fallback_url and self._fallback_url != self._primary_url:
            endpoints.append(self._fallback_url)
        return endpoints

    def fetch(
        self,
        operation: Operation,
        variables: Optional[Dict[str, Any]] = None,
        use_cache: bool = True,
        force_refresh: bool = False,
    ) -> Any:
        """
        Get data for an operation from cache or upstream.

        Args:
            operation: The logical operation
            variables: GraphQL variables
            use_cache: Read from and write to the cache store (coalescing always applies)
            force_refresh: Skip the cache read but still write through

        Returns:
            Fresh or cached data, or the operation default on total failure

        Raises:
            TotalFailureError: Both endpoints failed and the operation propagates errors
        """
        variables = dict(variables or {})
        cache_key = generate_cache_key(operation.name, variables)

        if use_cache and not force_refresh:
            cached = self._store.get(cache_key)
            if cached is not None:
                self._metrics.record_cache_hit()
                logger.debug(f"CACHE HIT: {cache_key}")
                return cached

        self._metrics.record_cache_miss()
        logger.info(f"CACHE MISS: {cache_key}" + (" (forced)" if force_refresh else ""))
        if force_refresh:
            # A forced refresh may still join an in-flight request, never a completed one
            self._coalescer.forget(cache_key)

        def fetch_and_store():
            value = self._fetch_upstream(operation, variables)
            if use_cache:
                self._store.set(cache_key, value, self._store.get_ttl_for(operation.category))
            return value

        try:
            return self._coalescer.execute(cache_key, fetch_and_store)
        except (TotalFailureError, TimeoutError) as e:
            if operation.propagate_errors:
                raise
            logger.error(f"Serving default for {operation.name}: {e}")
            return operation.default_factory()

    def _fetch_upstream(self, operation: Operation, variables: Dict[str, Any]) -> Any:
        """
        Try each endpoint in order; raise TotalFailureError when all fail.

        Success/failure and response time are recorded once, for the attempt
        that decided the outcome. Earlier failed attempts only reach the error
        log (and the timeout counter).
        """
        endpoints = self._endpoints()
        errors: List[Exception] = []
        elapsed_ms = 0.0
        for index, url in enumerate(endpoints):
            if index > 0:
                logger.info(f"Falling back to {url} for {operation.name}")
            started = time.perf_counter()
            try:
                value = self._attempt(operation, url, variables)
            except UpstreamError as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.warning(f"{operation.name} failed on {url}: {e}")
                if isinstance(e, UpstreamTimeoutError):
                    self._metrics.record_timeout()
                if index < len(endpoints) - 1:
                    self._metrics.record_error(e, operation=operation.name)
                errors.append(e)
                continue

            elapsed_ms = (time.perf_counter() - started) * 1000
            self._metrics.record_api_call(True, elapsed_ms, operation=operation.name)
            return value

        self._metrics.record_api_call(False, elapsed_ms, error=errors[-1], operation=operation.name)
        raise TotalFailureError(operation.name, errors)

    def _call_with_timeout(self, url: str, query: str, variables: Dict[str, Any], authenticated: bool = False) -> Any:
        """
        Race one upstream call against the request timeout.

        Each attempt gets its own daemon thread, so an abandoned attempt never
        delays the next one.
        """
        future: Future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(
                    self._client.post(url, query, variables, self._request_timeout, authenticated)
                )
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name=f"upstream-{url}", daemon=True).start()
        try:
            return future.result(timeout=self._request_timeout)
        except FuturesTimeoutError:
            # Late results are discarded
            raise UpstreamTimeoutError(
                f"No response from {url} within {self._request_timeout}s",
                endpoint=url,
            )

    def _attempt(self, operation: Operation, url: str, variables: Dict[str, Any]) -> Any:
        """One classified attempt against a single endpoint."""
        payload = self._call_with_timeout(url, operation.query, variables)
        return self._classify(operation, payload, url)

    def _classify(self, operation: Operation, payload: Any, url: str) -> Any:
        """Check the expected top-level field and shape the value for caching."""
        if not isinstance(payload, dict):
            raise SoftFailureError(f"Malformed payload for {operation.name}", endpoint=url)

        value = payload.get(operation.root_field)
        if value is None:
            raise SoftFailureError(
                f"Payload for {operation.name} is missing '{operation.root_field}'",
                endpoint=url,
            )

        if operation.transform is not None:
            try:
                value = operation.transform(value)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise SoftFailureError(
                    f"Unexpected shape for '{operation.root_field}' in {operation.name}: {e}",
                    endpoint=url,
                ) from e
        if operation.optimize_images:
            value = optimize_image_urls(value, self._image_quality)
        return value

    def mutate(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send a mutation to the Content API.

        Mutations bypass the cache and the coalescer, always surface errors,
        and clear cached reads on success.

        Raises:
            UpstreamError: The mutation failed
        """
        url = self._fallback_url or self._primary_url
        started = time.perf_counter()
        try:
            result = self._call_with_timeout(url, query, dict(variables or {}), authenticated=True)
        except UpstreamError as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if isinstance(e, UpstreamTimeoutError):
                self._metrics.record_timeout()
            self._metrics.record_api_call(False, elapsed_ms, error=e, operation="mutation")
            logger.error(f"Mutation failed on {url}: {e}")
            raise

        self._metrics.record_api_call(True, (time.perf_counter() - started) * 1000, operation="mutation")
        self.clear()
        return result

    def stats(self) -> Dict[str, Any]:
        return {
            "cache": self._store.stats(),
            "coalescer": self._coalescer.get_stats(),
        }

    def prune(self) -> int:
        """Evict expired cache entries; returns the number removed."""
        return self._store.prune()

    def clear(self) -> int:
        """Remove every cached entry and recent dedup result; returns entries removed."""
        self._coalescer.clear()
        return self._store.clear()


# Global orchestrator instance
_orchestrator: Optional[FetchOrchestrator] = None


def build_orchestrator() -> FetchOrchestrator:
    """Assemble an orchestrator from the configured settings."""
    backend = None
    if settings.cache_durable_enabled:
        try:
            backend = SQLiteBackend(settings.cache_db_path)
        except StorageError as e:
            logger.warning(f"Durable cache unavailable, using memory cache only: {e}")

    return FetchOrchestrator(
        store=CacheStore(backend=backend, namespace=settings.cache_namespace),
        coalescer=RequestCoalescer(
            completed_ttl=settings.dedup_completed_ttl_seconds,
            timeout=settings.coalesce_wait_timeout_seconds,
        ),
        client=GraphQLClient(auth_token=settings.hygraph_auth_token),
        metrics=get_metrics(),
        primary_url=settings.hygraph_cdn_api,
        fallback_url=settings.hygraph_content_api,
        request_timeout=settings.request_timeout_seconds,
        image_quality=settings.image_quality,
    )


def get_orchestrator() -> FetchOrchestrator:
    """Get or create the global orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator
