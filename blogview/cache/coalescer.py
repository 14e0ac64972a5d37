"""
Request coalescing to prevent duplicate upstream API calls.

When multiple concurrent requests ask for the same data, only one
upstream call is made and all requesters share the result. A short-lived
completed-request cache absorbs repeats that arrive right after the
shared call has finished.
"""
import threading
import time
import logging
from concurrent.futures import Executor, Future, TimeoutError as FuturesTimeoutError
from typing import Dict, Optional, Callable, Any
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    future: Future = field(default_factory=Future)
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


@dataclass
class CompletedRequest:
    """A recently completed successful result."""
    value: Any
    expires_at: float


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - A valid completed entry for the key is returned straight away
    - Otherwise the first request for a key initiates the fetch
    - Subsequent requests for the same key wait on the shared Future
    - When the fetch settles, all waiters receive the same result or error
    - Only successes are kept as completed entries
    - Thread-safe: check-then-register happens under one lock

    Usage:
        coalescer = RequestCoalescer(completed_ttl=5.0)
        result = coalescer.execute(
            "categories",
            lambda: fetch_categories(),
        )
    """

    def __init__(
        self,
        completed_ttl: float = 5.0,
        timeout: Optional[float] = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the coalescer.

        Args:
            completed_ttl: Seconds a successful result keeps satisfying repeats
            timeout: Max seconds a joined caller waits for an in-flight request
            clock: Monotonic time source
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._completed: Dict[str, CompletedRequest] = {}
        self._lock = threading.Lock()
        self._completed_ttl = completed_ttl
        self._timeout = timeout
        self._clock = clock
        self._total_requests = 0
        self._unique_requests = 0
        self._coalesced = 0

    def _claim(self, key: str):
        """
        Resolve a key to one of: completed result, joined request, new request.

        Must be called with the lock held.

        Returns:
            (completed_entry, in_flight, is_initiator)
        """
        self._total_requests += 1
        self._purge_completed()

        completed = self._completed.get(key)
        if completed is not None:
            self._coalesced += 1
            return completed, None, False

        if key in self._in_flight:
            in_flight = self._in_flight[key]
            in_flight.waiter_count += 1
            self._coalesced += 1
            logger.debug(
                f"Coalescing request for {key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            return None, in_flight, False

        in_flight = InFlightRequest()
        self._in_flight[key] = in_flight
        self._unique_requests += 1
        logger.debug(f"Initiating fetch for {key}")
        return None, in_flight, True

    def _run(self, key: str, in_flight: InFlightRequest, fetch_fn: Callable[[], Any]) -> Any:
        """Run the fetch as initiator and settle the shared Future."""
        try:
            result = fetch_fn()
        except Exception as e:
            with self._lock:
                self._in_flight.pop(key, None)
            logger.warning(f"Fetch failed for {key}: {e}")
            in_flight.future.set_exception(e)
            raise
        except BaseException:
            # Interrupted (e.g. KeyboardInterrupt); never leave the key dangling
            with self._lock:
                self._in_flight.pop(key, None)
            in_flight.future.cancel()
            raise

        with self._lock:
            self._in_flight.pop(key, None)
            self._purge_completed()
            if self._completed_ttl > 0:
                self._completed[key] = CompletedRequest(
                    value=result,
                    expires_at=self._clock() + self._completed_ttl,
                )
        in_flight.future.set_result(result)
        return result

    def execute(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Either reuse a completed result, join an in-flight request or start one.

        Args:
            key: Unique key for this request
            fetch_fn: Function to call if we need to fetch

        Returns:
            The fetched data (shared among all coalesced callers)

        Raises:
            TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        with self._lock:
            completed, in_flight, is_initiator = self._claim(key)

        if completed is not None:
            logger.debug(f"Completed-request hit for {key}")
            return completed.value

        if is_initiator:
            return self._run(key, in_flight, fetch_fn)

        # We're a waiter - wait for the initiator to complete
        try:
            return in_flight.future.result(timeout=self._timeout)
        except FuturesTimeoutError:
            logger.error(f"Timeout waiting for coalesced request: {key}")
            raise TimeoutError(f"Request for {key} timed out after {self._timeout}s")

    def execute_async(self, key: str, fetch_fn: Callable[[], Any], executor: Executor) -> Future:
        """
        Non-blocking variant of execute().

        Returns the shared Future; a new fetch runs on ``executor``.
        """
        with self._lock:
            completed, in_flight, is_initiator = self._claim(key)

        if completed is not None:
            done: Future = Future()
            done.set_result(completed.value)
            return done

        if is_initiator:
            def run():
                try:
                    self._run(key, in_flight, fetch_fn)
                except Exception:
                    pass  # Already delivered through the shared Future

            executor.submit(run)

        return in_flight.future

    def _purge_completed(self) -> None:
        """Drop expired completed entries. Must be called with the lock held."""
        now = self._clock()
        expired = [k for k, entry in self._completed.items() if entry.expires_at <= now]
        for key in expired:
            del self._completed[key]

    def forget(self, key: str) -> None:
        """Drop the completed result for key so the next call fetches again."""
        with self._lock:
            self._completed.pop(key, None)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        with self._lock:
            return len(self._in_flight)

    def clear(self) -> None:
        """Drop completed entries and counters. In-flight requests are left to settle."""
        with self._lock:
            self._completed.clear()
            self._total_requests = 0
            self._unique_requests = 0
            self._coalesced = 0
        logger.debug("Deduplication cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        with self._lock:
            self._purge_completed()
            return {
                "pendingCount": len(self._in_flight),
                "completedCount": len(self._completed),
                "pendingKeys": list(self._in_flight.keys()),
                "completedKeys": list(self._completed.keys()),
                "totalRequests": self._total_requests,
                "uniqueRequests": self._unique_requests,
                "coalescedRequests": self._coalesced,
            }
