"""
Process-wide performance counters for the content data layer.

Tracks upstream call outcomes and cache effectiveness, and exports them as
JSON (for dashboards) or Prometheus text (for scraping).
"""
import logging
import math
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from config.settings import settings

logger = logging.getLogger("telemetry")

MAX_SLOW_QUERIES = 50
MAX_ERRORS = 100

_PROCESS_STARTED = time.time()


def _percentile(values: List[float], percentile: float) -> float:
    """Nearest-rank percentile, 0 for an empty list."""
    if not values:
        return 0
    ordered = sorted(values)
    index = max(0, math.ceil(len(ordered) * percentile / 100) - 1)
    return ordered[index]


def _format_uptime(seconds: float) -> str:
    days = int(seconds // 86400)
    hours = int(seconds % 86400 // 3600)
    minutes = int(seconds % 3600 // 60)
    secs = int(seconds % 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class PerformanceMetrics:
    """
    Thread-safe counters for upstream requests and cache lookups.

    Counters are running totals since the last reset(); slow queries and
    errors keep a bounded recent history.
    """

    def __init__(self, slow_query_threshold_ms: float = 3000):
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._lock = threading.Lock()
        self._registry: Optional[CollectorRegistry] = None
        self.reset()

    def reset(self) -> None:
        """Zero every counter and start a new metrics window."""
        with self._lock:
            self._last_reset = time.time()
            self._api = {
                "total": 0,
                "successful": 0,
                "failed": 0,
                "timeouts": 0,
                "totalResponseTime": 0.0,
            }
            self._cache = {"hits": 0, "misses": 0}
            self._slow_query_count = 0
            self._slow_queries: List[Dict[str, Any]] = []
            self._errors: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_api_call(
        self,
        success: bool,
        response_time_ms: Optional[float] = None,
        error: Optional[Exception] = None,
        operation: Optional[str] = None,
    ) -> None:
        """Record the outcome of one upstream fetch (or mutation)."""
        now_iso = datetime.utcnow().isoformat() + "Z"
        with self._lock:
            self._api["total"] += 1
            if success:
                self._api["successful"] += 1
            else:
                self._api["failed"] += 1
                if error is not None:
                    self._log_error(now_iso, error, operation)

            if response_time_ms is not None:
                self._api["totalResponseTime"] += response_time_ms
                if response_time_ms > self.slow_query_threshold_ms:
                    self._slow_query_count += 1
                    self._slow_queries.append({
                        "timestamp": now_iso,
                        "duration": response_time_ms,
                        "operation": operation,
                    })
                    del self._slow_queries[:-MAX_SLOW_QUERIES]

        if response_time_ms is not None and response_time_ms > self.slow_query_threshold_ms:
            logger.warning(f"Slow upstream call: {operation} took {response_time_ms:.0f}ms")

    def _log_error(self, timestamp: str, error: Exception, operation: Optional[str]) -> None:
        """Append to the bounded error log. Must be called with the lock held."""
        self._errors.append({
            "timestamp": timestamp,
            "error": str(error),
            "type": getattr(error, "kind", type(error).__name__),
            "operation": operation,
        })
        del self._errors[:-MAX_ERRORS]

    def record_error(self, error: Exception, operation: Optional[str] = None) -> None:
        """Log a failed attempt that did not decide the outcome of a fetch."""
        now_iso = datetime.utcnow().isoformat() + "Z"
        with self._lock:
            self._log_error(now_iso, error, operation)

    def record_timeout(self) -> None:
        with self._lock:
            self._api["timeouts"] += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache["hits"] += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self._cache["misses"] += 1

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Full metrics report with derived rates and health checks."""
        with self._lock:
            api = dict(self._api)
            cache = dict(self._cache)
            slow_durations = [q["duration"] for q in self._slow_queries]
            slow_query_count = self._slow_query_count
            recent_errors = list(self._errors[-10:])
            last_reset = self._last_reset

        total_calls = api["total"]
        success_rate = (api["successful"] / total_calls * 100) if total_calls else 100.0
        error_rate = (api["failed"] / total_calls * 100) if total_calls else 0.0
        average_response_time = (api["totalResponseTime"] / total_calls) if total_calls else 0.0

        total_lookups = cache["hits"] + cache["misses"]
        hit_rate = (cache["hits"] / total_lookups * 100) if total_lookups else 0.0

        if success_rate < 90:
            api_status = "unhealthy"
        elif success_rate < 95:
            api_status = "degraded"
        elif average_response_time > self.slow_query_threshold_ms:
            api_status = "warning"
        else:
            api_status = "healthy"

        if not total_lookups:
            cache_status = "unknown"
        elif hit_rate < 30:
            cache_status = "unhealthy"
        elif hit_rate < 50:
            cache_status = "warning"
        else:
            cache_status = "healthy"

        if "unhealthy" in (api_status, cache_status):
            status = "unhealthy"
        elif api_status == "healthy" and cache_status in ("healthy", "unknown"):
            status = "healthy"
        else:
            status = "warning"

        uptime = time.time() - _PROCESS_STARTED
        now = time.time()

        return {
            "status": status,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "api": {
                "status": api_status,
                "requests": {
                    "total": total_calls,
                    "successful": api["successful"],
                    "failed": api["failed"],
                    "timeouts": api["timeouts"],
                    "successRate": round(success_rate, 2),
                },
                "performance": {
                    "averageResponseTime": round(average_response_time, 2),
                    "slowQueries": slow_query_count,
                    "p95ResponseTime": _percentile(slow_durations, 95),
                    "p99ResponseTime": _percentile(slow_durations, 99),
                },
            },
            "cache": {
                "status": cache_status,
                "hits": cache["hits"],
                "misses": cache["misses"],
                "total": total_lookups,
                "hitRate": round(hit_rate, 2),
            },
            "checks": [
                {
                    "name": "API Response Time",
                    "status": "healthy" if average_response_time < self.slow_query_threshold_ms else "warning",
                    "value": round(average_response_time, 2),
                    "threshold": self.slow_query_threshold_ms,
                },
                {
                    "name": "Success Rate",
                    "status": "healthy" if success_rate >= 95 else "warning" if success_rate >= 90 else "unhealthy",
                    "value": round(success_rate, 2),
                    "threshold": 95,
                },
                {
                    "name": "Cache Hit Rate",
                    "status": "healthy" if hit_rate >= 60 else "warning" if hit_rate >= 30 else "unhealthy",
                    "value": round(hit_rate, 2),
                    "threshold": 60,
                },
                {
                    "name": "Error Rate",
                    "status": "healthy" if error_rate <= 5 else "warning",
                    "value": round(error_rate, 2),
                    "threshold": 5,
                },
            ],
            "recentErrors": recent_errors,
            "metricsWindow": {
                "startTime": datetime.utcfromtimestamp(last_reset).isoformat() + "Z",
                "duration": round(now - last_reset, 3),
            },
            "uptime": {
                "seconds": round(uptime, 3),
                "human": _format_uptime(uptime),
            },
        }

    def quick_status(self) -> Dict[str, Any]:
        with self._lock:
            successful = self._api["successful"]
        return {
            "status": "healthy" if successful > 0 else "unknown",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "uptime": round(time.time() - _PROCESS_STARTED, 3),
        }

    def collect(self):
        """Prometheus collector hook; yields metric families from a snapshot."""
        metrics = self.snapshot()
        requests = metrics["api"]["requests"]

        api_requests = CounterMetricFamily(
            "hygraph_api_requests",
            "Total number of upstream API requests",
            labels=["status"],
        )
        api_requests.add_metric(["successful"], requests["successful"])
        api_requests.add_metric(["failed"], requests["failed"])
        yield api_requests

        yield CounterMetricFamily(
            "hygraph_api_timeouts",
            "Total number of upstream API requests that timed out",
            value=requests["timeouts"],
        )
        yield GaugeMetricFamily(
            "hygraph_api_response_time_ms",
            "Average upstream API response time in milliseconds",
            value=metrics["api"]["performance"]["averageResponseTime"],
        )
        yield CounterMetricFamily(
            "hygraph_slow_queries",
            "Total number of upstream calls slower than the slow-query threshold",
            value=metrics["api"]["performance"]["slowQueries"],
        )
        yield GaugeMetricFamily(
            "hygraph_cache_hit_rate",
            "Cache hit rate percentage",
            value=metrics["cache"]["hitRate"],
        )

        cache_ops = CounterMetricFamily(
            "hygraph_cache_operations",
            "Total cache lookups",
            labels=["type"],
        )
        cache_ops.add_metric(["hit"], metrics["cache"]["hits"])
        cache_ops.add_metric(["miss"], metrics["cache"]["misses"])
        yield cache_ops

    def to_prometheus(self) -> str:
        """Render the counters in the Prometheus text exposition format."""
        if self._registry is None:
            registry = CollectorRegistry()
            registry.register(self)
            self._registry = registry
        return generate_latest(self._registry).decode("utf-8")


# Global metrics instance
_metrics: Optional[PerformanceMetrics] = None


def get_metrics() -> PerformanceMetrics:
    """Get or create the global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = PerformanceMetrics(slow_query_threshold_ms=settings.slow_query_threshold_ms)
    return _metrics
