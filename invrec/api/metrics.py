"""Metrics service for tracking API performance.

Singleton service counting recommendation calls per endpoint and their
latency.
"""

import threading
from typing import Dict


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters and latency tracking for recommendation calls.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._lock = threading.Lock()
        self.reset()
        self._initialized = True

    def record_call(self, endpoint: str, latency_ms: float) -> None:
        """Record a recommendation call with its latency.

        Args:
            endpoint: Short endpoint name, e.g. ``variant`` or ``public``
            latency_ms: Latency in milliseconds
        """
        with self._lock:
            self._call_count += 1
            self._calls_by_endpoint[endpoint] = self._calls_by_endpoint.get(endpoint, 0) + 1
            self._total_latency_ms += latency_ms
            self._min_latency_ms = min(self._min_latency_ms, latency_ms)
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)

    def record_generation(self) -> None:
        with self._lock:
            self._generation_count += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with:
            - call_count: Total number of recommendation calls
            - calls_by_endpoint: Call count per endpoint name
            - generation_count: Number of generation runs started via the API
            - average_latency_ms / min_latency_ms / max_latency_ms
        """
        with self._lock:
            avg_latency = self._total_latency_ms / self._call_count if self._call_count > 0 else 0.0

            return {
                "call_count": self._call_count,
                "calls_by_endpoint": dict(self._calls_by_endpoint),
                "generation_count": self._generation_count,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(self._min_latency_ms, 2)
                if self._min_latency_ms != float("inf")
                else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._call_count = 0
            self._calls_by_endpoint: Dict[str, int] = {}
            self._generation_count = 0
            self._total_latency_ms = 0.0
            self._min_latency_ms = float("inf")
            self._max_latency_ms = 0.0


# Global singleton instance
metrics_service = MetricsService()
