"""
Metrics Collection for the notification dispatcher.

Counts delivery outcomes and claim races; timers accumulate gateway latency.
"""

import time
from typing import Dict, Any
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
import threading


class MetricsCollector:
    """Collects and manages dispatcher metrics."""

    COUNTERS = (
        "notifications_sent_total",
        "notifications_failed_total",
        "delivery_retries_total",
        "delivery_timeouts_total",
        "claims_lost_total",
        "deliveries_discarded_total",
        "stale_claims_released_total",
        "ticks_total",
    )

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        for name in self.COUNTERS:
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get(self, metric_name: str) -> int:
        with self.lock:
            return self.metrics[metric_name]

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    def notification_sent(self):
        self.increment_counter("notifications_sent_total")

    def notification_failed(self):
        self.increment_counter("notifications_failed_total")

    def retry_scheduled(self):
        self.increment_counter("delivery_retries_total")

    def delivery_timed_out(self):
        self.increment_counter("delivery_timeouts_total")

    def claim_lost(self):
        self.increment_counter("claims_lost_total")

    def delivery_discarded(self):
        self.increment_counter("deliveries_discarded_total")

    def stale_claims_released(self, count: int):
        self.increment_counter("stale_claims_released_total", count)

    def tick(self):
        self.increment_counter("ticks_total")

    @contextmanager
    def time_operation(self, metric_name: str):
        """Context manager to time an operation."""
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.record_timer(metric_name, time.monotonic() - start_time)
