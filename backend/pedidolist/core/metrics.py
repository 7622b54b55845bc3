"""Prometheus-compatible metrics for the terminal service."""

import re
import time
import logging
from typing import Any, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

# (snapshot key, metric name, type, help)
SYNC_GAUGES = (
    ("sync_attempts", "pedidolist_sync_attempts_total", "counter", "Sync cycles started"),
    ("successful_syncs", "pedidolist_sync_success_total", "counter", "Sync cycles that finished without item errors"),
    ("failed_syncs", "pedidolist_sync_failed_total", "counter", "Sync cycles with item errors or aborted"),
    ("success_rate", "pedidolist_sync_success_rate", "gauge", "Percentage of successful sync cycles"),
    ("average_sync_seconds", "pedidolist_sync_duration_seconds_avg", "gauge", "Average successful cycle duration"),
    ("items_synced", "pedidolist_sync_items_synced_total", "counter", "Queue items confirmed by the server"),
    ("items_failed", "pedidolist_sync_items_failed_total", "counter", "Queue item attempts that failed"),
    ("conflicts", "pedidolist_sync_conflicts_total", "counter", "Conflicts resolved"),
    ("offline_seconds", "pedidolist_offline_seconds_total", "counter", "Time spent offline"),
    ("offline_sessions", "pedidolist_offline_sessions_total", "counter", "Completed offline sessions"),
    ("pending_items", "pedidolist_sync_queue_pending", "gauge", "Items waiting in the sync queue"),
    ("blocked_items", "pedidolist_sync_queue_blocked", "gauge", "Queue items that need intervention"),
    ("online", "pedidolist_online", "gauge", "Connectivity (1=online, 0=offline)"),
)


class MetricsCollector:
    """Collects HTTP request metrics in Prometheus exposition format."""

    def __init__(self):
        self.request_count: Dict[str, int] = {}
        self.request_duration: Dict[str, List[float]] = {}
        self.error_count: Dict[int, int] = {}
        self.active_requests: int = 0

    def record_request(self, method: str, path: str, status: int, duration: float):
        # Normalize path to avoid cardinality explosion
        normalized = self._normalize_path(path)
        key = f"{method} {normalized}"
        self.request_count[key] = self.request_count.get(key, 0) + 1
        if key not in self.request_duration:
            self.request_duration[key] = []
        durations = self.request_duration[key]
        durations.append(duration)
        if len(durations) > 1000:
            self.request_duration[key] = durations[-1000:]
        if status >= 400:
            self.error_count[status] = self.error_count.get(status, 0) + 1

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Replace numeric and UUID ids with :id to limit cardinality."""
        parts = path.split("/")
        return "/".join(":id" if p.isdigit() or _UUID_RE.match(p) else p for p in parts)

    def reset(self) -> None:
        self.request_count.clear()
        self.request_duration.clear()
        self.error_count.clear()
        self.active_requests = 0

    def get_prometheus_metrics(self, sync: Optional[Dict[str, Any]] = None) -> str:
        lines: List[str] = []
        lines.append("# HELP http_requests_total Total HTTP requests")
        lines.append("# TYPE http_requests_total counter")
        for key, count in sorted(self.request_count.items()):
            method, path = key.split(" ", 1)
            lines.append(f'http_requests_total{{method="{method}",path="{path}"}} {count}')

        lines.append("# HELP http_errors_total Total HTTP errors by status code")
        lines.append("# TYPE http_errors_total counter")
        for code, count in sorted(self.error_count.items()):
            lines.append(f'http_errors_total{{status="{code}"}} {count}')

        lines.append("# HELP http_active_requests Current active requests")
        lines.append("# TYPE http_active_requests gauge")
        lines.append(f"http_active_requests {self.active_requests}")

        lines.append("# HELP http_request_duration_seconds Request duration histogram")
        lines.append("# TYPE http_request_duration_seconds summary")
        for key, durations in sorted(self.request_duration.items()):
            if durations:
                method, path = key.split(" ", 1)
                avg = sum(durations) / len(durations)
                p99 = sorted(durations)[int(len(durations) * 0.99)] if len(durations) > 1 else durations[0]
                lines.append(f'http_request_duration_seconds{{method="{method}",path="{path}",quantile="0.99"}} {p99:.4f}')
                lines.append(f'http_request_duration_seconds{{method="{method}",path="{path}",quantile="0.5"}} {avg:.4f}')

        if sync:
            for key, name, kind, help_text in SYNC_GAUGES:
                if key not in sync:
                    continue
                value = float(sync[key])
                lines.append(f"# HELP {name} {help_text}")
                lines.append(f"# TYPE {name} {kind}")
                lines.append(f"{name} {value:g}")

        return "\n".join(lines) + "\n"


metrics = MetricsCollector()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        metrics.active_requests += 1
        start = time.time()
        try:
            response = await call_next(request)
            duration = time.time() - start
            metrics.record_request(
                request.method,
                request.url.path,
                response.status_code,
                duration,
            )
            return response
        except Exception:
            duration = time.time() - start
            metrics.record_request(request.method, request.url.path, 500, duration)
            raise
        finally:
            metrics.active_requests -= 1
