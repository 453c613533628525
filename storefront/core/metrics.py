from __future__ import annotations

from typing import Any

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from storefront.core.config import settings


class _NoOpMetric:
    def labels(self, *args: Any, **kwargs: Any) -> "_NoOpMetric":
        return self

    def observe(self, *_: Any, **__: Any) -> None:
        return None

    def inc(self, *_: Any, **__: Any) -> None:
        return None


def _metric_or_noop(factory, *args: Any, **kwargs: Any) -> Any:
    if not settings.METRICS_ENABLED:
        return _NoOpMetric()
    return factory(*args, **kwargs)


REQUEST_LATENCY = _metric_or_noop(
    Histogram,
    f"{settings.METRICS_NAMESPACE}_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path", "status_code"],
    buckets=settings.METRICS_LATENCY_BUCKETS,
)

REQUEST_COUNT = _metric_or_noop(
    Counter,
    f"{settings.METRICS_NAMESPACE}_http_requests_total",
    "Total HTTP requests processed.",
    ["method", "path", "status_code"],
)

STOCK_OPERATIONS = _metric_or_noop(
    Counter,
    f"{settings.METRICS_NAMESPACE}_stock_operations_total",
    "Stock counter mutations partitioned by operation and outcome.",
    ["operation", "outcome"],
)

COUPON_REJECTIONS = _metric_or_noop(
    Counter,
    f"{settings.METRICS_NAMESPACE}_coupon_rejections_total",
    "Coupon validations that failed, by reason.",
    ["reason"],
)

ORDERS_PLACED = _metric_or_noop(
    Counter,
    f"{settings.METRICS_NAMESPACE}_orders_placed_total",
    "Checkout attempts partitioned by outcome.",
    ["outcome"],
)


def normalize_path(request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if path:
        return path
    return request.url.path


def record_request_metrics(request, status_code: int, elapsed: float) -> None:
    labels = (request.method, normalize_path(request), str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(elapsed)


def record_stock_operation(operation: str, outcome: str) -> None:
    STOCK_OPERATIONS.labels(operation=operation, outcome=outcome).inc()


def record_coupon_rejection(reason: str) -> None:
    COUPON_REJECTIONS.labels(reason=reason).inc()


def record_order_placement(outcome: str) -> None:
    ORDERS_PLACED.labels(outcome=outcome).inc()


def export_metrics() -> tuple[bytes, str]:
    if not settings.METRICS_ENABLED:
        return b"", "text/plain; charset=utf-8"
    return generate_latest(), CONTENT_TYPE_LATEST
