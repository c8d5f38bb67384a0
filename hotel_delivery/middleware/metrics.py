import re
import time

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HTTP_REQUESTS = Counter(
    "delivery_http_requests_total",
    "HTTP requests handled by the delivery API",
    ["method", "route", "status"],
)

HTTP_LATENCY = Histogram(
    "delivery_http_request_duration_seconds",
    "HTTP request latency of the delivery API",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

HTTP_IN_FLIGHT = Gauge(
    "delivery_http_requests_in_flight",
    "Requests currently being served",
)

# Collapse ids so each route is one label value.
_UUID = r"[0-9a-fA-F-]{36}"
_ROUTE_PATTERNS = [
    (re.compile(rf"^/orders/{_UUID}/(status|cancel|review)$"), r"/orders/{order_id}/\1"),
    (re.compile(rf"^/orders/hotel/{_UUID}$"), "/orders/hotel/{hotel_id}"),
    (re.compile(rf"^/orders/{_UUID}$"), "/orders/{order_id}"),
]


def route_label(path: str) -> str:
    for pattern, replacement in _ROUTE_PATTERNS:
        if pattern.match(path):
            return pattern.sub(replacement, path)
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        route = route_label(request.url.path)
        HTTP_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            HTTP_IN_FLIGHT.dec()
        HTTP_LATENCY.labels(request.method, route).observe(time.perf_counter() - start)
        HTTP_REQUESTS.labels(request.method, route, str(response.status_code)).inc()
        return response
