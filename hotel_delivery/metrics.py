from prometheus_client import Counter, Histogram

ORDERS_PLACED = Counter(
    "orders_placed_total",
    "Orders committed, by payment method",
    ["payment_method"],
)

ORDER_REJECTIONS = Counter(
    "order_rejections_total",
    "Order placements rejected before commit",
    ["reason"],  # InvalidArgument | NotFound | PreconditionFailed | ...
)

ORDER_TRANSACTION_RETRIES = Counter(
    "order_transaction_retries_total",
    "Order transactions retried after a transient conflict",
)

STATUS_TRANSITIONS = Counter(
    "order_status_transitions_total",
    "Order status changes applied",
    ["from_status", "to_status"],
)

STATUS_CONFLICTS = Counter(
    "order_status_conflicts_total",
    "Status updates rejected by the optimistic concurrency check",
)

NOTIFICATION_FAILURES = Counter(
    "order_notification_failures_total",
    "Best-effort notifications that failed after commit",
    ["notification"],  # order_placed | status_changed
)

SEARCH_RESULTS = Histogram(
    "hotel_search_results",
    "Number of hotels returned by a proximity search",
    buckets=[0, 1, 2, 5, 10, 15, 20],
)
