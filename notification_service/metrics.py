from prometheus_client import Counter

NOTIFICATIONS = Counter(
    "notifications_emitted_total",
    "Notifications emitted by notification service",
    ["kind"],  # order_confirmation | hotel_alert | status_update | parse_error
)
