from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Order creation attempts",
    ["outcome"] # Labels: 'created', 'rejected', 'conflict'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds",
    "Order creation duration in seconds"
)

ecomm_order_number_conflicts_total = Counter(
    "ecomm_order_number_conflicts_total",
    "Order-number uniqueness violations that forced a retry"
)

ecomm_order_cancellations_total = Counter(
    "ecomm_order_cancellations_total",
    "Orders cancelled",
    ["refund"] # Labels: 'owed', 'none'
)

ecomm_payment_intents_total = Counter(
    "ecomm_payment_intents_total",
    "Payment intent requests",
    ["result"] # Labels: 'created', 'reused'
)

ecomm_payment_reconciliations_total = Counter(
    "ecomm_payment_reconciliations_total",
    "Gateway callbacks processed",
    ["outcome"] # Labels: 'confirmed', 'replay', 'refund_owed', 'failed', 'invalid_signature'
)

ecomm_notification_failures_total = Counter(
    "ecomm_notification_failures_total",
    "Notifications that could not be delivered",
    ["event"]
)
