from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_orders_created_total,
    ecomm_checkout_duration_seconds,
    ecomm_order_number_conflicts_total,
    ecomm_order_cancellations_total,
    ecomm_payment_intents_total,
    ecomm_payment_reconciliations_total,
    ecomm_notification_failures_total
)
