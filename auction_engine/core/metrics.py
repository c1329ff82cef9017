"""
Prometheus metrics for monitoring
"""
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# ==================== Bid Metrics ====================

bids_placed_total = Counter(
    'auction_bids_placed_total',
    'Total bids accepted'
)

bid_rejections_total = Counter(
    'auction_bid_rejections_total',
    'Total bids rejected',
    ['reason']
)

bids_cancelled_total = Counter(
    'auction_bids_cancelled_total',
    'Total bids cancelled',
    ['outcome']  # promoted, reset
)

bid_placement_duration_seconds = Histogram(
    'auction_bid_placement_duration_seconds',
    'Time to place a bid including retries',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0]
)

# ==================== Transaction Metrics ====================

transaction_retries_total = Counter(
    'auction_transaction_retries_total',
    'Transaction attempts retried after a conflict or store fault',
    ['operation', 'reason']
)

# ==================== Settlement Metrics ====================

settlements_total = Counter(
    'auction_settlements_total',
    'Listings settled',
    ['outcome']  # sold, ended_no_bids, noop
)

orders_created_total = Counter(
    'auction_orders_created_total',
    'Orders created',
    ['type']
)

payments_confirmed_total = Counter(
    'auction_payments_confirmed_total',
    'Payment confirmations consumed',
    ['status']
)

sweep_duration_seconds = Histogram(
    'auction_scheduler_sweep_duration_seconds',
    'Time for one scheduler sweep',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

sweep_failures_total = Counter(
    'auction_scheduler_settlement_failures_total',
    'Listings whose settlement failed during a sweep'
)

# ==================== Notification Metrics ====================

notifications_failed_total = Counter(
    'auction_notifications_failed_total',
    'Event notifications that could not be published',
    ['event_type']
)


def get_metrics():
    """Get current metrics in Prometheus format"""
    return generate_latest(), CONTENT_TYPE_LATEST
