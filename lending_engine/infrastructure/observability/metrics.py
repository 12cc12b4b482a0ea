"""Prometheus metrics for decisioning, payment collection and transfer reconciliation"""

from prometheus_client import Counter, Histogram, Gauge

# Decisioning metrics
decision_counter = Counter(
    "lending_decision_total",
    "Total underwriting decisions made",
    ["outcome"],  # approved | declined | pending
)

score_histogram = Histogram(
    "lending_decision_score",
    "Distribution of decision scores",
    buckets=[400, 500, 580, 620, 650, 700, 750, 800, 850],
)

offers_generated_counter = Counter(
    "lending_offers_generated_total",
    "Installment offers generated",
    ["term_months"],
)

# Payment collection metrics
payment_initiation_counter = Counter(
    "lending_payment_initiations_total",
    "ACH debit initiation attempts",
    ["outcome"],  # initiated | failed | skipped
)

retry_scheduled_counter = Counter(
    "lending_payment_retries_scheduled_total",
    "Failed payments put back on the schedule",
)

overdue_marked_counter = Counter(
    "lending_payments_marked_overdue_total",
    "Payments aged into overdue",
)

loan_default_counter = Counter(
    "lending_loans_defaulted_total",
    "Loans escalated to defaulted",
)

payment_run_duration_histogram = Histogram(
    "lending_payment_run_duration_seconds",
    "Duration of the batch payment run",
    buckets=[1, 5, 15, 30, 60, 120, 300, 600],
)

last_payment_run_gauge = Gauge(
    "lending_payment_run_last_success_timestamp",
    "Unix time of the last completed payment run",
)

# Transfer provider metrics
transfer_event_counter = Counter(
    "lending_transfer_events_total",
    "Transfer webhook events received",
    ["event_type", "result"],  # result: applied | duplicate | unknown | ignored | rejected
)

transfer_api_latency_histogram = Histogram(
    "transfer_api_latency_seconds",
    "Transfer provider API response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

transfer_api_failures_counter = Counter(
    "transfer_api_failures_total",
    "Failed transfer provider calls",
    ["operation"],
)

# Outbound events
event_webhook_latency_histogram = Histogram(
    "event_webhook_latency_seconds",
    "Outbound domain event delivery time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

event_webhook_failure_counter = Counter(
    "event_webhook_failures_total",
    "Failed outbound domain event deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(decision_status: str, score: int) -> None:
    """Record decision metrics for monitoring approval rates and score distribution"""
    decision_counter.labels(outcome=decision_status).inc()
    score_histogram.observe(score)


def record_payment_run(summary) -> None:
    """Record counters for a finished batch payment run"""
    payment_initiation_counter.labels(outcome="initiated").inc(summary.successful)
    payment_initiation_counter.labels(outcome="failed").inc(summary.failed)
    payment_initiation_counter.labels(outcome="skipped").inc(summary.skipped)
    retry_scheduled_counter.inc(summary.retry_scheduled)
    overdue_marked_counter.inc(summary.overdue_marked)
    payment_run_duration_histogram.observe(summary.duration_ms / 1000)
    last_payment_run_gauge.set_to_current_time()
