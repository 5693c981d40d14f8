"""Prometheus metrics for payment volume, rejections, refinancings and voids"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Payment metrics
payment_counter = Counter(
    "ledger_payments_total",
    "Payments allocated",
    ["modality", "mode"],  # comun | progresivo | libre, total | parcial
)

payment_amount_histogram = Histogram(
    "ledger_payment_amount",
    "Allocated payment amounts",
    buckets=[1_000, 5_000, 10_000, 25_000, 50_000, 100_000, 250_000, 500_000],
)

rejection_counter = Counter(
    "ledger_rejections_total",
    "Operations rejected by a business rule",
    ["code"],
)

# Lifecycle metrics
refinancing_counter = Counter(
    "ledger_refinancings_total",
    "Credits refinanced",
    ["tier"],  # P1 | P2 | manual
)

void_counter = Counter(
    "ledger_voids_total",
    "Credits voided",
)


def record_payment(modality: str, mode: str, amount: Decimal) -> None:
    payment_counter.labels(modality=modality, mode=mode).inc()
    payment_amount_histogram.observe(float(amount))


def record_rejection(code: str) -> None:
    rejection_counter.labels(code=code).inc()


def record_refinancing(tier: str) -> None:
    refinancing_counter.labels(tier=tier).inc()


def record_void() -> None:
    void_counter.inc()
