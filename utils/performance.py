"""Performance monitoring utilities using Prometheus metrics."""

from __future__ import annotations

import time
from contextlib import contextmanager

from prometheus_client import Counter, Gauge, Histogram


participations_total = Counter(
    "promo_participations_total",
    "Recorded participations",
    labelnames=("variant", "result"),
)
rejections_total = Counter(
    "promo_rejections_total",
    "Participation attempts rejected by the eligibility gate",
    labelnames=("reason",),
)
cap_denials_total = Counter("promo_cap_denials_total", "Wins converted to no-win by a cap")
conflict_retries_total = Counter("promo_conflict_retries_total", "Write transactions retried after a conflict")
reward_codes_issued_total = Counter("promo_reward_codes_issued_total", "Reward codes issued")
redemptions_total = Counter(
    "promo_redemptions_total",
    "Reward redemption attempts",
    labelnames=("result",),
)
submission_duration = Histogram("promo_submission_duration_seconds", "Participation submission duration")
db_connections = Gauge("promo_db_connection_pool_size", "DB connection pool size")


class EngineMetrics:
    def __init__(self) -> None:
        self.metrics = {
            "participations_total": participations_total,
            "rejections_total": rejections_total,
            "cap_denials_total": cap_denials_total,
            "conflict_retries_total": conflict_retries_total,
            "reward_codes_issued_total": reward_codes_issued_total,
            "redemptions_total": redemptions_total,
            "submission_duration": submission_duration,
            "db_connections": db_connections,
        }

    @contextmanager
    def track_submission(self):
        start = time.perf_counter()
        try:
            yield
        finally:
            submission_duration.observe(time.perf_counter() - start)

    def record_participation(self, variant: str, result: str) -> None:
        participations_total.labels(variant=variant, result=result).inc()

    def record_rejection(self, reason: str) -> None:
        rejections_total.labels(reason=reason).inc()

    def record_cap_denial(self) -> None:
        cap_denials_total.inc()

    def record_conflict_retry(self) -> None:
        conflict_retries_total.inc()

    def record_code_issued(self) -> None:
        reward_codes_issued_total.inc()

    def record_redemption(self, result: str) -> None:
        redemptions_total.labels(result=result).inc()

    def record_db_pool(self, pool_size: int) -> None:
        db_connections.set(pool_size)
