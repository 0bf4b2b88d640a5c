# lawnly/domain/quality_policy.py
"""
Contractor standing rules.

Conditions are checked most-severe-first and the first tier with any
match wins; only that tier's reasons are reported.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from ..models.contractor import SuspensionStatus


@dataclass(frozen=True)
class QualityMetrics:
    completed_jobs: int
    disputed_jobs: int
    cancellations_7d: int
    cancellations_14d: int
    cancellations_30d: int
    one_star_ratings_7d: int
    average_rating: Optional[Decimal]

    @property
    def dispute_rate(self) -> Decimal:
        """Disputed jobs as a percentage of completed jobs."""
        if self.completed_jobs <= 0:
            return Decimal("0")
        return Decimal(self.disputed_jobs) / Decimal(self.completed_jobs) * 100

    @property
    def has_rating(self) -> bool:
        return self.average_rating is not None and self.average_rating > 0


@dataclass(frozen=True)
class StandingThresholds:
    rating_below: Decimal
    dispute_rate_above: Decimal
    cancellations: int
    cancellation_window_days: int


SUSPEND = StandingThresholds(Decimal("3.0"), Decimal("20"), 5, 30)
REVIEW = StandingThresholds(Decimal("3.5"), Decimal("10"), 3, 14)
WARNING = StandingThresholds(Decimal("4.0"), Decimal("5"), 2, 7)


@dataclass
class StandingDecision:
    status: SuspensionStatus
    reasons: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == SuspensionStatus.ACTIVE


def _cancellations_in(metrics: QualityMetrics, days: int) -> int:
    return {
        7: metrics.cancellations_7d,
        14: metrics.cancellations_14d,
        30: metrics.cancellations_30d,
    }[days]


def _match(
    metrics: QualityMetrics, thresholds: StandingThresholds, *, include_one_star: bool = False
) -> List[str]:
    reasons: List[str] = []
    if metrics.has_rating and metrics.average_rating < thresholds.rating_below:
        reasons.append(
            f"Average rating {metrics.average_rating:.2f} below {thresholds.rating_below:.1f}"
        )
    if metrics.dispute_rate > thresholds.dispute_rate_above:
        reasons.append(
            f"Dispute rate {metrics.dispute_rate:.1f}% exceeds {thresholds.dispute_rate_above}%"
        )
    cancellations = _cancellations_in(metrics, thresholds.cancellation_window_days)
    if cancellations >= thresholds.cancellations:
        reasons.append(
            f"{cancellations} cancellations in {thresholds.cancellation_window_days} days"
        )
    if include_one_star and metrics.one_star_ratings_7d > 0:
        reasons.append("Received 1-star rating in last 7 days")
    return reasons


def evaluate_standing(metrics: QualityMetrics) -> StandingDecision:
    """Return the most severe standing the metrics qualify for."""
    reasons = _match(metrics, SUSPEND)
    if reasons:
        return StandingDecision(SuspensionStatus.SUSPENDED, reasons)

    reasons = _match(metrics, REVIEW, include_one_star=True)
    if reasons:
        return StandingDecision(SuspensionStatus.REVIEW_REQUIRED, reasons)

    reasons = _match(metrics, WARNING)
    if reasons:
        return StandingDecision(SuspensionStatus.WARNING, reasons)

    return StandingDecision(SuspensionStatus.ACTIVE)
