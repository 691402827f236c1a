"""
Tiered refund policies.

Pure calculations with no database or gateway access. Both policies map
elapsed time to a refund share and report the rounded refund amount plus
a tier label for caller messaging.

Service cancellation (escrowed offers):
    no scheduled date        -> 100%
    >= 12h before service    -> 100%
    <  12h before service    -> 70% (provider keeps 30%)

Ad cancellation (by campaign duration, days since start):
    daily    -> no refund
    weekly   -> 100% within 1 day, 75% within 3 days, else none
    monthly  -> 100% within 3 days, 75% within 7 days,
                prorated by remaining days within 15 days, else none

Usage:
    from payments.refund_policy import RefundPolicyEngine

    decision = RefundPolicyEngine().service_cancellation(
        scheduled_date=payment.scheduled_date,
        scheduled_time=payment.scheduled_time,
        amount=payment.amount,
    )
    decision.percentage   # 100 or 70
    decision.refund_amount
"""

from __future__ import annotations

import datetime
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone

from core.exceptions import ValidationError


class RefundTier:
    NONE = "none"
    FULL = "full"
    PARTIAL = "partial"
    PRORATED = "prorated"


class AdDuration:
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    ALL = (DAILY, WEEKLY, MONTHLY)


SECONDS_PER_DAY = 24 * 60 * 60


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def tier_for_percentage(percentage) -> str:
    if percentage >= 100:
        return RefundTier.FULL
    if percentage <= 0:
        return RefundTier.NONE
    return RefundTier.PARTIAL


@dataclass(frozen=True)
class RefundDecision:
    """
    Result of a refund policy.

    Attributes:
        percentage: Refunded share of the original amount (0..100)
        tier: none | full | partial | prorated
        refund_amount: Rounded amount to refund, in the caller's units
        hours_until_service: Service policy only
        days_since_start: Ad policy only
    """

    percentage: int | Decimal
    tier: str
    refund_amount: int
    hours_until_service: float | None = None
    days_since_start: int | None = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


def scheduled_datetime(scheduled_date: datetime.date | None, scheduled_time: str | None) -> datetime.datetime | None:
    """
    Combine the agreed date and "HH:MM" time into an aware datetime.

    Missing or unparseable times fall back to the start of the day.
    """
    if scheduled_date is None:
        return None

    at = datetime.time(0, 0)
    if scheduled_time:
        try:
            at = datetime.time.fromisoformat(scheduled_time.strip())
        except ValueError:
            pass

    return timezone.make_aware(
        datetime.datetime.combine(scheduled_date, at),
        timezone.get_current_timezone(),
    )


class RefundPolicyEngine:
    """
    Stateless refund calculator.

    Thresholds default to the SERVICE_CANCELLATION_* settings.
    """

    def __init__(
        self,
        full_refund_hours: int | None = None,
        late_refund_percent: int | None = None,
    ):
        self.full_refund_hours = (
            full_refund_hours
            if full_refund_hours is not None
            else getattr(settings, "SERVICE_CANCELLATION_FULL_REFUND_HOURS", 12)
        )
        self.late_refund_percent = (
            late_refund_percent
            if late_refund_percent is not None
            else getattr(settings, "SERVICE_CANCELLATION_LATE_REFUND_PERCENT", 70)
        )

    def service_cancellation(
        self,
        scheduled_date: datetime.date | None,
        scheduled_time: str | None = None,
        amount: int = 0,
        now: datetime.datetime | None = None,
    ) -> RefundDecision:
        """
        Refund for cancelling an engagement.

        Args:
            scheduled_date/scheduled_time: Agreed service slot (may be unset)
            amount: Paid amount in minor units
            now: Evaluation time (defaults to timezone.now())
        """
        service_at = scheduled_datetime(scheduled_date, scheduled_time)
        if service_at is None:
            return RefundDecision(percentage=100, tier=RefundTier.FULL, refund_amount=amount)

        now = now or timezone.now()
        hours_until = (service_at - now).total_seconds() / 3600

        percentage = 100 if hours_until >= self.full_refund_hours else self.late_refund_percent
        return RefundDecision(
            percentage=percentage,
            tier=tier_for_percentage(percentage),
            refund_amount=round_half_up(Decimal(amount) * percentage / 100),
            hours_until_service=round(hours_until, 2),
        )

    def ad_cancellation(
        self,
        duration: str,
        start_date: datetime.datetime,
        end_date: datetime.datetime,
        total_amount,
        now: datetime.datetime | None = None,
    ) -> RefundDecision:
        """
        Refund for cancelling an ad campaign.

        Args:
            duration: daily | weekly | monthly
            start_date/end_date: Campaign window
            total_amount: Campaign budget in major units
            now: Evaluation time (defaults to timezone.now())

        Raises:
            ValidationError: Unknown duration
        """
        if duration not in AdDuration.ALL:
            raise ValidationError(
                f"Unknown ad duration: {duration}",
                details={"duration": [f"Must be one of {', '.join(AdDuration.ALL)}."]},
            )

        now = now or timezone.now()
        total = Decimal(str(total_amount))
        days_since_start = int((now - start_date).total_seconds() // SECONDS_PER_DAY)
        total_days = int((end_date - start_date).total_seconds() // SECONDS_PER_DAY)

        refund_amount = 0
        tier = RefundTier.NONE
        percentage: int | Decimal = 0

        if duration == AdDuration.WEEKLY:
            if days_since_start <= 1:
                refund_amount, tier, percentage = round_half_up(total), RefundTier.FULL, 100
            elif days_since_start <= 3:
                refund_amount, tier, percentage = round_half_up(total * Decimal("0.75")), RefundTier.PARTIAL, 75

        elif duration == AdDuration.MONTHLY:
            if days_since_start <= 3:
                refund_amount, tier, percentage = round_half_up(total), RefundTier.FULL, 100
            elif days_since_start <= 7:
                refund_amount, tier, percentage = round_half_up(total * Decimal("0.75")), RefundTier.PARTIAL, 75
            elif days_since_start <= 15 and total_days > 0:
                remaining_days = total_days - days_since_start
                refund_amount = max(round_half_up(remaining_days * (total / total_days)), 0)
                tier = RefundTier.PRORATED
                percentage = (
                    (Decimal(refund_amount) / total * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
                    if total
                    else Decimal("0")
                )

        return RefundDecision(
            percentage=percentage,
            tier=tier,
            refund_amount=refund_amount,
            days_since_start=days_since_start,
        )
