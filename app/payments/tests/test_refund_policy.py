"""
Tests for RefundPolicyEngine.

Pure calculations: no database access.
"""

import datetime
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import ValidationError
from payments.refund_policy import (
    AdDuration,
    RefundPolicyEngine,
    RefundTier,
    round_half_up,
    scheduled_datetime,
)


def aware(*args) -> datetime.datetime:
    return timezone.make_aware(datetime.datetime(*args), datetime.timezone.utc)


@pytest.fixture
def policy():
    return RefundPolicyEngine()


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("0.5"), 1),
            (Decimal("1.49"), 1),
            (Decimal("2.5"), 3),
            (Decimal("70000.7"), 70001),
            (100000, 100000),
        ],
    )
    def test_rounding(self, value, expected):
        assert round_half_up(value) == expected


class TestScheduledDatetime:
    def test_combines_date_and_time(self):
        assert scheduled_datetime(datetime.date(2026, 3, 10), "14:30") == aware(2026, 3, 10, 14, 30)

    def test_unparseable_time_uses_start_of_day(self):
        assert scheduled_datetime(datetime.date(2026, 3, 10), "afternoon") == aware(2026, 3, 10)

    def test_no_date(self):
        assert scheduled_datetime(None, "10:00") is None


class TestServiceCancellation:
    def test_no_scheduled_date_is_full_refund(self, policy):
        decision = policy.service_cancellation(None, None, amount=100000)

        assert decision.percentage == 100
        assert decision.tier == RefundTier.FULL
        assert decision.refund_amount == 100000
        assert decision.hours_until_service is None

    def test_well_ahead_is_full_refund(self, policy):
        decision = policy.service_cancellation(
            datetime.date(2026, 3, 10),
            "10:00",
            amount=100000,
            now=aware(2026, 3, 9, 21, 0),
        )

        assert decision.percentage == 100
        assert decision.hours_until_service == 13

    def test_exactly_at_threshold_is_full_refund(self, policy):
        decision = policy.service_cancellation(
            datetime.date(2026, 3, 10),
            "10:00",
            amount=100000,
            now=aware(2026, 3, 9, 22, 0),
        )

        assert decision.percentage == 100

    def test_late_cancellation_is_partial(self, policy):
        decision = policy.service_cancellation(
            datetime.date(2026, 3, 10),
            "10:00",
            amount=100001,
            now=aware(2026, 3, 10, 5, 0),
        )

        assert decision.percentage == 70
        assert decision.tier == RefundTier.PARTIAL
        assert decision.refund_amount == 70001
        assert decision.hours_until_service == 5

    def test_after_service_start_is_partial(self, policy):
        decision = policy.service_cancellation(
            datetime.date(2026, 3, 10),
            "10:00",
            amount=100000,
            now=aware(2026, 3, 11, 10, 0),
        )

        assert decision.percentage == 70
        assert decision.hours_until_service == -24

    @freeze_time("2026-03-10 05:00:00")
    def test_defaults_to_current_time(self, policy):
        decision = policy.service_cancellation(datetime.date(2026, 3, 10), "10:00", amount=1000)

        assert decision.percentage == 70
        assert decision.refund_amount == 700

    def test_thresholds_configurable(self):
        policy = RefundPolicyEngine(full_refund_hours=24, late_refund_percent=50)

        decision = policy.service_cancellation(
            datetime.date(2026, 3, 10),
            "10:00",
            amount=1000,
            now=aware(2026, 3, 9, 21, 0),
        )

        assert decision.percentage == 50
        assert decision.refund_amount == 500

    def test_to_dict_omits_unset_fields(self, policy):
        decision = policy.service_cancellation(None, amount=500)

        assert decision.to_dict() == {"percentage": 100, "tier": RefundTier.FULL, "refund_amount": 500}


class TestAdCancellation:
    START = aware(2026, 1, 1)
    END = aware(2026, 1, 31)

    def cancel(self, policy, duration, days_in, total="300"):
        return policy.ad_cancellation(
            duration,
            self.START,
            self.END,
            Decimal(total),
            now=self.START + datetime.timedelta(days=days_in, hours=1),
        )

    def test_daily_never_refunds(self, policy):
        decision = self.cancel(policy, AdDuration.DAILY, 0)

        assert decision.refund_amount == 0
        assert decision.tier == RefundTier.NONE

    @pytest.mark.parametrize(
        "days_in,refund,tier",
        [
            (0, 300, RefundTier.FULL),
            (1, 300, RefundTier.FULL),
            (2, 225, RefundTier.PARTIAL),
            (3, 225, RefundTier.PARTIAL),
            (4, 0, RefundTier.NONE),
        ],
    )
    def test_weekly(self, policy, days_in, refund, tier):
        decision = self.cancel(policy, AdDuration.WEEKLY, days_in)

        assert decision.refund_amount == refund
        assert decision.tier == tier
        assert decision.days_since_start == days_in

    @pytest.mark.parametrize(
        "days_in,refund,tier",
        [
            (3, 300, RefundTier.FULL),
            (7, 225, RefundTier.PARTIAL),
            (16, 0, RefundTier.NONE),
        ],
    )
    def test_monthly(self, policy, days_in, refund, tier):
        decision = self.cancel(policy, AdDuration.MONTHLY, days_in)

        assert decision.refund_amount == refund
        assert decision.tier == tier

    def test_monthly_prorated(self, policy):
        decision = self.cancel(policy, AdDuration.MONTHLY, 10)

        # 20 of 30 days remain
        assert decision.refund_amount == 200
        assert decision.tier == RefundTier.PRORATED
        assert decision.percentage == Decimal("66.67")

    def test_unknown_duration(self, policy):
        with pytest.raises(ValidationError):
            self.cancel(policy, "yearly", 0)
