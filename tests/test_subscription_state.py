"""
Tests for subscription status transitions
"""

import pytest
from datetime import datetime, timedelta

from academy.models.plan import BillingCycle, SubscriptionPlan
from academy.models.subscription import SubscriptionStatus, UserSubscription
from academy.services.subscription_state import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    can_transition,
    period_end_for,
    transition,
)


NOW = datetime(2025, 3, 10, 12, 0, 0)


def _plan(cycle=BillingCycle.MONTHLY):
    return SubscriptionPlan(id="plan_123", name="pro", display_name="Pro", billing_cycle=cycle)


def _subscription(status, plan=None, **kwargs):
    subscription = UserSubscription(id="sub_123", user_id="user_123", plan_id="plan_123", status=status, **kwargs)
    subscription.plan = plan
    return subscription


class TestPeriodEnd:
    """Billing period lengths"""

    def test_monthly_is_thirty_days(self):
        assert period_end_for(_plan(BillingCycle.MONTHLY), NOW) == NOW + timedelta(days=30)

    def test_yearly_is_365_days(self):
        assert period_end_for(_plan(BillingCycle.YEARLY), NOW) == NOW + timedelta(days=365)

    def test_lifetime_never_ends(self):
        assert period_end_for(_plan(BillingCycle.LIFETIME), NOW) is None


class TestTransitionTable:
    """Which status moves are allowed"""

    @pytest.mark.parametrize("current,target", [
        (SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE),
        (SubscriptionStatus.PENDING, SubscriptionStatus.FAILED),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED),
        (SubscriptionStatus.FAILED, SubscriptionStatus.PENDING),
        (SubscriptionStatus.EXPIRED, SubscriptionStatus.ACTIVE),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED),
        (SubscriptionStatus.EXPIRED, SubscriptionStatus.FAILED),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.FAILED),
        (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(SubscriptionStatus)


class TestTransition:
    """Applying a transition to a subscription"""

    def test_activation_starts_new_period(self):
        subscription = _subscription(SubscriptionStatus.PENDING, plan=_plan())

        changed = transition(subscription, SubscriptionStatus.ACTIVE, now=NOW,
                             payment_method="stripe", payment_reference="pi_1")

        assert changed is True
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_start == NOW
        assert subscription.current_period_end == NOW + timedelta(days=30)
        assert subscription.payment_method == "stripe"
        assert subscription.payment_reference == "pi_1"
        assert subscription.updated_at == NOW

    def test_lifetime_activation_has_no_end(self):
        subscription = _subscription(SubscriptionStatus.PENDING, plan=_plan(BillingCycle.LIFETIME))

        transition(subscription, SubscriptionStatus.ACTIVE, now=NOW)

        assert subscription.current_period_end is None

    def test_explicit_period_end_wins(self):
        subscription = _subscription(SubscriptionStatus.PENDING, plan=_plan())
        end = NOW + timedelta(days=7)

        transition(subscription, SubscriptionStatus.ACTIVE, now=NOW, period_end=end)

        assert subscription.current_period_end == end

    def test_activation_clears_cancel_at_period_end(self):
        subscription = _subscription(SubscriptionStatus.CANCELLED, plan=_plan(), cancel_at_period_end=True)

        transition(subscription, SubscriptionStatus.ACTIVE, now=NOW)

        assert subscription.cancel_at_period_end is False

    def test_repeat_activation_with_same_reference_is_noop(self):
        period_end = NOW + timedelta(days=30)
        subscription = _subscription(
            SubscriptionStatus.ACTIVE, plan=_plan(),
            payment_reference="pi_1", current_period_start=NOW, current_period_end=period_end,
        )

        changed = transition(subscription, SubscriptionStatus.ACTIVE, now=NOW + timedelta(hours=1),
                             payment_reference="pi_1")

        assert changed is False
        assert subscription.current_period_start == NOW
        assert subscription.current_period_end == period_end

    def test_renewal_with_new_reference_extends(self):
        subscription = _subscription(SubscriptionStatus.ACTIVE, plan=_plan(), payment_reference="pi_1")
        later = NOW + timedelta(days=29)

        changed = transition(subscription, SubscriptionStatus.ACTIVE, now=later, payment_reference="pi_2")

        assert changed is True
        assert subscription.current_period_end == later + timedelta(days=30)
        assert subscription.payment_reference == "pi_2"

    def test_invalid_transition_raises_and_leaves_row(self):
        subscription = _subscription(SubscriptionStatus.EXPIRED, plan=_plan())

        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(subscription, SubscriptionStatus.CANCELLED, now=NOW)

        assert exc_info.value.current == SubscriptionStatus.EXPIRED
        assert exc_info.value.target == SubscriptionStatus.CANCELLED
        assert subscription.status == SubscriptionStatus.EXPIRED
        assert isinstance(exc_info.value, ValueError)

    def test_expiry_keeps_period(self):
        end = NOW - timedelta(days=1)
        subscription = _subscription(SubscriptionStatus.ACTIVE, plan=_plan(), current_period_end=end)

        transition(subscription, SubscriptionStatus.EXPIRED, now=NOW)

        assert subscription.status == SubscriptionStatus.EXPIRED
        assert subscription.current_period_end == end
