"""
Subscription status transitions.

Every status change on a UserSubscription goes through ``transition`` so the
allowed moves live in one table. The function only mutates the ORM object;
callers own the surrounding database transaction and commit once for all
rows touched by one business operation.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from academy.models.plan import BILLING_CYCLE_DAYS, BillingCycle, SubscriptionPlan
from academy.models.subscription import SubscriptionStatus, UserSubscription

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    SubscriptionStatus.PENDING: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.FAILED,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
    },
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.CANCELLED,
    },
    SubscriptionStatus.FAILED: {SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE},
    SubscriptionStatus.EXPIRED: {SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE},
    SubscriptionStatus.CANCELLED: {SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE},
}


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed from the current status"""

    def __init__(self, current: SubscriptionStatus, target: SubscriptionStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change subscription status from '{current.value}' to '{target.value}'")


def period_end_for(plan: SubscriptionPlan, start: datetime) -> Optional[datetime]:
    """End of the billing period that starts at ``start``; None for lifetime plans"""
    cycle = BillingCycle(plan.billing_cycle)
    days = BILLING_CYCLE_DAYS[cycle]
    if days is None:
        return None
    return start + timedelta(days=days)


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def transition(
    subscription: UserSubscription,
    target: SubscriptionStatus,
    *,
    now: Optional[datetime] = None,
    plan: Optional[SubscriptionPlan] = None,
    period_end: Optional[datetime] = None,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
) -> bool:
    """
    Move a subscription to ``target``.

    Activation starts a new billing period at ``now``. The period end is
    ``period_end`` when given, otherwise it is derived from ``plan`` (or the
    subscription's own plan).

    Returns:
        True if the subscription changed, False when the call repeats an
        activation that was already applied with the same payment reference.

    Raises:
        InvalidTransitionError: if ``target`` is not reachable from the
            current status
    """
    now = now or datetime.utcnow()
    current = SubscriptionStatus(subscription.status)

    if (
        current == SubscriptionStatus.ACTIVE
        and target == SubscriptionStatus.ACTIVE
        and payment_reference is not None
        and subscription.payment_reference == payment_reference
    ):
        logger.info(f"transition: Already applied - subscription: {subscription.id}, reference: {payment_reference}")
        return False

    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)

    if target == SubscriptionStatus.ACTIVE:
        plan = plan or subscription.plan
        subscription.current_period_start = now
        if period_end is not None:
            subscription.current_period_end = period_end
        elif plan is not None:
            subscription.current_period_end = period_end_for(plan, now)
        subscription.cancel_at_period_end = False

    if payment_method is not None:
        subscription.payment_method = payment_method
    if payment_reference is not None:
        subscription.payment_reference = payment_reference

    subscription.status = target
    subscription.updated_at = now

    logger.info(f"transition: {current.value} -> {target.value} - subscription: {subscription.id}")
    return True
