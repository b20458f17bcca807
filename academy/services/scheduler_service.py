import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from academy.core.cache import SCHEDULER_LOCK_KEY, get_cache
from academy.core.config import settings
from academy.core.redis_cache import RedisCache
from academy.models.plan import SubscriptionPlan
from academy.models.subscription import SubscriptionStatus, UserSubscription
from academy.services.email_service import EmailService
from academy.services.subscription_history_service import SubscriptionHistoryService
from academy.services.subscription_state import transition


class SchedulerService:
    """
    Periodic subscription maintenance: expiry reminders and downgrades of
    lapsed subscriptions to the free plan.
    """

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        cache: Optional[RedisCache] = None,
    ):
        self.email_service = email_service or EmailService()
        self.cache = cache
        self.history = SubscriptionHistoryService()
        self.logger = logging.getLogger(__name__)

    def send_expiration_reminders(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Email every active subscriber whose period ends within the reminder window.

        Each run sends again; nothing records that a reminder already went out.
        """
        now = now or datetime.utcnow()
        window_end = now + timedelta(days=settings.reminder_window_days)
        self.logger.info(f"send_expiration_reminders: Entry - window: {now.isoformat()} to {window_end.isoformat()}")

        try:
            expiring = db.query(UserSubscription).filter(
                UserSubscription.status == SubscriptionStatus.ACTIVE,
                UserSubscription.current_period_end.isnot(None),
                UserSubscription.current_period_end >= now,
                UserSubscription.current_period_end <= window_end
            ).all()

            sent = 0
            for subscription in expiring:
                try:
                    if self.email_service.send_expiration_reminder(subscription, now=now):
                        sent += 1
                    else:
                        self.logger.warning(f"send_expiration_reminders: Email not delivered - subscription: {subscription.id}")
                except Exception as e:
                    self.logger.error(f"send_expiration_reminders: Failure for subscription {subscription.id} - {e}")

            self.logger.info(f"send_expiration_reminders: Success - found: {len(expiring)}, sent: {sent}")
            return sent
        except Exception as e:
            self.logger.error(f"send_expiration_reminders: Failure - {e}")
            raise

    def check_expired_subscriptions(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Expire lapsed active subscriptions and move their users to the free plan.

        Each subscription is handled in its own transaction: the expired row,
        the new free subscription and the ledger entry commit together or not
        at all. A failure on one subscription does not stop the scan.
        """
        now = now or datetime.utcnow()
        self.logger.info("check_expired_subscriptions: Entry")

        free_plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == 'free').first()
        if not free_plan:
            self.logger.error("check_expired_subscriptions: Free plan not found in database")
            return 0

        candidate_ids = [row.id for row in db.query(UserSubscription.id).filter(
            UserSubscription.status == SubscriptionStatus.ACTIVE,
            UserSubscription.current_period_end < now
        ).all()]
        self.logger.info(f"check_expired_subscriptions: Found {len(candidate_ids)} expired subscriptions")

        downgraded = []
        for subscription_id in candidate_ids:
            try:
                subscription = self._claim_expired(db, subscription_id, now)
                if subscription is None:
                    db.rollback()
                    continue

                transition(subscription, SubscriptionStatus.EXPIRED, now=now)
                free_subscription = UserSubscription(
                    id=str(uuid.uuid4()),
                    user_id=subscription.user_id,
                    plan_id=free_plan.id,
                    plan=free_plan,
                    status=SubscriptionStatus.ACTIVE,
                    current_period_start=now,
                    current_period_end=now + timedelta(days=settings.free_plan_period_days),
                    created_at=now,
                    updated_at=now,
                )
                db.add(free_subscription)
                self.history.record_downgrade(
                    db, free_subscription,
                    previous_plan_id=subscription.plan_id,
                    new_plan_id=free_plan.id,
                    reason='subscription_expired',
                )
                db.commit()
                downgraded.append(subscription)
                self.logger.info(f"check_expired_subscriptions: Downgraded user {subscription.user_id} "
                                 f"(subscription {subscription.id} -> {free_subscription.id})")
            except Exception as e:
                db.rollback()
                self.logger.error(f"check_expired_subscriptions: Failure for subscription {subscription_id} - {e}")

        for subscription in downgraded:
            try:
                self.email_service.send_expiration_notice(subscription)
            except Exception as e:
                self.logger.error(f"check_expired_subscriptions: Could not notify user {subscription.user_id} - {e}")

        self.logger.info(f"check_expired_subscriptions: Success - downgraded: {len(downgraded)}")
        return len(downgraded)

    def _claim_expired(self, db: Session, subscription_id: str, now: datetime) -> Optional[UserSubscription]:
        """Lock the row if it is still active and past due; None if another run already took it"""
        return db.query(UserSubscription).filter(
            UserSubscription.id == subscription_id,
            UserSubscription.status == SubscriptionStatus.ACTIVE,
            UserSubscription.current_period_end < now
        ).with_for_update(skip_locked=True).first()

    def run_scheduled_tasks(self, db: Session, now: Optional[datetime] = None) -> dict:
        """Run the expiry pass then the reminder pass under a cross-process lock"""
        self.logger.info("run_scheduled_tasks: Entry")
        cache = self.cache or get_cache()

        lock_token = None
        if cache.ping():
            lock_token = cache.acquire_lock(
                SCHEDULER_LOCK_KEY,
                timeout_seconds=settings.scheduler_lock_timeout_seconds,
            )
            if lock_token is None:
                self.logger.warning("run_scheduled_tasks: Another run holds the scheduler lock, skipping")
                return {'skipped': True, 'expired': 0, 'reminders': 0}
        else:
            self.logger.warning("run_scheduled_tasks: Redis not available, running without the scheduler lock")

        try:
            expired = self.check_expired_subscriptions(db, now=now)
            reminders = self.send_expiration_reminders(db, now=now)
            result = {'skipped': False, 'expired': expired, 'reminders': reminders}
            self.logger.info(f"run_scheduled_tasks: Success - {result}")
            return result
        except Exception as e:
            self.logger.error(f"run_scheduled_tasks: Failure - {e}")
            raise
        finally:
            if lock_token is not None:
                cache.release_lock(SCHEDULER_LOCK_KEY, lock_token)
