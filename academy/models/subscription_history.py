from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Numeric
from sqlalchemy.orm import relationship
from academy.core.database import Base
from datetime import datetime
import enum


class HistoryAction(str, enum.Enum):
    PAYMENT = "payment"
    RENEWAL = "renewal"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    CANCELLATION = "cancellation"


class UserSubscriptionHistory(Base):
    """Append-only ledger of subscription changes; rows are never updated"""
    __tablename__ = "user_subscription_history"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(String, ForeignKey("user_subscriptions.id"), nullable=True, index=True)
    action_type = Column(String, nullable=False, index=True)
    previous_plan_id = Column(String, ForeignKey("subscription_plans.id"), nullable=True)
    new_plan_id = Column(String, ForeignKey("subscription_plans.id"), nullable=True)
    payment_method = Column(String, nullable=True)
    payment_amount = Column(Numeric(10, 2), nullable=True)
    payment_currency = Column(String, nullable=True)
    payment_status = Column(String, nullable=True)
    billing_cycle = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    gateway_reference = Column(String, nullable=True)
    details = Column(Text, nullable=True)  # JSON string ('metadata' is reserved by SQLAlchemy)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User")
    subscription = relationship("UserSubscription")
    previous_plan = relationship("SubscriptionPlan", foreign_keys=[previous_plan_id])
    new_plan = relationship("SubscriptionPlan", foreign_keys=[new_plan_id])
