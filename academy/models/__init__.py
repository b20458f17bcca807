from academy.models.user import User
from academy.models.plan import SubscriptionPlan, BillingCycle
from academy.models.subscription import UserSubscription, SubscriptionStatus
from academy.models.subscription_history import UserSubscriptionHistory, HistoryAction
from academy.models.audit_log import AuditLog
from academy.models.forum import ForumCategory, ForumPost, UserVote, VoteType
from academy.models.trading_journal import (TradingJournalTrade, TradingJournalPerformanceMetric,
                                            TradeDirection, TradeStatus)

__all__ = [
    "User", "SubscriptionPlan", "BillingCycle", "UserSubscription", "SubscriptionStatus",
    "UserSubscriptionHistory", "HistoryAction", "AuditLog", "ForumCategory", "ForumPost",
    "UserVote", "VoteType", "TradingJournalTrade", "TradingJournalPerformanceMetric",
    "TradeDirection", "TradeStatus",
]
