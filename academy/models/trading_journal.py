from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, Text, ForeignKey
from sqlalchemy.orm import relationship
from academy.core.database import Base
from datetime import datetime
import enum


class TradeDirection(str, enum.Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class TradingJournalTrade(Base):
    __tablename__ = "trading_journal_trades"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    trade_id = Column(String, unique=True, nullable=False)  # human-readable 'TRADE-<ms>-<suffix>'
    symbol = Column(String, nullable=False, index=True)
    instrument_type = Column(String, nullable=False)  # 'forex', 'crypto', 'stocks', ...
    direction = Column(String, nullable=False)
    entry_price = Column(Float, nullable=False)
    entry_time = Column(DateTime, nullable=False, index=True)
    entry_reason = Column(Text, nullable=True)
    position_size = Column(Float, nullable=False)
    position_size_currency = Column(String, nullable=False, default="USD")
    leverage = Column(Float, nullable=False, default=1.0)
    stop_loss = Column(Float, nullable=True)
    take_profit = Column(Float, nullable=True)
    exit_price = Column(Float, nullable=True)
    exit_time = Column(DateTime, nullable=True)
    exit_reason = Column(Text, nullable=True)
    pnl_amount = Column(Float, nullable=True)
    pnl_percentage = Column(Float, nullable=True)
    status = Column(String, nullable=False, default=TradeStatus.OPEN.value, index=True)
    is_winning = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)
    lessons_learned = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="trades")


class TradingJournalPerformanceMetric(Base):
    """Cached aggregate for one user, period type and period window"""
    __tablename__ = "trading_journal_performance_metrics"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    period_type = Column(String, nullable=False, index=True)  # 'daily', 'weekly', 'monthly', 'quarterly', 'yearly'
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    total_trades = Column(Integer, nullable=False, default=0)
    winning_trades = Column(Integer, nullable=False, default=0)
    losing_trades = Column(Integer, nullable=False, default=0)
    win_rate = Column(Float, nullable=False, default=0)
    total_pnl = Column(Float, nullable=False, default=0)
    average_win = Column(Float, nullable=False, default=0)
    average_loss = Column(Float, nullable=False, default=0)
    largest_win = Column(Float, nullable=False, default=0)
    largest_loss = Column(Float, nullable=False, default=0)
    profit_factor = Column(Float, nullable=False, default=0)
    risk_reward_ratio = Column(Float, nullable=False, default=0)
    max_drawdown = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
