import logging
import math
import random
import string
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from academy.models.trading_journal import (TradeDirection, TradeStatus, TradingJournalPerformanceMetric,
                                            TradingJournalTrade)

PERIOD_TYPES = ('daily', 'weekly', 'monthly', 'quarterly', 'yearly')
REQUIRED_TRADE_FIELDS = ('symbol', 'instrument_type', 'direction', 'entry_price', 'entry_time', 'position_size')
OPTIONAL_TRADE_FIELDS = ('entry_reason', 'stop_loss', 'take_profit', 'notes')
CACHED_PERIODS = 12


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    # Stored naive, in UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    return moment.replace(year=moment.year + month_index // 12, month=month_index % 12 + 1, day=1)


def generate_trade_id() -> str:
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"TRADE-{int(time.time() * 1000)}-{suffix}"


def serialize_trade(trade: TradingJournalTrade) -> dict:
    return {
        'id': trade.id,
        'trade_id': trade.trade_id,
        'symbol': trade.symbol,
        'instrument_type': trade.instrument_type,
        'direction': trade.direction,
        'entry_price': trade.entry_price,
        'entry_time': trade.entry_time.isoformat() if trade.entry_time else None,
        'entry_reason': trade.entry_reason,
        'position_size': trade.position_size,
        'position_size_currency': trade.position_size_currency,
        'leverage': trade.leverage,
        'stop_loss': trade.stop_loss,
        'take_profit': trade.take_profit,
        'exit_price': trade.exit_price,
        'exit_time': trade.exit_time.isoformat() if trade.exit_time else None,
        'exit_reason': trade.exit_reason,
        'pnl_amount': trade.pnl_amount,
        'pnl_percentage': trade.pnl_percentage,
        'status': trade.status,
        'is_winning': trade.is_winning,
        'notes': trade.notes,
        'lessons_learned': trade.lessons_learned,
        'created_at': trade.created_at.isoformat() if trade.created_at else None,
    }


def serialize_metric(metric: TradingJournalPerformanceMetric) -> dict:
    return {
        'period_start': metric.period_start.isoformat(),
        'period_end': metric.period_end.isoformat(),
        'total_trades': metric.total_trades,
        'winning_trades': metric.winning_trades,
        'losing_trades': metric.losing_trades,
        'win_rate': metric.win_rate,
        'total_pnl': metric.total_pnl,
        'average_win': metric.average_win,
        'average_loss': metric.average_loss,
        'largest_win': metric.largest_win,
        'largest_loss': metric.largest_loss,
        'profit_factor': metric.profit_factor,
        'risk_reward_ratio': metric.risk_reward_ratio,
        'max_drawdown': metric.max_drawdown,
    }


class PerformanceCalculator:
    """Aggregates over closed trades. No database access."""

    @staticmethod
    def calculate(trades: List[TradingJournalTrade]) -> Dict[str, float]:
        total = len(trades)
        winners = [t for t in trades if t.is_winning]
        losers = [t for t in trades if not t.is_winning]
        win_pnls = [t.pnl_amount for t in winners if t.pnl_amount]
        loss_pnls = [t.pnl_amount for t in losers if t.pnl_amount]

        average_win = sum(win_pnls) / len(win_pnls) if win_pnls else 0.0
        average_loss = sum(loss_pnls) / len(loss_pnls) if loss_pnls else 0.0
        ratio = abs(average_win / average_loss) if average_loss != 0 else 0.0

        max_drawdown = 0.0
        peak = 0.0
        running = 0.0
        for trade in sorted(trades, key=lambda t: t.entry_time):
            running += trade.pnl_amount or 0.0
            peak = max(peak, running)
            max_drawdown = max(max_drawdown, peak - running)

        return {
            'total_trades': total,
            'winning_trades': len(winners),
            'losing_trades': total - len(winners),
            'win_rate': len(winners) / total * 100 if total else 0.0,
            'total_pnl': sum(t.pnl_amount or 0.0 for t in trades),
            'average_win': average_win,
            'average_loss': average_loss,
            'largest_win': max(win_pnls) if win_pnls else 0.0,
            'largest_loss': min(loss_pnls) if loss_pnls else 0.0,
            'profit_factor': ratio,
            'risk_reward_ratio': ratio,
            'max_drawdown': max_drawdown,
        }

    @staticmethod
    def period_start(moment: datetime, period_type: str) -> datetime:
        day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        if period_type == 'weekly':
            return day - timedelta(days=day.weekday())
        if period_type == 'monthly':
            return day.replace(day=1)
        if period_type == 'quarterly':
            return day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
        if period_type == 'yearly':
            return day.replace(month=1, day=1)
        return day

    @staticmethod
    def next_period_start(start: datetime, period_type: str) -> datetime:
        if period_type == 'weekly':
            return start + timedelta(days=7)
        if period_type == 'monthly':
            return _add_months(start, 1)
        if period_type == 'quarterly':
            return _add_months(start, 3)
        if period_type == 'yearly':
            return start.replace(year=start.year + 1)
        return start + timedelta(days=1)

    @classmethod
    def current_period(cls, now: datetime, period_type: str) -> Tuple[datetime, datetime]:
        start = cls.period_start(now, period_type)
        return start, cls.next_period_start(start, period_type) - timedelta(seconds=1)

    @classmethod
    def generate_periods(cls, start: datetime, end: datetime, period_type: str) -> List[Tuple[datetime, datetime]]:
        """
        Consecutive periods covering [start, end].

        The first period is aligned to its calendar boundary (Monday for
        weeks, the 1st for months and so on) and each period ends one
        second before the next one starts.
        """
        periods = []
        current = cls.period_start(start, period_type)
        while current <= end:
            following = cls.next_period_start(current, period_type)
            periods.append((current, following - timedelta(seconds=1)))
            current = following
        return periods

    @staticmethod
    def overall_stats(trades: List[TradingJournalTrade]) -> Dict[str, Any]:
        total = len(trades)
        winning = len([t for t in trades if t.is_winning])
        total_pnl = sum(t.pnl_amount or 0.0 for t in trades)
        return {
            'totalTrades': total,
            'winningTrades': winning,
            'losingTrades': total - winning,
            'winRate': winning / total * 100 if total else 0.0,
            'totalPnl': total_pnl,
            'averagePnl': total_pnl / total if total else 0.0,
        }


class TradingJournalService:
    def __init__(self):
        self.calculator = PerformanceCalculator()
        self.logger = logging.getLogger(__name__)

    def create_trade(self, db: Session, user_id: str, data: Dict[str, Any]) -> TradingJournalTrade:
        self.logger.info(f"create_trade: Entry - user: {user_id}, symbol: {data.get('symbol')}")

        try:
            if any(not data.get(field) for field in REQUIRED_TRADE_FIELDS):
                raise ValueError("Missing required fields")

            direction = str(data['direction']).lower()
            if direction not in (TradeDirection.LONG.value, TradeDirection.SHORT.value):
                raise ValueError("Direction must be 'long' or 'short'")

            trade = TradingJournalTrade(
                id=str(uuid.uuid4()),
                user_id=user_id,
                trade_id=generate_trade_id(),
                symbol=data['symbol'],
                instrument_type=data['instrument_type'],
                direction=direction,
                entry_price=float(data['entry_price']),
                entry_time=_parse_datetime(data['entry_time']),
                position_size=float(data['position_size']),
                position_size_currency=data.get('position_size_currency') or 'USD',
                leverage=float(data.get('leverage') or 1.0),
                status=TradeStatus.OPEN.value,
                **{field: data.get(field) for field in OPTIONAL_TRADE_FIELDS},
            )
            db.add(trade)
            db.commit()
            db.refresh(trade)

            self.logger.info(f"create_trade: Success - {trade.trade_id}")
            return trade
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_trade: Failure - {e}")
            raise

    def list_trades(
        self,
        db: Session,
        user_id: str,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        filters = filters or {}
        page = max(page, 1)
        limit = max(limit, 1)
        self.logger.info(f"list_trades: Entry - user: {user_id}, filters: {filters}, page: {page}")

        query = db.query(TradingJournalTrade).filter(TradingJournalTrade.user_id == user_id)
        if filters.get('status'):
            query = query.filter(TradingJournalTrade.status == filters['status'])
        if filters.get('symbol'):
            query = query.filter(TradingJournalTrade.symbol.ilike(f"%{filters['symbol']}%"))
        if filters.get('instrument_type'):
            query = query.filter(TradingJournalTrade.instrument_type == filters['instrument_type'])
        if filters.get('direction'):
            query = query.filter(TradingJournalTrade.direction == filters['direction'])
        if filters.get('start_date') and filters.get('end_date'):
            query = query.filter(
                TradingJournalTrade.entry_time >= _parse_datetime(filters['start_date']),
                TradingJournalTrade.entry_time <= _parse_datetime(filters['end_date'])
            )

        total = query.count()
        trades = (
            query.order_by(TradingJournalTrade.entry_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        self.logger.info(f"list_trades: Success - {len(trades)} of {total}")
        return {
            'trades': [serialize_trade(t) for t in trades],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'totalPages': math.ceil(total / limit),
            },
        }

    def close_trade(
        self,
        db: Session,
        user_id: str,
        trade_id: str,
        exit_price: float,
        exit_time,
        pnl_amount: Optional[float] = None,
        pnl_percentage: Optional[float] = None,
        exit_reason: Optional[str] = None,
        notes: Optional[str] = None,
        lessons_learned: Optional[str] = None,
    ) -> TradingJournalTrade:
        self.logger.info(f"close_trade: Entry - user: {user_id}, trade: {trade_id}")

        try:
            if exit_price is None or not exit_time:
                raise ValueError("Exit price and time are required")

            trade = db.query(TradingJournalTrade).filter(
                TradingJournalTrade.id == trade_id,
                TradingJournalTrade.user_id == user_id
            ).first()
            if not trade:
                raise LookupError("Trade not found")
            if trade.status == TradeStatus.CLOSED.value:
                raise ValueError("Trade is already closed")

            exit_price = float(exit_price)
            if pnl_amount is None or pnl_percentage is None:
                diff = exit_price - trade.entry_price
                if trade.direction == TradeDirection.SHORT.value:
                    diff = -diff
                pnl_amount = diff * trade.position_size
                pnl_percentage = diff / trade.entry_price * 100

            trade.exit_price = exit_price
            trade.exit_time = _parse_datetime(exit_time)
            trade.exit_reason = exit_reason
            trade.pnl_amount = float(pnl_amount)
            trade.pnl_percentage = float(pnl_percentage)
            trade.is_winning = trade.pnl_amount > 0
            trade.status = TradeStatus.CLOSED.value
            trade.notes = notes or trade.notes
            trade.lessons_learned = lessons_learned
            trade.updated_at = datetime.utcnow()

            self._drop_cached_metrics(db, user_id)
            db.commit()
            db.refresh(trade)

            self.logger.info(f"close_trade: Success - {trade.trade_id}, pnl: {trade.pnl_amount}")
            return trade
        except Exception as e:
            db.rollback()
            self.logger.error(f"close_trade: Failure - {e}")
            raise

    def _drop_cached_metrics(self, db: Session, user_id: str, period_type: Optional[str] = None) -> int:
        query = db.query(TradingJournalPerformanceMetric).filter(
            TradingJournalPerformanceMetric.user_id == user_id
        )
        if period_type:
            query = query.filter(TradingJournalPerformanceMetric.period_type == period_type)
        return query.delete(synchronize_session=False)

    def _closed_trades(
        self,
        db: Session,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TradingJournalTrade]:
        query = db.query(TradingJournalTrade).filter(
            TradingJournalTrade.user_id == user_id,
            TradingJournalTrade.status == TradeStatus.CLOSED.value
        )
        if start is not None:
            query = query.filter(TradingJournalTrade.entry_time >= start)
        if end is not None:
            query = query.filter(TradingJournalTrade.entry_time <= end)
        return query.all()

    def get_performance(
        self,
        db: Session,
        user_id: str,
        period_type: str = 'monthly',
        start_date=None,
        end_date=None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        self.logger.info(f"get_performance: Entry - user: {user_id}, period: {period_type}")

        if period_type not in PERIOD_TYPES:
            raise ValueError(f"period_type must be one of {', '.join(PERIOD_TYPES)}")

        try:
            now = now or datetime.utcnow()
            end = _parse_datetime(end_date) if end_date else now
            start = _parse_datetime(start_date) if start_date else _add_months(end, -(CACHED_PERIODS - 1))
            periods = self.calculator.generate_periods(start, end, period_type)

            stored = []
            if periods:
                stored = (
                    db.query(TradingJournalPerformanceMetric)
                    .filter(
                        TradingJournalPerformanceMetric.user_id == user_id,
                        TradingJournalPerformanceMetric.period_type == period_type,
                        TradingJournalPerformanceMetric.period_start >= periods[0][0],
                        TradingJournalPerformanceMetric.period_start <= periods[-1][0]
                    )
                    .all()
                )
            by_start = {m.period_start: m for m in stored}
            cached = bool(periods) and all(period_start in by_start for period_start, _ in periods)

            if cached:
                metrics = [serialize_metric(by_start[period_start]) for period_start, _ in periods]
            else:
                # Partial coverage is recomputed for the whole requested range
                for metric in stored:
                    db.delete(metric)
                metrics = []
                for period_start, period_end in periods:
                    values = self.calculator.calculate(self._closed_trades(db, user_id, period_start, period_end))
                    db.add(TradingJournalPerformanceMetric(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        period_type=period_type,
                        period_start=period_start,
                        period_end=period_end,
                        **values,
                    ))
                    metrics.append({
                        'period_start': period_start.isoformat(),
                        'period_end': period_end.isoformat(),
                        **values,
                    })
                db.commit()

            current_start, current_end = self.calculator.current_period(now, period_type)
            current = self.calculator.calculate(self._closed_trades(db, user_id, current_start, current_end))
            current.update({'period_start': current_start.isoformat(), 'period_end': current_end.isoformat()})

            result = {
                'performanceMetrics': metrics,
                'currentPeriod': current,
                'overallStats': self.calculator.overall_stats(self._closed_trades(db, user_id)),
            }
            self.logger.info(f"get_performance: Success - {len(metrics)} periods, cached: {cached}")
            return result
        except Exception as e:
            db.rollback()
            self.logger.error(f"get_performance: Failure - {e}")
            raise

    def recalculate_performance(self, db: Session, user_id: str, period_type: Optional[str] = None) -> int:
        """Drop cached metric rows so the next read recomputes them"""
        try:
            dropped = self._drop_cached_metrics(db, user_id, period_type)
            db.commit()
            self.logger.info(f"recalculate_performance: Success - user: {user_id}, dropped {dropped} rows")
            return dropped
        except Exception as e:
            db.rollback()
            self.logger.error(f"recalculate_performance: Failure - {e}")
            raise
