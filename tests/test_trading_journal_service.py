"""
Tests for the trading journal: trade lifecycle and performance metrics
"""

import pytest
from datetime import datetime

from academy.models.trading_journal import TradingJournalPerformanceMetric, TradingJournalTrade
from academy.services.trading_journal_service import PerformanceCalculator, TradingJournalService, generate_trade_id


def _closed(pnl, entry_time):
    return TradingJournalTrade(pnl_amount=pnl, is_winning=pnl > 0, entry_time=entry_time, status="closed")


@pytest.fixture
def journal():
    return TradingJournalService()


@pytest.fixture
def trader(make_user):
    return make_user()


def _open_trade(db, journal, user, **overrides):
    data = {
        "symbol": "EURUSD",
        "instrument_type": "forex",
        "direction": "long",
        "entry_price": 100.0,
        "entry_time": "2025-06-02T10:00:00Z",
        "position_size": 10,
    }
    data.update(overrides)
    return journal.create_trade(db, user.id, data)


class TestPerformanceCalculator:
    """Aggregate statistics over closed trades"""

    def test_mixed_results(self):
        trades = [
            _closed(100.0, datetime(2025, 1, 1)),
            _closed(-50.0, datetime(2025, 1, 2)),
            _closed(200.0, datetime(2025, 1, 3)),
            _closed(-100.0, datetime(2025, 1, 4)),
        ]

        stats = PerformanceCalculator.calculate(trades)

        assert stats["total_trades"] == 4
        assert stats["winning_trades"] == 2
        assert stats["losing_trades"] == 2
        assert stats["win_rate"] == 50.0
        assert stats["total_pnl"] == 150.0
        assert stats["average_win"] == 150.0
        assert stats["average_loss"] == -75.0
        assert stats["largest_win"] == 200.0
        assert stats["largest_loss"] == -100.0
        assert stats["profit_factor"] == 2.0
        assert stats["risk_reward_ratio"] == 2.0
        assert stats["max_drawdown"] == 100.0

    def test_drawdown_follows_entry_order(self):
        trades = [
            _closed(-30.0, datetime(2025, 1, 3)),
            _closed(50.0, datetime(2025, 1, 1)),
            _closed(-40.0, datetime(2025, 1, 2)),
        ]

        assert PerformanceCalculator.calculate(trades)["max_drawdown"] == 70.0

    def test_breakeven_counts_as_losing(self):
        stats = PerformanceCalculator.calculate([_closed(0.0, datetime(2025, 1, 1)), _closed(10.0, datetime(2025, 1, 2))])

        assert stats["losing_trades"] == 1
        assert stats["average_loss"] == 0.0
        assert stats["profit_factor"] == 0.0

    def test_no_trades(self):
        stats = PerformanceCalculator.calculate([])

        assert stats["total_trades"] == 0
        assert stats["win_rate"] == 0.0
        assert stats["max_drawdown"] == 0.0


class TestPeriods:
    """Calendar period generation"""

    def test_monthly_periods_align_to_first_of_month(self):
        periods = PerformanceCalculator.generate_periods(datetime(2025, 1, 15), datetime(2025, 3, 10), "monthly")

        assert periods == [
            (datetime(2025, 1, 1), datetime(2025, 1, 31, 23, 59, 59)),
            (datetime(2025, 2, 1), datetime(2025, 2, 28, 23, 59, 59)),
            (datetime(2025, 3, 1), datetime(2025, 3, 31, 23, 59, 59)),
        ]

    def test_weekly_periods_start_on_monday(self):
        periods = PerformanceCalculator.generate_periods(datetime(2025, 1, 15, 9), datetime(2025, 1, 20), "weekly")

        assert periods[0] == (datetime(2025, 1, 13), datetime(2025, 1, 19, 23, 59, 59))
        assert periods[1][0] == datetime(2025, 1, 20)

    def test_quarterly_and_yearly_boundaries(self):
        assert PerformanceCalculator.period_start(datetime(2025, 8, 17), "quarterly") == datetime(2025, 7, 1)
        assert PerformanceCalculator.current_period(datetime(2025, 8, 17), "yearly") == (
            datetime(2025, 1, 1), datetime(2025, 12, 31, 23, 59, 59)
        )

    def test_december_rolls_into_next_year(self):
        assert PerformanceCalculator.next_period_start(datetime(2024, 12, 1), "monthly") == datetime(2025, 1, 1)


class TestTrades:
    """Opening, listing and closing trades"""

    def test_trade_id_format(self):
        trade_id = generate_trade_id()

        prefix, millis, suffix = trade_id.split("-")
        assert prefix == "TRADE"
        assert millis.isdigit()
        assert len(suffix) == 4

    def test_create_trade(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader)

        assert trade.status == "open"
        assert trade.entry_time == datetime(2025, 6, 2, 10, 0, 0)
        assert trade.leverage == 1.0
        assert trade.position_size_currency == "USD"

    def test_missing_fields_rejected(self, db_session, journal, trader):
        with pytest.raises(ValueError, match="Missing required fields"):
            journal.create_trade(db_session, trader.id, {"symbol": "BTCUSD"})

    def test_invalid_direction_rejected(self, db_session, journal, trader):
        with pytest.raises(ValueError):
            _open_trade(db_session, journal, trader, direction="sideways")

    def test_close_long_computes_pnl(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader)

        closed = journal.close_trade(db_session, trader.id, trade.id, exit_price=110.0, exit_time="2025-06-03T10:00:00")

        assert closed.status == "closed"
        assert closed.pnl_amount == pytest.approx(100.0)
        assert closed.pnl_percentage == pytest.approx(10.0)
        assert closed.is_winning is True

    def test_close_short_computes_pnl(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader, direction="short", position_size=5)

        closed = journal.close_trade(db_session, trader.id, trade.id, exit_price=90.0, exit_time="2025-06-03T10:00:00")

        assert closed.pnl_amount == pytest.approx(50.0)
        assert closed.is_winning is True

    def test_given_pnl_is_kept(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader)

        closed = journal.close_trade(db_session, trader.id, trade.id, exit_price=110.0,
                                     exit_time="2025-06-03T10:00:00", pnl_amount=-5.0, pnl_percentage=-0.5)

        assert closed.pnl_amount == -5.0
        assert closed.is_winning is False

    def test_closing_twice_rejected(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader)
        journal.close_trade(db_session, trader.id, trade.id, exit_price=110.0, exit_time="2025-06-03T10:00:00")

        with pytest.raises(ValueError, match="already closed"):
            journal.close_trade(db_session, trader.id, trade.id, exit_price=120.0, exit_time="2025-06-04T10:00:00")

    def test_cannot_close_someone_elses_trade(self, db_session, journal, trader, make_user):
        trade = _open_trade(db_session, journal, trader)

        with pytest.raises(LookupError):
            journal.close_trade(db_session, make_user().id, trade.id, exit_price=110.0, exit_time="2025-06-03")

    def test_list_trades_filters_and_paginates(self, db_session, journal, trader):
        for day in range(1, 6):
            _open_trade(db_session, journal, trader, entry_time=f"2025-06-0{day}T10:00:00")
        _open_trade(db_session, journal, trader, symbol="BTCUSD", instrument_type="crypto")

        page = journal.list_trades(db_session, trader.id, filters={"symbol": "eur"}, page=2, limit=2)

        assert page["pagination"] == {"page": 2, "limit": 2, "total": 5, "totalPages": 3}
        assert [t["entry_time"] for t in page["trades"]] == ["2025-06-03T10:00:00", "2025-06-02T10:00:00"]


class TestPerformance:
    """Period metrics with the cached metric rows"""

    def test_default_range_is_twelve_months(self, db_session, journal, trader):
        trade = _open_trade(db_session, journal, trader)
        journal.close_trade(db_session, trader.id, trade.id, exit_price=110.0, exit_time="2025-06-03T10:00:00")

        result = journal.get_performance(db_session, trader.id, now=datetime(2025, 6, 15))

        metrics = result["performanceMetrics"]
        assert len(metrics) == 12
        assert metrics[0]["period_start"] == "2024-07-01T00:00:00"
        assert metrics[-1]["period_start"] == "2025-06-01T00:00:00"
        assert metrics[-1]["total_trades"] == 1
        assert result["currentPeriod"]["total_pnl"] == pytest.approx(100.0)
        assert result["overallStats"]["totalTrades"] == 1
        assert result["overallStats"]["winRate"] == 100.0

    def test_metrics_are_cached_until_a_trade_closes(self, db_session, journal, trader):
        now = datetime(2025, 6, 15)
        journal.get_performance(db_session, trader.id, now=now)
        assert db_session.query(TradingJournalPerformanceMetric).count() == 12

        cached = journal.get_performance(db_session, trader.id, now=now)
        assert db_session.query(TradingJournalPerformanceMetric).count() == 12
        assert cached["performanceMetrics"][0]["period_start"] == "2024-07-01T00:00:00"

        trade = _open_trade(db_session, journal, trader)
        journal.close_trade(db_session, trader.id, trade.id, exit_price=90.0, exit_time="2025-06-03T10:00:00")
        assert db_session.query(TradingJournalPerformanceMetric).count() == 0

        fresh = journal.get_performance(db_session, trader.id, now=now)
        assert fresh["performanceMetrics"][-1]["total_pnl"] == pytest.approx(-100.0)

    def test_custom_range_is_not_served_from_other_rows(self, db_session, journal, trader):
        journal.get_performance(db_session, trader.id, now=datetime(2025, 1, 15))

        result = journal.get_performance(db_session, trader.id, start_date="2025-02-01", end_date="2025-02-28",
                                         now=datetime(2025, 2, 20))

        metrics = result["performanceMetrics"]
        assert [m["period_start"] for m in metrics] == ["2025-02-01T00:00:00"]
        assert metrics[0]["period_end"] == "2025-02-28T23:59:59"

    def test_new_month_is_added_after_rollover(self, db_session, journal, trader):
        journal.get_performance(db_session, trader.id, now=datetime(2025, 1, 15))

        result = journal.get_performance(db_session, trader.id, now=datetime(2025, 2, 3))

        metrics = result["performanceMetrics"]
        assert len(metrics) == 12
        assert metrics[0]["period_start"] == "2024-03-01T00:00:00"
        assert metrics[-1]["period_start"] == "2025-02-01T00:00:00"
        stored = db_session.query(TradingJournalPerformanceMetric).filter(
            TradingJournalPerformanceMetric.period_start == datetime(2025, 2, 1)
        ).count()
        assert stored == 1

    def test_open_trades_are_excluded(self, db_session, journal, trader):
        _open_trade(db_session, journal, trader)

        result = journal.get_performance(db_session, trader.id, period_type="weekly", now=datetime(2025, 6, 4))

        assert result["currentPeriod"]["total_trades"] == 0
        assert result["overallStats"]["totalTrades"] == 0

    def test_unknown_period_type(self, db_session, journal, trader):
        with pytest.raises(ValueError):
            journal.get_performance(db_session, trader.id, period_type="hourly")

    def test_recalculate_drops_only_requested_period(self, db_session, journal, trader):
        now = datetime(2025, 6, 15)
        journal.get_performance(db_session, trader.id, period_type="monthly", now=now)
        journal.get_performance(db_session, trader.id, period_type="yearly", now=now)

        dropped = journal.recalculate_performance(db_session, trader.id, period_type="yearly")

        assert dropped == 2
        assert db_session.query(TradingJournalPerformanceMetric).count() == 12


class TestTradingJournalEndpoints:
    """HTTP layer for the journal"""

    def test_requires_session(self, client):
        assert client.get("/api/v1/trading-journal/trades").status_code == 401

    def test_create_close_and_report(self, client, trader, login):
        login(trader)

        created = client.post("/api/v1/trading-journal/trades", json={
            "symbol": "XAUUSD",
            "instrument_type": "commodity",
            "direction": "short",
            "entry_price": 2000,
            "entry_time": "2025-06-02T10:00:00Z",
            "position_size": 2,
        })
        assert created.status_code == 201
        trade_id = created.json()["id"]

        closed = client.post(f"/api/v1/trading-journal/trades/{trade_id}/close", json={
            "exit_price": 1990,
            "exit_time": "2025-06-02T15:00:00Z",
        })
        assert closed.status_code == 200
        assert closed.json()["pnl_amount"] == pytest.approx(20.0)

        listed = client.get("/api/v1/trading-journal/trades", params={"status": "closed"})
        assert listed.json()["pagination"]["total"] == 1

        performance = client.get("/api/v1/trading-journal/performance", params={"period_type": "monthly"})
        assert performance.status_code == 200
        assert performance.json()["overallStats"]["totalPnl"] == pytest.approx(20.0)

    def test_missing_fields_return_400(self, client, trader, login):
        login(trader)

        response = client.post("/api/v1/trading-journal/trades", json={"symbol": "EURUSD"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"
