from datetime import datetime, timezone

import pytest

from app.core.market_hours import (
    ET,
    get_market_status,
    get_trading_session,
    is_earnings_season,
    is_fomc_week,
    is_market_closed,
    start_of_day_et,
    to_et,
)
from app.schemas.iv_score import TradingSession


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "moment,session,multiplier",
    [
        # January: ET = UTC-5
        (utc(2026, 1, 14, 0, 0), TradingSession.ASIAN, 0.6),  # 19:00 ET
        (utc(2026, 1, 14, 6, 59), TradingSession.ASIAN, 0.6),  # 01:59 ET
        (utc(2026, 1, 14, 7, 0), TradingSession.LONDON, 0.8),  # 02:00 ET
        (utc(2026, 1, 14, 13, 0), TradingSession.NEW_YORK, 1.0),  # 08:00 ET
        (utc(2026, 1, 14, 20, 59), TradingSession.NEW_YORK, 1.0),  # 15:59 ET
        (utc(2026, 1, 14, 21, 0), TradingSession.AFTER_HOURS, 0.7),  # 16:00 ET
        (utc(2026, 1, 14, 23, 59), TradingSession.AFTER_HOURS, 0.7),  # 18:59 ET
        # July: ET = UTC-4
        (utc(2026, 7, 15, 12, 0), TradingSession.NEW_YORK, 1.0),  # 08:00 EDT
    ],
)
def test_trading_session_windows(moment, session, multiplier):
    info = get_trading_session(moment)

    assert info.name == session
    assert info.multiplier == multiplier


def test_naive_datetime_is_utc():
    assert to_et(datetime(2026, 1, 14, 15, 0)).hour == 10


class TestMarketClosed:
    def test_open_midweek(self):
        assert not is_market_closed(utc(2026, 1, 14, 15, 0))

    def test_daily_halt(self):
        assert is_market_closed(utc(2026, 1, 14, 22, 30))  # 17:30 ET
        assert not is_market_closed(utc(2026, 1, 14, 23, 0))  # 18:00 ET

    def test_weekend(self):
        assert is_market_closed(utc(2026, 1, 16, 22, 0))  # Friday 17:00 ET
        assert is_market_closed(utc(2026, 1, 17, 15, 0))  # Saturday
        assert is_market_closed(utc(2026, 1, 18, 22, 59))  # Sunday 17:59 ET
        assert not is_market_closed(utc(2026, 1, 18, 23, 0))  # Sunday 18:00 ET

    def test_holiday(self):
        assert is_market_closed(utc(2026, 1, 19, 15, 0))  # MLK Day


class TestCalendar:
    def test_fomc_week(self):
        assert is_fomc_week(utc(2026, 1, 26, 15, 0))  # Monday of the Jan 28 meeting week
        assert not is_fomc_week(utc(2026, 1, 14, 15, 0))

    def test_earnings_season(self):
        assert is_earnings_season(utc(2026, 1, 14, 15, 0))
        assert not is_earnings_season(utc(2026, 1, 5, 15, 0))
        assert not is_earnings_season(utc(2026, 3, 10, 15, 0))
        assert is_earnings_season(utc(2026, 10, 20, 15, 0))


def test_start_of_day_is_et_midnight():
    start = start_of_day_et(utc(2026, 1, 14, 3, 0))  # 22:00 ET on the 13th

    assert start == ET.localize(datetime(2026, 1, 13))
    assert start.astimezone(timezone.utc) == utc(2026, 1, 13, 5, 0)


def test_market_status():
    status = get_market_status(utc(2026, 1, 14, 15, 0))

    assert status["is_closed"] is False
    assert status["session"] == "NewYork"
    assert status["session_multiplier"] == 1.0
    assert status["is_earnings_season"] is True
    assert status["is_fomc_week"] is False
    assert status["current_date"] == "2026-01-14"
