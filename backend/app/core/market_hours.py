"""
Market Hours Utility

Handles US/Eastern timezone, futures trading sessions, US market holidays
and the scheduled-event calendar (FOMC weeks, earnings season).
"""

from datetime import datetime, date, timedelta
from typing import Optional
import pytz

from app.schemas.iv_score import SessionInfo, TradingSession

ET = pytz.timezone("America/New_York")

# Session windows (ET hour, start inclusive, end exclusive) and liquidity factor.
# Asian wraps midnight.
SESSION_WINDOWS = {
    TradingSession.ASIAN: (19, 2, 0.6),
    TradingSession.LONDON: (2, 8, 0.8),
    TradingSession.NEW_YORK: (8, 16, 1.0),
    TradingSession.AFTER_HOURS: (16, 19, 0.7),
}

# CME Globex equity-index futures
WEEKLY_CLOSE_HOUR = 17  # Friday
WEEKLY_OPEN_HOUR = 18  # Sunday
DAILY_HALT_START = 17
DAILY_HALT_END = 18

EARNINGS_SEASON_START_MONTHS = (1, 4, 7, 10)
EARNINGS_SEASON_START_DAY = 10
EARNINGS_SEASON_LENGTH = timedelta(weeks=6)


# US market holidays 2025-2027
US_MARKET_HOLIDAYS = {
    # 2025
    date(2025, 1, 1),    # New Year's Day
    date(2025, 1, 9),    # National Day of Mourning
    date(2025, 1, 20),   # Martin Luther King Jr. Day
    date(2025, 2, 17),   # Presidents' Day
    date(2025, 4, 18),   # Good Friday
    date(2025, 5, 26),   # Memorial Day
    date(2025, 6, 19),   # Juneteenth
    date(2025, 7, 4),    # Independence Day
    date(2025, 9, 1),    # Labor Day
    date(2025, 11, 27),  # Thanksgiving
    date(2025, 12, 25),  # Christmas
    # 2026
    date(2026, 1, 1),    # New Year's Day
    date(2026, 1, 19),   # Martin Luther King Jr. Day
    date(2026, 2, 16),   # Presidents' Day
    date(2026, 4, 3),    # Good Friday
    date(2026, 5, 25),   # Memorial Day
    date(2026, 6, 19),   # Juneteenth
    date(2026, 7, 3),    # Independence Day (observed)
    date(2026, 9, 7),    # Labor Day
    date(2026, 11, 26),  # Thanksgiving
    date(2026, 12, 25),  # Christmas
    # 2027
    date(2027, 1, 1),    # New Year's Day
    date(2027, 1, 18),   # Martin Luther King Jr. Day
    date(2027, 2, 15),   # Presidents' Day
    date(2027, 3, 26),   # Good Friday
    date(2027, 5, 31),   # Memorial Day
    date(2027, 6, 18),   # Juneteenth (observed)
    date(2027, 7, 5),    # Independence Day (observed)
    date(2027, 9, 6),    # Labor Day
    date(2027, 11, 25),  # Thanksgiving
    date(2027, 12, 24),  # Christmas (observed)
}

# FOMC rate decision days (second day of each meeting)
FOMC_DECISION_DATES = {
    # 2025
    date(2025, 1, 29),
    date(2025, 3, 19),
    date(2025, 5, 7),
    date(2025, 6, 18),
    date(2025, 7, 30),
    date(2025, 9, 17),
    date(2025, 10, 29),
    date(2025, 12, 10),
    # 2026
    date(2026, 1, 28),
    date(2026, 3, 18),
    date(2026, 4, 29),
    date(2026, 6, 17),
    date(2026, 7, 29),
    date(2026, 9, 16),
    date(2026, 10, 28),
    date(2026, 12, 9),
}


def get_et_now() -> datetime:
    """Get current time in US/Eastern."""
    return datetime.now(ET)


def to_et(dt: Optional[datetime] = None) -> datetime:
    """Convert a datetime to US/Eastern. Naive datetimes are taken as UTC."""
    if dt is None:
        return get_et_now()
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(ET)


def start_of_day_et(dt: Optional[datetime] = None) -> datetime:
    """Midnight US/Eastern of the day containing dt."""
    et_date = to_et(dt).date()
    return ET.localize(datetime(et_date.year, et_date.month, et_date.day))


def is_holiday(dt: date) -> bool:
    """Check if date is a US market holiday."""
    return dt in US_MARKET_HOLIDAYS


def _hour_in_window(hour: int, start: int, end: int) -> bool:
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def get_trading_session(dt: Optional[datetime] = None) -> SessionInfo:
    """Get the trading session (and its liquidity multiplier) for a moment in time."""
    hour = to_et(dt).hour

    for session, (start, end, multiplier) in SESSION_WINDOWS.items():
        if _hour_in_window(hour, start, end):
            return SessionInfo(
                name=session,
                multiplier=multiplier,
                start_hour_et=start,
                end_hour_et=end,
            )

    # Windows cover all 24 hours; unreachable with the table above
    raise ValueError(f"No trading session covers hour {hour} ET")


def is_market_closed(dt: Optional[datetime] = None) -> bool:
    """
    Check whether index futures are closed.

    Closed from Friday 17:00 ET to Sunday 18:00 ET, during the daily
    17:00-18:00 ET maintenance halt, and on US market holidays.
    """
    now = to_et(dt)
    weekday = now.weekday()  # Monday = 0, Sunday = 6

    if is_holiday(now.date()):
        return True
    if weekday == 5:
        return True
    if weekday == 4 and now.hour >= WEEKLY_CLOSE_HOUR:
        return True
    if weekday == 6:
        return now.hour < WEEKLY_OPEN_HOUR
    return DAILY_HALT_START <= now.hour < DAILY_HALT_END


def is_fomc_week(dt: Optional[datetime] = None) -> bool:
    """Check if the current ISO week contains an FOMC rate decision."""
    week = to_et(dt).date().isocalendar()[:2]
    return any(d.isocalendar()[:2] == week for d in FOMC_DECISION_DATES)


def is_earnings_season(dt: Optional[datetime] = None) -> bool:
    """Check if we are within six weeks of a quarterly reporting season start."""
    today = to_et(dt).date()

    for month in EARNINGS_SEASON_START_MONTHS:
        start = date(today.year, month, EARNINGS_SEASON_START_DAY)
        if start <= today < start + EARNINGS_SEASON_LENGTH:
            return True
    return False


def get_market_status(dt: Optional[datetime] = None) -> dict:
    """Get comprehensive market status."""
    now = to_et(dt)
    session = get_trading_session(now)

    return {
        "is_closed": is_market_closed(now),
        "session": session.name.value,
        "session_multiplier": session.multiplier,
        "is_holiday": is_holiday(now.date()),
        "is_fomc_week": is_fomc_week(now),
        "is_earnings_season": is_earnings_season(now),
        "current_time_et": now.strftime("%H:%M:%S"),
        "current_date": now.date().isoformat(),
    }
