"""
Market hours domain service.

Determines market status, intraday trading windows and session timing for a
given instant. Every query takes the instant explicitly (the snapshot
timestamp during a scan) so results never depend on the wall clock.
"""

from datetime import datetime, time
from enum import Enum
from typing import ClassVar

import pytz


class MarketStatus(Enum):
    """Market status enumeration."""

    CLOSED = "closed"
    PRE_MARKET = "pre_market"
    OPEN = "open"
    AFTER_MARKET = "after_market"
    HOLIDAY = "holiday"


class TradingWindow(Enum):
    """Intraday window used by adaptive thresholds and style modifiers."""

    PRE_MARKET = "pre_market"
    OPENING_DRIVE = "opening_drive"
    MID_MORNING = "mid_morning"
    LATE_MORNING = "late_morning"
    LUNCH_CHOP = "lunch_chop"
    EARLY_AFTERNOON = "early_afternoon"
    AFTERNOON = "afternoon"
    POWER_HOUR = "power_hour"
    AFTER_HOURS = "after_hours"
    WEEKEND = "weekend"
    CLOSED = "closed"


class MarketHoursService:
    """
    Domain service for market hours and status determination.

    Encapsulates NYSE session rules: holidays, weekends, pre/regular/after
    sessions and the intraday windows inside the regular session.
    """

    # Default NYSE market hours (business rules)
    DEFAULT_TIMEZONE = "America/New_York"

    # Pre-market hours (4:00 AM - 9:30 AM ET)
    PRE_MARKET_OPEN_HOUR = 4
    PRE_MARKET_OPEN_MINUTE = 0

    # Regular market hours (9:30 AM - 4:00 PM ET)
    REGULAR_OPEN_HOUR = 9
    REGULAR_OPEN_MINUTE = 30
    REGULAR_CLOSE_HOUR = 16
    REGULAR_CLOSE_MINUTE = 0

    # After-market hours (4:00 PM - 8:00 PM ET)
    AFTER_MARKET_CLOSE_HOUR = 20
    AFTER_MARKET_CLOSE_MINUTE = 0

    # Window boundaries as minutes after midnight ET, [start, end)
    TRADING_WINDOWS: ClassVar[tuple[tuple[TradingWindow, int, int], ...]] = (
        (TradingWindow.PRE_MARKET, 4 * 60, 9 * 60 + 30),
        (TradingWindow.OPENING_DRIVE, 9 * 60 + 30, 10 * 60),
        (TradingWindow.MID_MORNING, 10 * 60, 11 * 60),
        (TradingWindow.LATE_MORNING, 11 * 60, 11 * 60 + 30),
        (TradingWindow.LUNCH_CHOP, 11 * 60 + 30, 13 * 60 + 30),
        (TradingWindow.EARLY_AFTERNOON, 13 * 60 + 30, 14 * 60 + 30),
        (TradingWindow.AFTERNOON, 14 * 60 + 30, 15 * 60),
        (TradingWindow.POWER_HOUR, 15 * 60, 16 * 60),
        (TradingWindow.AFTER_HOURS, 16 * 60, 20 * 60),
    )

    # US market holidays (business rules)
    DEFAULT_HOLIDAYS: ClassVar[set[str]] = {
        # 2024 Holidays
        "2024-01-01",  # New Year's Day
        "2024-01-15",  # Martin Luther King Jr. Day
        "2024-02-19",  # Presidents' Day
        "2024-03-29",  # Good Friday
        "2024-05-27",  # Memorial Day
        "2024-06-19",  # Juneteenth
        "2024-07-04",  # Independence Day
        "2024-09-02",  # Labor Day
        "2024-11-28",  # Thanksgiving Day
        "2024-12-25",  # Christmas Day
        # 2025 Holidays
        "2025-01-01",  # New Year's Day
        "2025-01-20",  # Martin Luther King Jr. Day
        "2025-02-17",  # Presidents' Day
        "2025-04-18",  # Good Friday
        "2025-05-26",  # Memorial Day
        "2025-06-19",  # Juneteenth
        "2025-07-04",  # Independence Day
        "2025-09-01",  # Labor Day
        "2025-11-27",  # Thanksgiving Day
        "2025-12-25",  # Christmas Day
        # 2026 Holidays
        "2026-01-01",  # New Year's Day
        "2026-01-19",  # Martin Luther King Jr. Day
        "2026-02-16",  # Presidents' Day
        "2026-04-03",  # Good Friday
        "2026-05-25",  # Memorial Day
        "2026-06-19",  # Juneteenth
        "2026-07-03",  # Independence Day (observed)
        "2026-09-07",  # Labor Day
        "2026-11-26",  # Thanksgiving Day
        "2026-12-25",  # Christmas Day
    }

    def __init__(
        self,
        timezone: str | None = None,
        holidays: set[str] | None = None,
        pre_market_open: time | None = None,
        regular_open: time | None = None,
        regular_close: time | None = None,
        after_market_close: time | None = None,
    ):
        """
        Initialize market hours service with configurable parameters.

        Args:
            timezone: Market timezone (defaults to NYSE timezone)
            holidays: Set of holiday dates in YYYY-MM-DD format
            pre_market_open: Pre-market session open time
            regular_open: Regular market session open time
            regular_close: Regular market session close time
            after_market_close: After-market session close time
        """
        self.timezone_str = timezone or self.DEFAULT_TIMEZONE
        self.timezone = pytz.timezone(self.timezone_str)
        self.holidays = holidays if holidays is not None else self.DEFAULT_HOLIDAYS.copy()

        self.pre_market_open = pre_market_open or time(
            self.PRE_MARKET_OPEN_HOUR, self.PRE_MARKET_OPEN_MINUTE
        )
        self.regular_open = regular_open or time(self.REGULAR_OPEN_HOUR, self.REGULAR_OPEN_MINUTE)
        self.regular_close = regular_close or time(
            self.REGULAR_CLOSE_HOUR, self.REGULAR_CLOSE_MINUTE
        )
        self.after_market_close = after_market_close or time(
            self.AFTER_MARKET_CLOSE_HOUR, self.AFTER_MARKET_CLOSE_MINUTE
        )

    def to_market_time(self, instant: datetime) -> datetime:
        """Convert an instant to market-local time (naive input is taken as UTC)."""
        if instant.tzinfo is None:
            instant = pytz.utc.localize(instant)
        return instant.astimezone(self.timezone)

    def get_market_status(self, instant: datetime) -> MarketStatus:
        """
        Determine market status based on business rules.

        Args:
            instant: Datetime to classify

        Returns:
            MarketStatus enum value
        """
        now = self.to_market_time(instant)

        if self.is_holiday(now):
            return MarketStatus.HOLIDAY

        if self.is_weekend(now):
            return MarketStatus.CLOSED

        current_time_only = now.time()

        if self.pre_market_open <= current_time_only < self.regular_open:
            return MarketStatus.PRE_MARKET
        elif self.regular_open <= current_time_only < self.regular_close:
            return MarketStatus.OPEN
        elif self.regular_close <= current_time_only < self.after_market_close:
            return MarketStatus.AFTER_MARKET
        else:
            return MarketStatus.CLOSED

    def is_holiday(self, date: datetime) -> bool:
        """Check if a given date is a market holiday."""
        return date.strftime("%Y-%m-%d") in self.holidays

    def is_weekend(self, date: datetime) -> bool:
        """Check if a given date is a weekend."""
        # Business rule: Saturday = 5, Sunday = 6
        return date.weekday() >= 5

    def is_trading_day(self, date: datetime) -> bool:
        """Check if markets are open on the given date."""
        return not (self.is_weekend(date) or self.is_holiday(date))

    def is_market_open(self, instant: datetime) -> bool:
        """Check if the market is open for regular trading at an instant."""
        return self.get_market_status(instant) == MarketStatus.OPEN

    def get_trading_window(self, instant: datetime) -> TradingWindow:
        """
        Classify an instant into an intraday trading window.

        Non-trading days map to WEEKEND; overnight hours map to CLOSED.
        """
        local = self.to_market_time(instant)
        if not self.is_trading_day(local):
            return TradingWindow.WEEKEND

        minute_of_day = local.hour * 60 + local.minute
        for window, start, end in self.TRADING_WINDOWS:
            if start <= minute_of_day < end:
                return window
        return TradingWindow.CLOSED

    def minutes_since_open(self, instant: datetime) -> float:
        """Minutes since the regular open (negative before it)."""
        local = self.to_market_time(instant)
        open_minutes = self.regular_open.hour * 60 + self.regular_open.minute
        return local.hour * 60 + local.minute + local.second / 60 - open_minutes

    def minutes_to_close(self, instant: datetime) -> float | None:
        """Minutes left in the regular session, or None outside it."""
        if not self.is_market_open(instant):
            return None
        local = self.to_market_time(instant)
        close_minutes = self.regular_close.hour * 60 + self.regular_close.minute
        return close_minutes - (local.hour * 60 + local.minute + local.second / 60)

    def get_session_label(self, instant: datetime) -> str:
        """Coarse session label: regular, premarket, afterhours or weekend."""
        status = self.get_market_status(instant)
        if status == MarketStatus.OPEN:
            return "regular"
        if status == MarketStatus.PRE_MARKET:
            return "premarket"
        if status == MarketStatus.AFTER_MARKET:
            return "afterhours"
        local = self.to_market_time(instant)
        if not self.is_trading_day(local):
            return "weekend"
        return "closed"
