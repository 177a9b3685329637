from datetime import datetime, time
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Текущее время в часовом поясе столовой."""

    def __init__(self, timezone: str = "UTC"):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """Часы для тестов: время двигается только вручную."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment


def parse_time_of_day(value: str) -> time:
    """'22:00' -> time(22, 0)"""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))
