"""Calendar value types exchanged with the database.

These are plain records. No calendar validation is performed: a
``Date(year=2024, month=2, day=31)`` is representable, and the database is
the one to reject it.
"""

from __future__ import annotations

import datetime as dt
from typing import Self

from pydantic import BaseModel, ConfigDict


class Date(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    day: int

    @classmethod
    def from_stdlib(cls, value: dt.date) -> Self:
        return cls(year=value.year, month=value.month, day=value.day)

    def to_stdlib(self) -> dt.date:
        return dt.date(self.year, self.month, self.day)


class Time(BaseModel):
    model_config = ConfigDict(frozen=True)

    hours: int
    minutes: int
    seconds: int
    microseconds: int = 0

    @classmethod
    def from_stdlib(cls, value: dt.time) -> Self:
        return cls(
            hours=value.hour,
            minutes=value.minute,
            seconds=value.second,
            microseconds=value.microsecond,
        )

    def to_stdlib(self) -> dt.time:
        return dt.time(self.hours, self.minutes, self.seconds, self.microseconds)


class Timestamp(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: Date
    time: Time

    @classmethod
    def from_stdlib(cls, value: dt.datetime) -> Self:
        """Build a timestamp from a datetime.

        Aware datetimes are converted to UTC first; the result carries no zone.
        """
        if value.tzinfo is not None:
            value = value.astimezone(dt.UTC)
        return cls(date=Date.from_stdlib(value.date()), time=Time.from_stdlib(value.time()))

    def to_stdlib(self) -> dt.datetime:
        return dt.datetime.combine(self.date.to_stdlib(), self.time.to_stdlib())
