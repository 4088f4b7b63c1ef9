"""Query parameter values.

A `Value` is the encoded form of one query parameter. Values are produced by
the encoder functions in this module and handed to the driver untouched; the
driver decides how each kind travels over the wire.

Examples
--------
>>> from pgtyped import values
>>> values.int_(42)
IntValue(kind='int', value=42)
>>> values.nullable(values.text, None)
NullValue(kind='null')
>>> values.array(values.int_, [1, 2, 3]).items[0]
IntValue(kind='int', value=1)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Annotated, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .temporal import Date, Time, Timestamp

T = TypeVar("T")


class _ValueBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class NullValue(_ValueBase):
    kind: Literal["null"] = "null"


class BoolValue(_ValueBase):
    kind: Literal["bool"] = "bool"
    value: bool


class IntValue(_ValueBase):
    kind: Literal["int"] = "int"
    value: int


class FloatValue(_ValueBase):
    kind: Literal["float"] = "float"
    value: float


class TextValue(_ValueBase):
    kind: Literal["text"] = "text"
    value: str


class ByteaValue(_ValueBase):
    kind: Literal["bytea"] = "bytea"
    value: bytes


class ArrayValue(_ValueBase):
    kind: Literal["array"] = "array"
    items: tuple[Value, ...]


class DateValue(_ValueBase):
    kind: Literal["date"] = "date"
    year: int
    month: int
    day: int


class TimeValue(_ValueBase):
    """Time of day with fractional seconds."""

    kind: Literal["time"] = "time"
    hours: int
    minutes: int
    seconds: float


class TimestampValue(_ValueBase):
    kind: Literal["timestamp"] = "timestamp"
    date: DateValue
    time: TimeValue


Value = Annotated[
    NullValue
    | BoolValue
    | IntValue
    | FloatValue
    | TextValue
    | ByteaValue
    | ArrayValue
    | DateValue
    | TimeValue
    | TimestampValue,
    Field(discriminator="kind"),
]

ArrayValue.model_rebuild()

_NULL = NullValue()


def null() -> NullValue:
    return _NULL


def bool_(value: bool) -> BoolValue:
    return BoolValue(value=value)


def int_(value: int) -> IntValue:
    return IntValue(value=value)


def float_(value: float) -> FloatValue:
    return FloatValue(value=value)


def text(value: str) -> TextValue:
    return TextValue(value=value)


def bytea(value: bytes) -> ByteaValue:
    return ByteaValue(value=value)


def array(encoder: Callable[[T], Value], items: Iterable[T]) -> ArrayValue:
    """Encode a homogeneous sequence, each element with ``encoder``."""
    return ArrayValue(items=tuple(encoder(item) for item in items))


def nullable(encoder: Callable[[T], Value], value: T | None) -> Value:
    """Encode ``value`` with ``encoder``, or NULL when it is None."""
    if value is None:
        return _NULL
    return encoder(value)


def date(value: Date) -> DateValue:
    return DateValue(year=value.year, month=value.month, day=value.day)


def time(value: Time) -> TimeValue:
    seconds = value.seconds + value.microseconds / 1_000_000
    return TimeValue(hours=value.hours, minutes=value.minutes, seconds=seconds)


def timestamp(value: Timestamp) -> TimestampValue:
    return TimestampValue(date=date(value.date), time=time(value.time))
