"""Composable decoders for result rows.

A `Decoder` turns one raw value handed back by the driver into a typed Python
value, or raises `DecodeFailure`. Rows arrive as tuples (or as dicts when the
connection is configured with ``rows_as_map``), so a row decoder is usually
built from field decoders addressed by position or column name.

Examples
--------
>>> from pgtyped import decode
>>> user = decode.row(decode.int_, decode.string)
>>> user.run((1, "alice"))
(1, 'alice')
>>> name = decode.at("name", decode.optional(decode.string))
>>> name.run({"name": None}) is None
True

Composite decoders stop at the first failing field; the error carries the
path of keys that led to it.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .temporal import Date, Time, Timestamp

T = TypeVar("T")
U = TypeVar("U")
M = TypeVar("M", bound=BaseModel)


class DecodeError(BaseModel):
    model_config = ConfigDict(frozen=True)

    expected: str
    found: str
    path: tuple[str, ...] = ()

    def __str__(self) -> str:
        location = ".".join(self.path) or "<row>"
        return f"expected {self.expected}, found {self.found} at {location}"


class DecodeFailure(Exception):  # noqa: N818
    def __init__(self, errors: Sequence[DecodeError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors))

    def prefixed(self, key: str) -> DecodeFailure:
        return DecodeFailure(
            [error.model_copy(update={"path": (key, *error.path)}) for error in self.errors]
        )


def _fail(expected: str, value: object) -> DecodeFailure:
    return DecodeFailure([DecodeError(expected=expected, found=classify(value))])


def classify(value: object) -> str:
    """Describe the type of a raw value for error messages."""
    if value is None:
        return "Null"
    match value:
        case bool():
            return "Bool"
        case int():
            return "Int"
        case float() | Decimal():
            return "Float"
        case str():
            return "String"
        case bytes() | bytearray() | memoryview():
            return "Bytes"
        case dt.datetime():
            return "Timestamp"
        case dt.date():
            return "Date"
        case dt.time():
            return "Time"
        case Mapping():
            return "Map"
        case tuple() | list():
            return f"Tuple of {len(value)} elements"
    return type(value).__name__


class Decoder(Generic[T]):
    """A function from a raw driver value to ``T``."""

    __slots__ = ("_fn",)

    def __init__(self, fn: Callable[[Any], T]) -> None:
        self._fn = fn

    def run(self, raw: Any) -> T:
        """Decode ``raw``.

        Raises
        ------
        DecodeFailure
            If ``raw`` does not have the expected shape.
        """
        return self._fn(raw)

    def map(self, fn: Callable[[T], U]) -> Decoder[U]:
        return Decoder(lambda raw: fn(self._fn(raw)))

    def then(self, fn: Callable[[T], Decoder[U]]) -> Decoder[U]:
        """Choose the next decoder from the value this one produced."""
        return Decoder(lambda raw: fn(self._fn(raw)).run(raw))


def success(value: T) -> Decoder[T]:
    return Decoder(lambda _raw: value)


ignore: Decoder[None] = success(None)


def _primitive(expected: str, accept: Callable[[Any], bool]) -> Decoder[Any]:
    def run(raw: Any) -> Any:
        if not accept(raw):
            raise _fail(expected, raw)
        return raw

    return Decoder(run)


int_: Decoder[int] = _primitive("Int", lambda v: isinstance(v, int) and not isinstance(v, bool))
float_: Decoder[float] = _primitive("Float", lambda v: isinstance(v, float))
string: Decoder[str] = _primitive("String", lambda v: isinstance(v, str))
bool_: Decoder[bool] = _primitive("Bool", lambda v: isinstance(v, bool))
bytea: Decoder[bytes] = _primitive("Bytes", lambda v: isinstance(v, bytes))


def _numeric(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, int | float | Decimal):
        raise _fail("Numeric", raw)
    return float(raw)


numeric: Decoder[float] = Decoder(_numeric)


def optional(decoder: Decoder[T]) -> Decoder[T | None]:
    """Decode NULL as None, anything else with ``decoder``."""
    return Decoder(lambda raw: None if raw is None else decoder.run(raw))


def list_of(decoder: Decoder[T]) -> Decoder[list[T]]:
    def run(raw: Any) -> list[T]:
        if not isinstance(raw, list | tuple):
            raise _fail("List", raw)
        items = []
        for index, item in enumerate(raw):
            try:
                items.append(decoder.run(item))
            except DecodeFailure as e:
                raise e.prefixed(str(index)) from None
        return items

    return Decoder(run)


def at(key: int | str, decoder: Decoder[T]) -> Decoder[T]:
    """Decode one field of a row.

    ``key`` is a position for tuple rows and a column name for map rows.
    """

    def run(raw: Any) -> T:
        if isinstance(raw, str | bytes | bytearray) or not isinstance(raw, Sequence | Mapping):
            raise _fail("Row", raw)
        try:
            value = raw[key]
        except (KeyError, IndexError, TypeError):
            raise DecodeFailure(
                [DecodeError(expected="Field", found="Nothing", path=(str(key),))]
            ) from None
        try:
            return decoder.run(value)
        except DecodeFailure as e:
            raise e.prefixed(str(key)) from None

    return Decoder(run)


def row(*decoders: Decoder[Any]) -> Decoder[tuple[Any, ...]]:
    """Decode a tuple row positionally, one decoder per column."""

    def run(raw: Any) -> tuple[Any, ...]:
        if not isinstance(raw, list | tuple):
            raise _fail(f"Tuple of {len(decoders)} elements", raw)
        if len(raw) != len(decoders):
            raise _fail(f"Tuple of {len(decoders)} elements", raw)
        return tuple(at(index, decoder).run(raw) for index, decoder in enumerate(decoders))

    return Decoder(run)


def model(model_cls: type[M]) -> Decoder[M]:
    """Validate a whole row into a pydantic model.

    Tuple rows are matched to the model's fields in declaration order; map rows
    by column name. Unlike the positional combinators, every field error of the
    row is reported.
    """
    field_names = tuple(model_cls.model_fields)

    def run(raw: Any) -> M:
        if isinstance(raw, Mapping):
            data = dict(raw)
        elif isinstance(raw, list | tuple):
            if len(raw) != len(field_names):
                raise _fail(f"Tuple of {len(field_names)} elements", raw)
            data = dict(zip(field_names, raw, strict=True))
        else:
            raise _fail(model_cls.__name__, raw)
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise DecodeFailure(
                [
                    DecodeError(
                        expected=err["type"],
                        found=classify(err.get("input")),
                        path=tuple(str(part) for part in err["loc"]),
                    )
                    for err in e.errors()
                ]
            ) from None

    return Decoder(run)


def _split_seconds(seconds: int | float) -> tuple[int, int]:
    if isinstance(seconds, int):
        return seconds, 0
    return divmod(round(seconds * 1_000_000), 1_000_000)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _decode_date(raw: Any) -> Date:
    match raw:
        case dt.datetime():
            raise _fail("Date", raw)
        case dt.date():
            return Date.from_stdlib(raw)
        case (year, month, day) if all(_is_int(part) for part in raw):
            return Date(year=year, month=month, day=day)
    raise _fail("Date", raw)


def _decode_time(raw: Any) -> Time:
    match raw:
        case dt.time():
            return Time.from_stdlib(raw)
        case (hours, minutes, int() | float() as seconds) if (
            _is_int(hours) and _is_int(minutes) and not isinstance(seconds, bool)
        ):
            whole, micro = _split_seconds(seconds)
            return Time(hours=hours, minutes=minutes, seconds=whole, microseconds=micro)
    raise _fail("Time", raw)


def _decode_timestamp(raw: Any) -> Timestamp:
    match raw:
        case dt.datetime():
            return Timestamp.from_stdlib(raw)
        case (date_part, time_part):
            try:
                return Timestamp(date=_decode_date(date_part), time=_decode_time(time_part))
            except DecodeFailure:
                raise _fail("Timestamp", raw) from None
    raise _fail("Timestamp", raw)


date: Decoder[Date] = Decoder(_decode_date)
time: Decoder[Time] = Decoder(_decode_time)
timestamp: Decoder[Timestamp] = Decoder(_decode_timestamp)
