"""End-to-end tests against a real PostgreSQL server (Docker required)."""

from __future__ import annotations

import pytest
from rich.console import Console

from pgtyped import (
    Config,
    Connection,
    ConnectionUnavailableError,
    ConstraintViolatedError,
    Date,
    PostgresqlError,
    Rollback,
    Time,
    Timestamp,
    TransactionQueryError,
    TransactionRolledBackError,
    UnexpectedArgumentCountError,
    UnexpectedArgumentTypeError,
    UnexpectedResultTypeError,
    aconnect,
    aexecute,
    atransaction,
    decode,
    values,
)
from pgtyped.query import Query, query

pytestmark = pytest.mark.integration

console = Console()

INSERT_USER = "INSERT INTO test_users (username, email, age) VALUES ($1, $2, $3) RETURNING id"
COUNT_USERS = "SELECT count(*) FROM test_users"


def insert_user(username: str, age: int, email: str | None = None) -> Query[int]:
    return (
        query(INSERT_USER)
        .parameter(values.text(username))
        .parameter(values.nullable(values.text, email))
        .parameter(values.int_(age))
        .returning(decode.at(0, decode.int_))
    )


async def count_users(db: Connection) -> int:
    returned = await aexecute(query(COUNT_USERS).returning(decode.at(0, decode.int_)), db)
    return returned.rows[0]


class TestQueries:
    """Test statements, parameters and row decoding."""

    @pytest.mark.asyncio
    async def test_insert_and_select(self, db: Connection) -> None:
        console.print("[bold blue]Testing insert and select round trip[/bold blue]")

        inserted = await aexecute(insert_user("alice", 30, "alice@example.com"), db)
        assert inserted.count == 1
        (user_id,) = inserted.rows

        returned = await aexecute(
            query("SELECT username, email, age FROM test_users WHERE id = $1")
            .parameter(values.int_(user_id))
            .returning(decode.row(decode.string, decode.optional(decode.string), decode.int_)),
            db,
        )

        assert returned.rows == (("alice", "alice@example.com", 30),)
        console.print("[green]✓ Row decoded[/green]")

    @pytest.mark.asyncio
    async def test_update_count(self, db: Connection) -> None:
        for name in ("a", "b", "c"):
            await aexecute(insert_user(name, 20), db)

        returned = await aexecute(query("UPDATE test_users SET age = age + 1 WHERE age < $1").parameter(values.int_(50)), db)

        assert returned.count == 3
        assert returned.rows == ()

    @pytest.mark.asyncio
    async def test_all_value_kinds(self, db: Connection) -> None:
        born = Date(year=1990, month=6, day=15)
        wakes_at = Time(hours=7, minutes=30, seconds=0, microseconds=250_000)

        await aexecute(
            query(
                "INSERT INTO test_users (username, age, avatar, tags, born, wakes_at) VALUES ($1, $2, $3, $4, $5, $6)"
            )
            .parameter(values.text("bob"))
            .parameter(values.int_(41))
            .parameter(values.bytea(b"\x89PNG"))
            .parameter(values.array(values.text, ["admin", "ops"]))
            .parameter(values.date(born))
            .parameter(values.time(wakes_at)),
            db,
        )

        returned = await aexecute(
            query("SELECT avatar, tags, born, wakes_at, created_at FROM test_users WHERE username = $1")
            .parameter(values.text("bob"))
            .returning(
                decode.row(decode.bytea, decode.list_of(decode.string), decode.date, decode.time, decode.timestamp)
            ),
            db,
        )

        avatar, tags, born_back, wakes_back, created_at = returned.rows[0]
        assert avatar == b"\x89PNG"
        assert tags == ["admin", "ops"]
        assert born_back == born
        assert wakes_back == wakes_at
        assert isinstance(created_at, Timestamp)

    @pytest.mark.asyncio
    async def test_scalar_encoders(self, db: Connection) -> None:
        returned = await aexecute(
            query("SELECT $1::bool, $2::float8, $3::numeric, $4::text IS NULL")
            .parameter(values.bool_(True))
            .parameter(values.float_(1.5))
            .parameter(values.float_(2.25))
            .parameter(values.null())
            .returning(decode.row(decode.bool_, decode.float_, decode.numeric, decode.bool_)),
            db,
        )

        assert returned.rows == ((True, 1.5, 2.25, True),)

    @pytest.mark.asyncio
    async def test_rows_as_map(self, database_config: Config) -> None:
        async with await aconnect(database_config.with_rows_as_map(True)) as db:
            returned = await aexecute(
                query("SELECT 1 AS id, 'x' AS label").returning(decode.at("label", decode.string)), db
            )

        assert returned.rows == ("x",)


class TestErrors:
    """Test classification of failures reported by asyncpg and the server."""

    @pytest.mark.asyncio
    async def test_unique_violation(self, db: Connection) -> None:
        await aexecute(insert_user("carol", 25), db)

        with pytest.raises(ConstraintViolatedError) as exc_info:
            await aexecute(insert_user("carol", 26), db)

        assert exc_info.value.constraint == "test_users_username_key"
        assert "carol" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_check_violation(self, db: Connection) -> None:
        with pytest.raises(ConstraintViolatedError) as exc_info:
            await aexecute(insert_user("old", 200), db)

        assert exc_info.value.constraint == "age_in_range"

    @pytest.mark.asyncio
    async def test_undefined_table(self, db: Connection) -> None:
        with pytest.raises(PostgresqlError) as exc_info:
            await aexecute(query("SELECT * FROM no_such_table"), db)

        assert exc_info.value.code == "42P01"
        assert exc_info.value.name == "undefined_table"

    @pytest.mark.asyncio
    async def test_too_few_parameters(self, db: Connection) -> None:
        with pytest.raises(UnexpectedArgumentCountError) as exc_info:
            await aexecute(query("SELECT $1::int, $2::int").parameter(values.int_(1)), db)

        assert (exc_info.value.expected, exc_info.value.got) == (2, 1)

    @pytest.mark.asyncio
    async def test_wrong_parameter_type(self, db: Connection) -> None:
        with pytest.raises(UnexpectedArgumentTypeError):
            await aexecute(query("SELECT $1::int").parameter(values.text("abc")), db)

    @pytest.mark.asyncio
    async def test_undecodable_rows_still_counted(self, db: Connection) -> None:
        await aexecute(insert_user("dave", 33), db)

        with pytest.raises(UnexpectedResultTypeError) as exc_info:
            await aexecute(query("DELETE FROM test_users RETURNING username").returning(decode.at(0, decode.int_)), db)

        assert exc_info.value.count == 1
        assert await count_users(db) == 0

    @pytest.mark.asyncio
    async def test_query_timeout(self, db: Connection) -> None:
        with pytest.raises(ConnectionUnavailableError):
            await aexecute(query("SELECT pg_sleep(2)").with_timeout(100), db)

    @pytest.mark.asyncio
    async def test_wrong_password(self, database_config: Config) -> None:
        async with await aconnect(database_config.with_password("wrong")) as db:
            with pytest.raises(ConnectionUnavailableError):
                await aexecute(query("SELECT 1"), db)

    @pytest.mark.asyncio
    async def test_unreachable_server(self, database_config: Config) -> None:
        """The pool starts lazily; the failure surfaces on the first query."""
        async with await aconnect(database_config.with_host("127.0.0.1").with_port(1)) as db:
            with pytest.raises(ConnectionUnavailableError):
                await aexecute(query("SELECT 1"), db)


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit(self, db: Connection) -> None:
        async def body(conn: Connection) -> int:
            await aexecute(insert_user("erin", 40), conn)
            await aexecute(insert_user("frank", 41), conn)
            return await count_users(conn)

        assert await atransaction(db, body) == 2
        assert await count_users(db) == 2

    @pytest.mark.asyncio
    async def test_rollback_signal(self, db: Connection) -> None:
        async def body(conn: Connection) -> None:
            await aexecute(insert_user("gina", 22), conn)
            raise Rollback("changed my mind")

        with pytest.raises(TransactionRolledBackError) as exc_info:
            await atransaction(db, body)

        assert exc_info.value.reason == "changed my mind"
        assert await count_users(db) == 0

    @pytest.mark.asyncio
    async def test_query_error_rolls_back(self, db: Connection) -> None:
        async def body(conn: Connection) -> None:
            await aexecute(insert_user("hank", 50), conn)
            await aexecute(insert_user("hank", 51), conn)

        with pytest.raises(TransactionQueryError) as exc_info:
            await atransaction(db, body)

        assert isinstance(exc_info.value.error, ConstraintViolatedError)
        assert await count_users(db) == 0

    @pytest.mark.asyncio
    async def test_nested_rollback_keeps_outer_work(self, db: Connection) -> None:
        async def inner(conn: Connection) -> None:
            await aexecute(insert_user("ivan", 60), conn)
            raise Rollback("inner only")

        async def outer(conn: Connection) -> None:
            await aexecute(insert_user("jane", 61), conn)
            with pytest.raises(TransactionRolledBackError):
                await atransaction(conn, inner)

        await atransaction(db, outer)

        returned = await aexecute(
            query("SELECT username FROM test_users ORDER BY username").returning(decode.at(0, decode.string)), db
        )
        assert returned.rows == ("jane",)

    @pytest.mark.asyncio
    async def test_read_only_transaction(self, db: Connection) -> None:
        async def body(conn: Connection) -> None:
            await aexecute(insert_user("kim", 30), conn)

        with pytest.raises(TransactionQueryError) as exc_info:
            await atransaction(db, body, readonly=True)

        assert isinstance(exc_info.value.error, PostgresqlError)
        assert exc_info.value.error.name == "read_only_sql_transaction"
