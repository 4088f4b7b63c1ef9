"""Shared fixtures for integration tests.

Provides:
- postgres_container: Session-scoped PostgreSQL container
- database_config: `Config` pointing at the container
- db: Function-scoped pool `Connection` with the test schema in place
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, cast

import pytest

from pgtyped import Config, aconnect, aexecute, default_config
from pgtyped.query import query

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from pgtyped import Connection

SCHEMA = (
    "DROP TABLE IF EXISTS test_users",
    """
    CREATE TABLE test_users (
        id SERIAL PRIMARY KEY,
        username VARCHAR(255) UNIQUE NOT NULL,
        email VARCHAR(255),
        age INTEGER NOT NULL CONSTRAINT age_in_range CHECK (age >= 0 AND age <= 150),
        avatar BYTEA,
        tags TEXT[] NOT NULL DEFAULT '{}',
        born DATE,
        wakes_at TIME,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


class PostgresContainerProtocol(Protocol):
    """Protocol for PostgreSQL container interface."""

    def get_exposed_port(self, port: int) -> int: ...
    def get_container_host_ip(self) -> str: ...
    def start(self) -> PostgresContainerProtocol: ...
    def stop(self) -> None: ...


def _check_docker_available() -> bool:
    """Check if Docker is available using docker client.

    Tries multiple socket locations for compatibility with:
    - Standard Linux Docker (/var/run/docker.sock)
    - macOS Docker Desktop (~/.docker/run/docker.sock)
    - Custom DOCKER_HOST environment variable

    Returns:
        True if Docker daemon is accessible, False otherwise.
    """
    try:
        from docker import DockerClient, from_env  # type: ignore[import-untyped]
        from docker.errors import DockerException  # type: ignore[import-untyped]
    except ImportError:
        return False

    socket_locations = [
        None,
        "unix:///var/run/docker.sock",
        f"unix://{Path.home()}/.docker/run/docker.sock",
    ]

    for socket_url in socket_locations:
        try:
            client = from_env() if socket_url is None else DockerClient(base_url=socket_url)
            client.ping()
            return True
        except DockerException:
            continue

    return False


def _configure_docker_environment() -> None:
    """Set DOCKER_HOST when only the macOS Docker Desktop socket exists."""
    if os.environ.get("DOCKER_HOST"):
        return

    macos_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if macos_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{macos_socket}"


def _create_postgres_container() -> PostgresContainerProtocol:
    from testcontainers.postgres import PostgresContainer  # type: ignore[import-untyped]

    container = PostgresContainer(
        "postgres:16-alpine",
        username="test_user",
        password="test_password",
        dbname="test_db",
    )
    return cast(PostgresContainerProtocol, container)


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainerProtocol]:
    """Provide session-scoped PostgreSQL container.

    Skips:
        If Docker daemon or testcontainers is not available.
    """
    _configure_docker_environment()

    if not _check_docker_available():
        pytest.skip(
            "Docker daemon not available. "
            "Install Docker Desktop (macOS) or Docker Engine (Linux) to run integration tests."
        )

    try:
        container = _create_postgres_container()
    except ImportError as e:
        pytest.skip(f"testcontainers not installed: {e}")

    container.start()

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def database_config(postgres_container: PostgresContainerProtocol) -> Config:
    return (
        default_config()
        .with_host(postgres_container.get_container_host_ip())
        .with_port(int(postgres_container.get_exposed_port(5432)))
        .with_database("test_db")
        .with_user("test_user")
        .with_password("test_password")
        .with_default_timeout(10_000)
    )


@pytest.fixture
async def db(database_config: Config) -> AsyncIterator[Connection]:
    """Provide a pool connection with a freshly created test_users table."""
    async with await aconnect(database_config) as connection:
        for statement in SCHEMA:
            await aexecute(query(statement), connection)
        yield connection
