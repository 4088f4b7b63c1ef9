from __future__ import annotations

from enum import StrEnum


class IpVersion(StrEnum):
    V4 = "ipv4"
    V6 = "ipv6"


class QueryErrorKind(StrEnum):
    CONSTRAINT_VIOLATED = "constraint_violated"
    POSTGRESQL_ERROR = "postgresql_error"
    UNEXPECTED_ARGUMENT_COUNT = "unexpected_argument_count"
    UNEXPECTED_ARGUMENT_TYPE = "unexpected_argument_type"
    UNEXPECTED_RESULT_TYPE = "unexpected_result_type"
    CONNECTION_UNAVAILABLE = "connection_unavailable"
