import pytest

from stackduck.errors import (
    DbConnectionError,
    JobError,
    MigrationError,
    RedisConnectionError,
    RedisJobError,
    SerdeJsonError,
    StackDuckError,
)


def test_bare_error_is_unknown():
    assert str(StackDuckError()) == "Unknown error occurred"


@pytest.mark.parametrize(
    "cls, prefix",
    [
        (DbConnectionError, "Database connection failed"),
        (MigrationError, "Migration failed"),
        (JobError, "Job Error"),
        (RedisJobError, "Redis error"),
        (RedisConnectionError, "Redis connection error"),
    ],
)
def test_messages_carry_prefix(cls, prefix):
    err = cls("boom")
    assert str(err) == f"{prefix}: boom"
    assert err.detail == "boom"


@pytest.mark.parametrize(
    "cls",
    [DbConnectionError, MigrationError, JobError, RedisJobError, RedisConnectionError, SerdeJsonError],
)
def test_all_errors_share_base(cls):
    with pytest.raises(StackDuckError) as excinfo:
        raise cls("failure")
    assert type(excinfo.value) is cls
    assert excinfo.value.detail == "failure"
    assert str(excinfo.value).endswith("failure")


def test_wrapped_exception_is_kept():
    cause = ValueError("bad value")
    err = RedisJobError(cause)
    assert err.detail is cause
    assert str(err).endswith("bad value")


def test_base_with_detail_is_plain():
    assert str(StackDuckError("plain text")) == "plain text"