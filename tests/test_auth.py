"""Tests for probe-query authentication."""

from __future__ import annotations

import httpx
import pyarrow as pa
import pytest

from logfire_pg.config import UpstreamConfig
from logfire_pg.errors import InvalidCredentials, UpstreamUnavailable
from logfire_pg.session.auth import Gatekeeper
from logfire_pg.session.state import AuthenticatedSession
from logfire_pg.upstream.client import UpstreamClient
from tests.fixtures.fake_upstream import (
    VALID_TOKEN,
    FakeUpstream,
    arrow_response,
    json_response,
    probe_table,
)


def _gatekeeper(upstream: FakeUpstream) -> Gatekeeper:
    config = UpstreamConfig(base_url="https://logfire.example")
    return Gatekeeper(UpstreamClient(config, transport=upstream.transport()))


def _probe_answer(table: pa.Table) -> FakeUpstream:
    return FakeUpstream(responses={"SELECT 1": lambda r: arrow_response(table)})


def test_valid_token_authenticates() -> None:
    upstream = FakeUpstream()
    session = _gatekeeper(upstream).authenticate(
        "alice", VALID_TOKEN, database="logfire", remote_address="127.0.0.1:5555"
    )

    assert isinstance(session, AuthenticatedSession)
    assert session.username == "alice"
    assert session.credential.get_secret_value() == VALID_TOKEN
    assert session.database == "logfire"
    assert upstream.queries == ["SELECT 1"]


def test_credential_is_not_in_repr() -> None:
    session = _gatekeeper(FakeUpstream()).authenticate("alice", VALID_TOKEN)
    assert VALID_TOKEN not in repr(session)
    assert VALID_TOKEN not in str(session)


def test_empty_username_is_rejected_without_upstream_call() -> None:
    upstream = FakeUpstream()
    with pytest.raises(InvalidCredentials, match="username cannot be empty"):
        _gatekeeper(upstream).authenticate("", VALID_TOKEN)
    assert upstream.requests == []


def test_rejected_token_is_invalid_credentials() -> None:
    with pytest.raises(InvalidCredentials):
        _gatekeeper(FakeUpstream()).authenticate("alice", "wrong-token")


def test_float_one_is_accepted() -> None:
    upstream = _probe_answer(probe_table().cast(pa.schema([("?column?", pa.float64())])))
    session = _gatekeeper(upstream).authenticate("alice", VALID_TOKEN)
    assert session.username == "alice"


def test_other_value_is_rejected() -> None:
    upstream = _probe_answer(pa.table({"?column?": pa.array([2.0])}))
    with pytest.raises(InvalidCredentials, match="unexpected probe result"):
        _gatekeeper(upstream).authenticate("alice", VALID_TOKEN)


def test_numeric_text_one_is_accepted() -> None:
    upstream = _probe_answer(pa.table({"?column?": pa.array([" 1.0"])}))
    assert _gatekeeper(upstream).authenticate("alice", VALID_TOKEN).username == "alice"


@pytest.mark.parametrize("value", ["one", "2", "NaN", "sNaN", ""])
def test_other_text_is_rejected(value: str) -> None:
    upstream = _probe_answer(pa.table({"?column?": pa.array([value])}))
    with pytest.raises(InvalidCredentials, match="unexpected probe result"):
        _gatekeeper(upstream).authenticate("alice", VALID_TOKEN)


@pytest.mark.parametrize(
    "table",
    [
        pa.table({"a": pa.array([1]), "b": pa.array([1])}),
        pa.table({"a": pa.array([1, 1])}),
        pa.table({"a": pa.array([], type=pa.int64())}),
    ],
)
def test_wrong_shape_is_rejected(table: pa.Table) -> None:
    with pytest.raises(InvalidCredentials):
        _gatekeeper(_probe_answer(table)).authenticate("alice", VALID_TOKEN)


def test_json_upstream_answer_authenticates() -> None:
    columns = [{"name": "?column?", "datatype": "Int64", "nullable": False, "values": [1]}]
    upstream = FakeUpstream(responses={"SELECT 1": lambda r: json_response(columns)})
    assert _gatekeeper(upstream).authenticate("alice", VALID_TOKEN).username == "alice"


def test_unreachable_upstream_is_not_invalid_credentials() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    config = UpstreamConfig(base_url="https://logfire.example")
    gatekeeper = Gatekeeper(UpstreamClient(config, transport=httpx.MockTransport(handler)))
    with pytest.raises(UpstreamUnavailable):
        gatekeeper.authenticate("alice", VALID_TOKEN)
