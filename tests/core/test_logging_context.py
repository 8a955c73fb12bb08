"""Tests for request context and log processors."""

from uuid import uuid4

from chirper.core.context import (
    clear_context,
    get_context,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from chirper.core.logging import add_context_processor, filter_sensitive_data


class TestContext:
    """Tests for contextvars helpers."""

    def test_generates_request_id(self) -> None:
        request_id = set_request_id()
        assert request_id
        assert get_context()["request_id"] == request_id
        clear_context()

    def test_context_collects_values(self) -> None:
        user_id = uuid4()
        set_request_id("req-1")
        set_user_id(user_id)
        set_trace_id("trace-1")

        assert get_context() == {
            "request_id": "req-1",
            "user_id": str(user_id),
            "trace_id": "trace-1",
        }

        clear_context()
        assert get_context() == {}


class TestProcessors:
    """Tests for structlog processors."""

    def test_context_added_to_event(self) -> None:
        set_request_id("req-2")
        event = add_context_processor(None, "info", {"event": "comment_created"})
        assert event["request_id"] == "req-2"
        clear_context()

    def test_secrets_are_masked(self) -> None:
        event = filter_sensitive_data(
            None,
            "info",
            {
                "event": "login",
                "authorization": "Bearer abcdefghijkl",
                "token": "abc",
                "comment_id": "kept",
            },
        )
        assert event["authorization"].startswith("Be")
        assert "abcdefgh" not in event["authorization"]
        assert event["token"] == "***"
        assert event["comment_id"] == "kept"

    def test_nested_secrets_are_masked(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"event": "x", "payload": {"password": "hunter22"}}
        )
        assert event["payload"]["password"] == "hu****22"
