"""
Unit tests for meetread.core.logging – JSON lines, request/user context, lifecycle fields.
"""
import json
import logging
import sys

import pytest

from meetread.core.logging import (
    JSONFormatter,
    RequestContextFilter,
    get_logger,
    request_context,
    request_id_ctx,
    current_user_id_ctx,
    setup_logging,
)
from meetread.services.borrow import approve_borrow_request, create_borrow_request
from tests.unit.conftest import future


@pytest.fixture
def formatter():
    return JSONFormatter()


def _record(message="Borrow request created", level=logging.INFO, name="services.borrow"):
    return logging.getLogger(name).makeRecord(
        name=name, level=level, fn="borrow.py", lno=1, msg=message, args=(), exc_info=None
    )


def _format(formatter, record=None):
    return json.loads(formatter.format(record or _record()))


class TestJSONFormatter:
    def test_base_fields(self, formatter):
        entry = _format(formatter, _record("Book created", logging.WARNING, "services.book"))
        assert entry["message"] == "Book created"
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "services.book"
        assert entry["service"] == "MeetRead API"
        assert "T" in entry["timestamp"]

    def test_context_is_omitted_outside_a_request(self, formatter):
        entry = _format(formatter)
        assert "request_id" not in entry
        assert "user_id" not in entry

    def test_request_and_user_context(self, formatter):
        req_token = request_id_ctx.set("a1b2c3d4")
        user_token = current_user_id_ctx.set(42)
        try:
            entry = _format(formatter)
        finally:
            request_id_ctx.reset(req_token)
            current_user_id_ctx.reset(user_token)
        assert entry["request_id"] == "a1b2c3d4"
        assert entry["user_id"] == 42

    def test_extra_data_is_merged(self, formatter):
        record = _record()
        record.extra_data = {"transition": "approved", "book_id": 9}
        entry = _format(formatter, record)
        assert entry["transition"] == "approved"
        assert entry["book_id"] == 9

    def test_non_dict_extra_data_is_ignored(self, formatter):
        record = _record()
        record.extra_data = "oops"
        assert "oops" not in formatter.format(record)

    def test_exception_is_rendered(self, formatter):
        try:
            raise ValueError("Due date must be after the current time")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = _format(formatter, record)
        assert "ValueError: Due date" in entry["exception"]


class TestRequestContext:
    def test_empty_outside_a_request(self):
        assert request_context() == {}

    def test_filter_stamps_placeholders(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert record.request_id == "-"
        assert record.user_id == "-"

    def test_filter_stamps_current_request(self):
        req_token = request_id_ctx.set("ff00aa11")
        user_token = current_user_id_ctx.set(3)
        try:
            record = _record()
            RequestContextFilter().filter(record)
        finally:
            request_id_ctx.reset(req_token)
            current_user_id_ctx.reset(user_token)
        assert record.request_id == "ff00aa11"
        assert record.user_id == 3


class TestSetupLogging:
    def test_json_handler_on_root(self):
        setup_logging()
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JSONFormatter)

    def test_plain_text_output(self):
        setup_logging(json_output=False)
        try:
            handler = logging.getLogger().handlers[0]
            assert not isinstance(handler.formatter, JSONFormatter)
            record = _record("Book deleted")
            handler.filter(record)
            assert "[req=- user=-] Book deleted" in handler.format(record)
        finally:
            setup_logging()

    def test_noisy_libraries_are_quieted(self):
        setup_logging()
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("passlib").level == logging.ERROR

    def test_named_loggers_are_shared(self):
        assert get_logger("services.borrow") is get_logger("services.borrow")
        assert get_logger("services.borrow") is not get_logger("services.book")


class TestLifecycleLogging:
    @pytest.mark.asyncio
    async def test_transitions_carry_structured_fields(self, db_session, lending_setup, caplog):
        owner, borrower, book = lending_setup
        caplog.set_level(logging.INFO, logger="services.borrow")

        borrow_request = await create_borrow_request(db_session, borrower, book.id)
        await approve_borrow_request(db_session, owner, borrow_request.id, future())

        records = [r for r in caplog.records if r.name == "services.borrow"]
        fields = [r.extra_data for r in records if hasattr(r, "extra_data")]
        assert [f["transition"] for f in fields] == ["created", "approved"]
        assert fields[1] == {
            "transition": "approved",
            "borrow_request_id": borrow_request.id,
            "book_id": book.id,
            "book_status": "BORROWED",
        }
        assert records[-1].getMessage().startswith("Borrow request approved:")
