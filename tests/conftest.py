"""
Pytest fixtures for the approval batch engine test suite.

Provides:
- An in-memory SQLite engine shared by every session of a test
  (StaticPool), with all tables created
- A DeterministicClock and default EngineSettings
- Recording fakes for the mail, document-storage and calendar providers
- A fully wired BatchOrchestrator
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from practice_config import EngineSettings
from practice_kernel.db.engine import build_engine, create_tables, session_scope
from practice_kernel.domain.clock import DeterministicClock
from practice_kernel.exceptions import ProviderError
from practice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from practice_kernel.utils.idempotency import make_action_key

import practice_batch.models  # noqa: F401  (register tables on Base.metadata)
from practice_batch.domain.types import (
    ApprovalBatch,
    BatchAction,
    BatchStatus,
    ExecutionContext,
)
from practice_batch.handlers.ports import (
    CalendarEventRequest,
    CreatedCalendarEvent,
    UploadRequest,
)
from practice_batch.models.batch import ExecutionRecordModel
from practice_batch.orchestrator import BatchOrchestrator


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture practice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.execute_batch_actions(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_execution_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("practice_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine; every connection sees the same database."""
    eng = build_engine("sqlite:///:memory:")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def count_rows(session_factory):
    """Return the number of rows of an ORM model."""

    def _count(model) -> int:
        with session_scope(session_factory) as session:
            return len(session.execute(select(model)).scalars().all())

    return _count


@pytest.fixture
def ledger_record(session_factory):
    """Fetch one execution record by idempotency key (or None)."""

    def _get(key: str) -> ExecutionRecordModel | None:
        with session_scope(session_factory) as session:
            return session.execute(
                select(ExecutionRecordModel).where(
                    ExecutionRecordModel.idempotency_key == key,
                )
            ).scalar_one_or_none()

    return _get


# =============================================================================
# Clock / settings fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 6, 3, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return EngineSettings()


# =============================================================================
# Provider fakes
# =============================================================================


class RecordingMailSender:
    """MailSender that records every message; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail_with: str | None = None

    def send(self, to, subject: str, body: str) -> str:
        if self.fail_with:
            raise ProviderError("mail", self.fail_with)
        self.sent.append({"to": to, "subject": subject, "body": body})
        return f"msg-{len(self.sent)}"


class RecordingUploader:
    def __init__(self) -> None:
        self.uploads: list[UploadRequest] = []
        self.fail_with: str | None = None

    def upload(self, request: UploadRequest) -> str:
        if self.fail_with:
            raise ProviderError("documents", self.fail_with)
        self.uploads.append(request)
        return f"{request.destination_path.rstrip('/')}/{request.mail_id or 'file'}.pdf"


class RecordingCalendar:
    def __init__(self) -> None:
        self.events: list[CalendarEventRequest] = []
        self.fail_with: str | None = None

    def create_event(self, request: CalendarEventRequest) -> CreatedCalendarEvent:
        if self.fail_with:
            raise ProviderError("calendar", self.fail_with)
        self.events.append(request)
        event_id = f"evt-{len(self.events)}"
        links = {"html": f"https://calendar.example/{event_id}"}
        if request.create_meet_link:
            links["meet"] = f"https://meet.example/{event_id}"
        return CreatedCalendarEvent(event_id=event_id, links=links)


@pytest.fixture
def mail_sender():
    return RecordingMailSender()


@pytest.fixture
def uploader():
    return RecordingUploader()


@pytest.fixture
def calendar():
    return RecordingCalendar()


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def orchestrator(session_factory, mail_sender, uploader, calendar, settings, deterministic_clock):
    return BatchOrchestrator.from_session_factory(
        session_factory,
        mail_sender=mail_sender,
        document_uploader=uploader,
        calendar_service=calendar,
        settings=settings,
        clock=deterministic_clock,
    )


@pytest.fixture
def context():
    return ExecutionContext(actor="approver@firm.example", origin="ui", correlation_id="corr-1")


@pytest.fixture
def make_batch():
    """Build an ApprovalBatch from (action_type, config) pairs.

    Keys are derived with make_action_key from a per-batch origin id.
    Pass ``key=None`` in the config dict to build an unkeyed action and
    ``enabled=False`` to disable one.
    """

    def _make(*specs: tuple[str, dict[str, Any]], **fields: Any) -> ApprovalBatch:
        origin = fields.pop("origin", f"mail-{uuid4().hex[:8]}")
        actions = []
        for index, (action_type, config) in enumerate(specs):
            config = dict(config)
            enabled = config.pop("enabled", True)
            key = config.pop("key", make_action_key(origin, index, action_type))
            actions.append(BatchAction(action_type, enabled, key, config))
        defaults: dict[str, Any] = {
            "batch_id": uuid4(),
            "status": BatchStatus.EXECUTING,
            "actions_current": tuple(actions),
            "actions_original": tuple(actions),
            "mail_id": origin,
            "mail_subject": "Re: settlement draft",
            "case_id": "case-7",
            "client_id": "client-3",
        }
        defaults.update(fields)
        return ApprovalBatch(**defaults)

    return _make
