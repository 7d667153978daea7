"""
Handlers for the non-revertible action types.

These call external providers (mail, document storage, calendar).  Once
the provider has accepted the call there is nothing local to undo, so
none of them implements ``revert()``.
"""

from __future__ import annotations

from practice_config import EngineSettings
from practice_kernel.exceptions import ActionExecutionError
from practice_kernel.logging_config import get_logger

from practice_batch.domain.types import (
    ActionType,
    ApprovalBatch,
    BatchAction,
    EntityRef,
    ExecutionContext,
)
from practice_batch.handlers.base import config_datetime, first_present, require
from practice_batch.handlers.ports import (
    CalendarEventRequest,
    CalendarService,
    DocumentUploader,
    EntityStore,
    MailSender,
    UploadRequest,
)

logger = get_logger("batch.handlers")


def _as_tuple(value: object) -> tuple[str, ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return (str(value),)


class SendEmailHandler:
    action_type = ActionType.SEND_EMAIL.value

    def __init__(self, sender: MailSender) -> None:
        self._sender = sender

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        to = require(action, "to")
        subject = str(first_present(action.config, "subject", default=""))
        body = str(first_present(action.config, "body", default=""))
        message_id = self._sender.send(to, subject, body)
        return EntityRef("Email", str(message_id), {"to": to, "subject": subject})


class SaveFileHandler:
    action_type = ActionType.SAVE_FILE.value

    def __init__(self, uploader: DocumentUploader) -> None:
        self._uploader = uploader

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        destination = require(action, "path", "dropbox_folder_path")
        request = UploadRequest(
            destination_path=str(destination),
            mail_id=batch.mail_id,
            case_id=first_present(action.config, "case_id", default=batch.case_id),
            client_id=first_present(action.config, "client_id", default=batch.client_id),
            attachment_ids=_as_tuple(action.config.get("attachment_ids")),
        )
        stored_path = self._uploader.upload(request)
        return EntityRef("Document", str(stored_path), {"path": str(stored_path)})


class CalendarEventHandler:
    """Creates the provider event, then a best-effort local mirror."""

    action_type = ActionType.CALENDAR_EVENT.value

    def __init__(
        self,
        calendar: CalendarService,
        mirror_store: EntityStore | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._calendar = calendar
        self._mirror_store = mirror_store
        self._settings = settings or EngineSettings()

    def perform(
        self,
        action: BatchAction,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> EntityRef:
        config = action.config
        title = first_present(config, "title", "title_template")
        if title is None:
            raise ActionExecutionError(
                action.action_type, action.idempotency_key, "missing required config: title",
            )
        start_at = config_datetime(
            action, "start_date", require(action, "start_date", "due_date"),
        )
        duration = int(first_present(
            config, "duration", "duration_minutes",
            default=self._settings.default_calendar_duration_minutes,
        ))
        request = CalendarEventRequest(
            title=str(title),
            start_at=start_at,
            duration_minutes=duration,
            description=str(first_present(config, "description", default="")),
            attendees=_as_tuple(config.get("attendees")),
            create_meet_link=bool(config.get("create_meet_link", False)),
            case_id=first_present(config, "case_id", default=batch.case_id),
            client_id=first_present(config, "client_id", default=batch.client_id),
        )
        created = self._calendar.create_event(request)
        self._write_mirror(request, created.event_id, created.links)
        return EntityRef(
            "CalendarEvent", str(created.event_id), {"links": dict(created.links)},
        )

    def _write_mirror(
        self,
        request: CalendarEventRequest,
        event_id: str,
        links: dict[str, str],
    ) -> None:
        if self._mirror_store is None:
            return
        try:
            self._mirror_store.create({
                "external_event_id": str(event_id),
                "title": request.title,
                "start_at": request.start_at,
                "duration_minutes": request.duration_minutes,
                "case_id": request.case_id,
                "client_id": request.client_id,
                "html_link": links.get("html"),
                "meet_link": links.get("meet"),
            })
        except Exception:
            logger.warning(
                "calendar_mirror_failed",
                extra={"event_id": str(event_id)},
                exc_info=True,
            )
