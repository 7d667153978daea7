"""
Collaborator ports consumed by the action handlers.

The handlers only translate an action's config into one call against
one of these interfaces.  Concrete providers (mail delivery, document
storage, calendar) live outside this package; their wire protocols,
OAuth tokens and retries are their own business.  Providers report
failure by raising ``ProviderError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class EntityStore(Protocol):
    """Create/delete access to one kind of local record."""

    @property
    def entity_type(self) -> str: ...

    def create(self, fields: dict[str, Any]) -> str:
        """Persist a new record and return its id."""
        ...

    def delete(self, entity_id: str) -> None:
        """Delete a record.  Raises EntityNotFoundError if it is gone."""
        ...


class MailSender(Protocol):
    def send(self, to: str | list[str], subject: str, body: str) -> str:
        """Send one message and return the provider's message id."""
        ...


@dataclass(frozen=True)
class UploadRequest:
    """What to store and where."""

    destination_path: str
    mail_id: str | None = None
    case_id: str | None = None
    client_id: str | None = None
    attachment_ids: tuple[str, ...] = ()


class DocumentUploader(Protocol):
    def upload(self, request: UploadRequest) -> str:
        """Store the document(s) and return the stored path."""
        ...


@dataclass(frozen=True)
class CalendarEventRequest:
    title: str
    start_at: datetime
    duration_minutes: int
    description: str = ""
    attendees: tuple[str, ...] = ()
    create_meet_link: bool = False
    case_id: str | None = None
    client_id: str | None = None


@dataclass(frozen=True)
class CreatedCalendarEvent:
    event_id: str
    links: dict[str, str] = field(default_factory=dict)  # "html", "meet"


class CalendarService(Protocol):
    def create_event(self, request: CalendarEventRequest) -> CreatedCalendarEvent: ...
