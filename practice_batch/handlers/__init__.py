"""
practice_batch.handlers -- Action handler protocol, registry and the
seven built-in handlers.

Revertible handlers (records.py) write local records through an
``EntityStore``; non-revertible handlers (providers.py) call external
collaborators through the ports in ports.py.
"""

from practice_batch.handlers.base import (
    ActionHandler,
    HandlerRegistry,
    RevertibleHandler,
)
from practice_batch.handlers.ports import (
    CalendarEventRequest,
    CalendarService,
    CreatedCalendarEvent,
    DocumentUploader,
    EntityStore,
    MailSender,
    UploadRequest,
)
from practice_batch.handlers.providers import (
    CalendarEventHandler,
    SaveFileHandler,
    SendEmailHandler,
)
from practice_batch.handlers.records import (
    BillingHandler,
    CreateAlertHandler,
    CreateDeadlineHandler,
    CreateTaskHandler,
)

__all__ = [
    "ActionHandler",
    "BillingHandler",
    "CalendarEventHandler",
    "CalendarEventRequest",
    "CalendarService",
    "CreateAlertHandler",
    "CreateDeadlineHandler",
    "CreateTaskHandler",
    "CreatedCalendarEvent",
    "DocumentUploader",
    "EntityStore",
    "HandlerRegistry",
    "MailSender",
    "RevertibleHandler",
    "SaveFileHandler",
    "SendEmailHandler",
    "UploadRequest",
]
