"""
BatchOrchestrator -- DI container for the approval batch engine.

Contract:
    Wires the handler registry with the built-in handlers, the
    reservation ledger, dispatcher, rollback manager and executor, and
    the approval workflow service.  Single place where all engine
    dependencies are composed.

Invariants enforced:
    - Every service receives the same Clock and EngineSettings.
    - Provider-backed handlers are registered only when their provider
      is supplied; a batch using a missing one fails that action with
      HandlerNotRegisteredError.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from practice_config import EngineSettings, get_engine_settings
from practice_kernel.domain.clock import Clock, SystemClock
from practice_kernel.logging_config import get_logger

from practice_batch.domain.classification import classify
from practice_batch.domain.types import (
    ActionType,
    ApprovalBatch,
    ExecutionContext,
    ExecutionSummary,
)
from practice_batch.handlers import (
    BillingHandler,
    CalendarEventHandler,
    CalendarService,
    CreateAlertHandler,
    CreateDeadlineHandler,
    CreateTaskHandler,
    DocumentUploader,
    HandlerRegistry,
    MailSender,
    SaveFileHandler,
    SendEmailHandler,
)
from practice_batch.models.entities import (
    ActivityModel,
    CalendarEventMirrorModel,
    DeadlineModel,
    TaskModel,
    TimeEntryModel,
)
from practice_batch.services.dispatcher import ActionDispatcher
from practice_batch.services.entity_store import SqlEntityStore
from practice_batch.services.executor import BatchActionExecutor
from practice_batch.services.ledger import ReservationLedger
from practice_batch.services.reservation_store import SqlReservationStore
from practice_batch.services.rollback import RollbackManager
from practice_batch.services.workflow import ApprovalWorkflowService

logger = get_logger("batch.orchestrator")


def _entity_store(
    session_factory: sessionmaker[Session],
    model: type,
    action_type: ActionType,
) -> SqlEntityStore:
    return SqlEntityStore(session_factory, model, classify(action_type.value).entity_type)


def _default_handler_registry(
    session_factory: sessionmaker[Session],
    settings: EngineSettings,
    clock: Clock,
    mail_sender: MailSender | None,
    document_uploader: DocumentUploader | None,
    calendar_service: CalendarService | None,
) -> HandlerRegistry:
    """Create a HandlerRegistry pre-loaded with the built-in handlers."""
    registry = HandlerRegistry()
    registry.register(CreateTaskHandler(
        _entity_store(session_factory, TaskModel, ActionType.CREATE_TASK), settings,
    ))
    registry.register(BillingHandler(
        _entity_store(session_factory, TimeEntryModel, ActionType.BILLING), settings, clock,
    ))
    registry.register(CreateDeadlineHandler(
        _entity_store(session_factory, DeadlineModel, ActionType.CREATE_DEADLINE), settings,
    ))
    registry.register(CreateAlertHandler(
        _entity_store(session_factory, ActivityModel, ActionType.CREATE_ALERT), settings,
    ))
    if mail_sender is not None:
        registry.register(SendEmailHandler(mail_sender))
    if document_uploader is not None:
        registry.register(SaveFileHandler(document_uploader))
    if calendar_service is not None:
        registry.register(CalendarEventHandler(
            calendar_service,
            SqlEntityStore(session_factory, CalendarEventMirrorModel, "CalendarEventMirror"),
            settings,
        ))
    return registry


class BatchOrchestrator:
    """DI container for the approval batch engine.

    Contract:
        - ``from_session_factory()`` creates a fully wired orchestrator.
        - ``execute_batch_actions()`` is the engine's single entry point.
        - ``workflow`` approves, edits and cancels persisted batches.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        handler_registry: HandlerRegistry,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._registry = handler_registry
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()

        self._ledger = ReservationLedger(
            SqlReservationStore(session_factory), self._settings, self._clock,
        )
        self._dispatcher = ActionDispatcher(self._registry)
        self._rollback_manager = RollbackManager(self._registry, self._ledger, self._settings)
        self._executor = BatchActionExecutor(
            self._ledger, self._dispatcher, self._rollback_manager, self._clock,
        )
        self._workflow = ApprovalWorkflowService(
            session_factory, self._executor, self._settings, self._clock,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: sessionmaker[Session],
        *,
        mail_sender: MailSender | None = None,
        document_uploader: DocumentUploader | None = None,
        calendar_service: CalendarService | None = None,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        handler_registry: HandlerRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator.

        Args:
            session_factory: Factory for the short-lived sessions every
                ledger and entity write runs in.
            mail_sender, document_uploader, calendar_service: External
                providers for the non-revertible actions.
            settings: Engine settings.  If None, loads the packaged defaults.
            clock: Optional clock for deterministic testing.
            handler_registry: Optional pre-configured registry.  If None,
                registers the built-in handlers.
        """
        effective_settings = settings or get_engine_settings()
        effective_clock = clock or SystemClock()
        registry = (
            handler_registry
            if handler_registry is not None
            else _default_handler_registry(
                session_factory, effective_settings, effective_clock,
                mail_sender, document_uploader, calendar_service,
            )
        )
        logger.info("orchestrator_created", extra={"handlers": list(registry.list_handlers())})
        return cls(session_factory, registry, effective_settings, effective_clock)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def execute_batch_actions(
        self,
        batch: ApprovalBatch,
        context: ExecutionContext,
    ) -> ExecutionSummary:
        return self._executor.execute_batch_actions(batch, context)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def executor(self) -> BatchActionExecutor:
        return self._executor

    @property
    def ledger(self) -> ReservationLedger:
        return self._ledger

    @property
    def workflow(self) -> ApprovalWorkflowService:
        return self._workflow

    @property
    def handler_registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock
