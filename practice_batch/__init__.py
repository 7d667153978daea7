"""
practice_batch -- Approval Batch Execution Engine.

Executes the approved, heterogeneous actions of one approval batch
(create task, log billable time, create deadline/alert, send email,
save file, create calendar event) with at-most-once application,
deterministic ordering, and compensating rollback.

Architecture:
    domain/    pure frozen types and the static action classification
    models/    SQLAlchemy models (batches, execution ledger, entities)
    handlers/  one handler per action type plus collaborator ports
    services/  reservation ledger, dispatcher, rollback manager,
               executor, result aggregation, approval workflow
    orchestrator.py wires everything together

Invariants:
    - At most one pending-or-completed execution record per
      idempotency key (UNIQUE constraint, enforced by the store).
    - Revertible actions run before any non-revertible action.
    - A revertible failure undoes completed revertible actions in LIFO
      order and stops the batch.
    - The engine never changes the batch's status; the approval
      workflow does.
"""
