"""Transaction contexts, outcome listeners and the phase orchestrator."""

from resthandlers.transaction.context import (
    CallLogAdapter,
    CreateContext,
    DeleteContext,
    ReadContext,
    SearchContext,
    TransactionContext,
    TransactionState,
    UpdateContext,
)
from resthandlers.transaction.events import COMMIT, ROLLBACK, TransactionEvents
from resthandlers.transaction.orchestrator import Phase, TransactionPhaseOrchestrator

__all__ = [
    "COMMIT",
    "ROLLBACK",
    "CallLogAdapter",
    "CreateContext",
    "DeleteContext",
    "Phase",
    "ReadContext",
    "SearchContext",
    "TransactionContext",
    "TransactionEvents",
    "TransactionPhaseOrchestrator",
    "TransactionState",
    "UpdateContext",
]
