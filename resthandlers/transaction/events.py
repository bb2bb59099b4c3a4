"""Transaction outcome listeners.

Extensions register ``commit`` and ``rollback`` listeners on the
transaction context. The orchestrator fires exactly one of the two events
once the connection has been released; all listeners are drained at that
point and never fire again.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from resthandlers.errors.domain import UsageError

logger = logging.getLogger(__name__)

COMMIT = "commit"
ROLLBACK = "rollback"

Listener = Callable[[Any], Awaitable[None] | None]


class TransactionEvents:
    """Registry of transaction outcome listeners.

    Exceptions from individual listeners are caught and logged so that a
    broken listener neither stops delivery to the others nor masks the
    transaction outcome.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {COMMIT: [], ROLLBACK: []}
        self._drained = False

    @property
    def drained(self) -> bool:
        """True once an outcome event has been emitted."""
        return self._drained

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener.

        Args:
            event: ``commit`` (called with the transaction result) or
                ``rollback`` (called with the error).
            listener: Sync or async callable.

        Raises:
            UsageError: If the event is unknown or the outcome has already
                been emitted.
        """
        if event not in self._listeners:
            raise UsageError(f"Unknown transaction event {event!r}.")
        if self._drained:
            raise UsageError("Transaction outcome listeners have already been fired.")
        self._listeners[event].append(listener)

    async def emit(self, event: str, payload: Any) -> None:
        """Fire the outcome event and drain all listeners.

        Args:
            event: ``commit`` or ``rollback``.
            payload: Transaction result or error.
        """
        if self._drained:
            logger.warning("Transaction outcome %r emitted after listeners were drained", event)
            return
        listeners = self._listeners.get(event, [])
        self._listeners = {COMMIT: [], ROLLBACK: []}
        self._drained = True
        for listener in listeners:
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Transaction %s listener %r failed: %s", event, listener, e)
