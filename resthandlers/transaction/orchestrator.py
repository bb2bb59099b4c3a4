"""Transaction phase orchestrator.

Runs the ordered phases of one call inside a database transaction:

    acquire connection -> start transaction -> phase 1 .. phase N
        -> commit                      (all phases succeeded)
        -> rollback if still active    (any failure)
    -> release connection (exactly once, with the error on failure)
    -> fire the commit or rollback listeners of the context

Each phase is called as ``phase(transaction, ctx, previous_result)`` and
may return a plain value or an awaitable. A phase may call
``ctx.make_complete()`` to skip the remaining phases; the transaction is
then committed with the last result.

The error that caused the failure always propagates unchanged; a failing
rollback or release is logged and otherwise ignored.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from resthandlers.protocols import DataSource, Transaction
from resthandlers.transaction.context import TransactionContext, TransactionState
from resthandlers.transaction.events import COMMIT, ROLLBACK

logger = logging.getLogger(__name__)

Phase = Callable[[Transaction, TransactionContext, Any], Awaitable[Any] | Any]


class TransactionPhaseOrchestrator:
    """Executes transaction phases with commit/rollback and connection release.

    Args:
        data_source: Connection pool.
        transaction_factory: Creates a transaction handle for a connection,
            usually ``dbo_factory.new_transaction``.
        logger: Logger for orchestration messages; the context's call
            logger if omitted.
    """

    def __init__(
        self,
        data_source: DataSource,
        transaction_factory: Callable[[Any], Transaction],
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._data_source = data_source
        self._transaction_factory = transaction_factory
        self._logger = logger

    async def run(self, ctx: TransactionContext, phases: Sequence[Phase]) -> Any:
        """Execute the phases in a transaction.

        Args:
            ctx: Context of the call; receives the transaction handle.
            phases: Ordered transaction phases.

        Returns:
            The result of the last executed phase, as returned by commit.

        Raises:
            Exception: The original error of the failed acquisition,
                transaction start, phase or commit.
        """
        log = self._logger or ctx.log

        # nothing to release if this fails
        connection = await self._data_source.acquire()
        ctx.state = TransactionState.CONNECTION_ACQUIRED

        failure: BaseException | None = None
        result: Any = None
        try:
            result = await self._execute(ctx, connection, phases, log)
        except BaseException as e:
            failure = e
            await self._rollback(ctx, e, log)
            raise
        finally:
            await self._release(ctx, connection, failure, log)
            if failure is None:
                await ctx.events.emit(COMMIT, result)
            else:
                await ctx.events.emit(ROLLBACK, failure)
            ctx.state = TransactionState.DONE

        return result

    async def _execute(
        self,
        ctx: TransactionContext,
        connection: Any,
        phases: Sequence[Phase],
        log: logging.Logger | logging.LoggerAdapter,
    ) -> Any:
        tx = self._transaction_factory(connection)
        ctx.transaction = tx
        await tx.start()
        ctx.state = TransactionState.TRANSACTION_STARTED
        log.debug("transaction started, %d phases", len(phases))

        ctx.state = TransactionState.RUNNING_PHASES
        result: Any = None
        for index, phase in enumerate(phases):
            if ctx.complete:
                log.debug("call complete, skipping %d remaining phases", len(phases) - index)
                break
            result = phase(tx, ctx, result)
            if inspect.isawaitable(result):
                result = await result

        ctx.state = TransactionState.COMMITTING
        result = await tx.commit(result)
        log.debug("transaction committed")
        return result

    async def _rollback(
        self,
        ctx: TransactionContext,
        error: BaseException,
        log: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        tx = ctx.transaction
        if tx is None or not tx.is_active():
            return
        ctx.state = TransactionState.ROLLING_BACK
        try:
            await tx.rollback(error)
            log.debug("transaction rolled back: %s", error)
        except Exception as rollback_error:
            log.error("rollback failed: %s (original error: %s)", rollback_error, error)

    async def _release(
        self,
        ctx: TransactionContext,
        connection: Any,
        error: BaseException | None,
        log: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        try:
            await self._data_source.release(connection, error)
        except Exception as release_error:
            log.error("connection release failed: %s", release_error)
        ctx.state = TransactionState.CONNECTION_RELEASED
