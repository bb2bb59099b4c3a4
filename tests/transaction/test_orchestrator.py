"""Tests for the transaction phase orchestrator.

Verify that the connection is released exactly once on every path, that
commit and rollback happen when they should, and that the original error
always propagates.
"""

import pytest

from resthandlers.http.service import ServiceCall
from resthandlers.transaction.context import TransactionContext, TransactionState
from resthandlers.transaction.events import COMMIT, ROLLBACK
from resthandlers.transaction.orchestrator import TransactionPhaseOrchestrator
from tests.helpers.fakes import FakeDataSource, FakeTransaction


class PhaseError(Exception):
    pass


def _context(dbo_factory):
    return TransactionContext(call=ServiceCall(method="GET"), dbo_factory=dbo_factory)


def _orchestrator(data_source, fail_on=None, created=None):
    created = created if created is not None else []

    def factory(connection):
        tx = FakeTransaction(connection, fail_on=fail_on)
        created.append(tx)
        return tx

    return TransactionPhaseOrchestrator(data_source, factory), created


def _listen(ctx):
    fired = []
    ctx.on(COMMIT, lambda result: fired.append((COMMIT, result)))
    ctx.on(ROLLBACK, lambda error: fired.append((ROLLBACK, error)))
    return fired


class TestSuccessfulRun:
    """Phases all succeed."""

    @pytest.mark.asyncio
    async def test_phases_chain_results_and_commit(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        fired = _listen(ctx)

        async def first(tx, ctx, result):
            assert result is None
            return 1

        def second(tx, ctx, result):
            return result + 1

        result = await orchestrator.run(ctx, [first, second])

        assert result == 2
        assert created[0].committed and not created[0].rolled_back
        assert ctx.transaction is created[0]
        assert data_source.released == [(data_source.acquired[0], None)]
        assert fired == [(COMMIT, 2)]
        assert ctx.state == TransactionState.DONE

    @pytest.mark.asyncio
    async def test_complete_skips_remaining_phases_and_commits(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        calls = []

        def finish(tx, ctx, result):
            calls.append("finish")
            ctx.make_complete()
            return "early"

        def skipped(tx, ctx, result):
            calls.append("skipped")

        assert await orchestrator.run(ctx, [finish, skipped]) == "early"
        assert calls == ["finish"]
        assert created[0].committed

    @pytest.mark.asyncio
    async def test_no_phases(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source)
        assert await orchestrator.run(_context(dbo_factory), []) is None
        assert created[0].committed
        assert len(data_source.released) == 1


class TestFailures:
    """Each failure point releases the connection exactly once."""

    @pytest.mark.asyncio
    async def test_acquire_failure_releases_nothing(self, dbo_factory):
        data_source = FakeDataSource(fail_acquire=True)
        orchestrator, created = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        fired = _listen(ctx)

        with pytest.raises(ConnectionError):
            await orchestrator.run(ctx, [])

        assert created == []
        assert data_source.released == []
        assert fired == []

    @pytest.mark.asyncio
    async def test_start_failure(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source, fail_on="start")
        ctx = _context(dbo_factory)
        fired = _listen(ctx)

        with pytest.raises(RuntimeError, match="start failed"):
            await orchestrator.run(ctx, [])

        assert not created[0].rolled_back
        assert len(data_source.released) == 1
        assert isinstance(data_source.released[0][1], RuntimeError)
        assert fired[0][0] == ROLLBACK

    @pytest.mark.asyncio
    async def test_phase_failure_rolls_back(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        fired = _listen(ctx)
        error = PhaseError("boom")

        def failing(tx, ctx, result):
            raise error

        def never(tx, ctx, result):
            raise AssertionError("phase after failure ran")

        with pytest.raises(PhaseError):
            await orchestrator.run(ctx, [failing, never])

        assert created[0].rolled_back and not created[0].committed
        assert data_source.released == [(data_source.acquired[0], error)]
        assert fired == [(ROLLBACK, error)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("asynchronous", [False, True], ids=["raises", "rejects"])
    async def test_middle_phase_failure(self, data_source, dbo_factory, asynchronous):
        """The second of three phases fails, by raising or by a failing coroutine."""
        orchestrator, created = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        fired = _listen(ctx)
        error = KeyError("missing")
        ran = []

        def first(tx, ctx, result):
            ran.append("first")
            return 1

        def failing_sync(tx, ctx, result):
            ran.append("second")
            raise error

        async def failing_async(tx, ctx, result):
            ran.append("second")
            raise error

        def third(tx, ctx, result):
            ran.append("third")
            return result

        second = failing_async if asynchronous else failing_sync
        with pytest.raises(KeyError) as exc_info:
            await orchestrator.run(ctx, [first, second, third])

        assert exc_info.value is error
        assert ran == ["first", "second"]
        assert created[0].rolled_back and not created[0].committed
        assert data_source.released == [(data_source.acquired[0], error)]
        assert fired == [(ROLLBACK, error)]

    @pytest.mark.asyncio
    async def test_commit_failure(self, data_source, dbo_factory):
        orchestrator, created = _orchestrator(data_source, fail_on="commit")

        with pytest.raises(RuntimeError, match="commit failed"):
            await orchestrator.run(_context(dbo_factory), [lambda tx, ctx, r: 1])

        assert created[0].rolled_back
        assert len(data_source.released) == 1

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_original_error(self, data_source, dbo_factory, caplog):
        orchestrator, _ = _orchestrator(data_source, fail_on="rollback")

        def failing(tx, ctx, result):
            raise PhaseError("original")

        with pytest.raises(PhaseError, match="original"):
            await orchestrator.run(_context(dbo_factory), [failing])

        assert len(data_source.released) == 1
        assert "rollback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_release_failure_after_success_is_logged(self, dbo_factory, caplog):
        data_source = FakeDataSource(fail_release=True)
        orchestrator, _ = _orchestrator(data_source)
        ctx = _context(dbo_factory)
        fired = _listen(ctx)

        assert await orchestrator.run(ctx, [lambda tx, ctx, r: "ok"]) == "ok"
        assert len(data_source.released) == 1
        assert "connection release failed" in caplog.text
        assert fired == [(COMMIT, "ok")]

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_mask_result(self, data_source, dbo_factory):
        orchestrator, _ = _orchestrator(data_source)
        ctx = _context(dbo_factory)

        def broken(result):
            raise ValueError("listener bug")

        ctx.on(COMMIT, broken)
        assert await orchestrator.run(ctx, [lambda tx, ctx, r: 5]) == 5
