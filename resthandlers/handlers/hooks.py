"""Extension hooks of the verb handlers.

Each verb accepts an optional hooks object. The hooks that are set are
wired into the phase list when the handler is constructed:

- ``prepare(ctx)`` runs before the transaction.
- ``before(tx, ctx)`` runs as a phase ahead of the main action. If it
  completes the call with ``ctx.make_complete()``, its return value is
  the result.
- ``after(tx, ctx, result)`` runs as a phase after the main action; its
  return value becomes the result.
- ``complete(error, ctx, result)`` runs after the transaction. On success
  its return value replaces the result. On failure it may return an
  exception to raise instead, or a ServiceResponse to send instead.

Any hook may be a plain function or a coroutine function.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

HookResult = Awaitable[Any] | Any


async def call_hook(hook: Callable[..., HookResult], *args: Any) -> Any:
    """Call a sync or async hook and return its result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class PhaseHooks:
    """Hooks common to all verbs."""

    prepare: Callable[..., HookResult] | None = None
    before: Callable[..., HookResult] | None = None
    after: Callable[..., HookResult] | None = None
    complete: Callable[..., HookResult] | None = None


@dataclass
class SearchHooks(PhaseHooks):
    """Hooks of a collection search."""


@dataclass
class ReadHooks(PhaseHooks):
    """Hooks of a record read."""


@dataclass
class CreateHooks(PhaseHooks):
    """Hooks of a record creation."""


@dataclass
class UpdateHooks(PhaseHooks):
    """Hooks of a record update.

    ``before(ctx, record)`` runs on the matched record before the patch is
    applied and ``before_save(ctx, record)`` on the patched, validated
    record before it is saved.
    """

    before_save: Callable[..., HookResult] | None = None


@dataclass
class DeleteHooks(PhaseHooks):
    """Hooks of a record deletion."""
