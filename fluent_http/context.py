"""Context - Cancellation and deadline for a single request execution.

A Context carries an optional deadline (on the time.monotonic() clock) and a
cancellation flag. Derived contexts inherit their parent's deadline and
cancellation: a child is done as soon as its parent is.

Usage:
    ctx = with_timeout(background(), 5.0)
    response = Request(url, HttpMethod.GET).with_context(ctx).execute()

    ctx = with_cancel(background())
    # from another thread:
    ctx.cancel()
"""

from __future__ import annotations

import threading
import time


class ContextError(Exception):
    """Base class for context errors."""


class DeadlineExceeded(ContextError):
    """Raised when a context's deadline has passed."""


class Canceled(ContextError):
    """Raised when a context has been canceled."""


class Context:
    """Deadline and cancellation state shared by derived contexts.

    Create contexts with background(), with_timeout(), with_deadline() and
    with_cancel() rather than calling the constructor directly.
    """

    def __init__(
        self,
        parent: Context | None = None,
        deadline: float | None = None,
    ) -> None:
        self._parent = parent
        self._deadline = deadline
        self._canceled = threading.Event()

    @property
    def deadline(self) -> float | None:
        """Earliest deadline of this context and its ancestors, or None."""
        own = self._deadline
        inherited = self._parent.deadline if self._parent is not None else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it.

        Safe to call more than once and from any thread.
        """
        self._canceled.set()

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None if there is none."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def err(self) -> ContextError | None:
        """Return why the context is done, or None while it is still live.

        Cancellation takes precedence over an elapsed deadline.
        """
        if self._is_canceled():
            return Canceled("context canceled")
        deadline = self.deadline
        if deadline is not None and time.monotonic() >= deadline:
            return DeadlineExceeded("context deadline exceeded")
        return None

    def done(self) -> bool:
        return self.err() is not None

    def _is_canceled(self) -> bool:
        if self._canceled.is_set():
            return True
        return self._parent is not None and self._parent._is_canceled()


def background() -> Context:
    """Return an empty context: never canceled, no deadline."""
    return Context()


def with_deadline(parent: Context, deadline: float) -> Context:
    """Derive a context that expires at `deadline` (a time.monotonic() value)."""
    return Context(parent, deadline)


def with_timeout(parent: Context, timeout: float) -> Context:
    """Derive a context that expires `timeout` seconds from now."""
    return with_deadline(parent, time.monotonic() + timeout)


def with_cancel(parent: Context) -> Context:
    """Derive a context that can be canceled independently of its parent."""
    return Context(parent)
