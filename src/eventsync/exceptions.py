"""Custom exceptions for the sync engine and its collaborators."""

from __future__ import annotations


class TransientCommitError(RuntimeError):
    """Raised by the backend when a commit is rejected.

    The repository converts this into a failed ``CommitResult``; it never
    reaches the event production path.

    Example:
        A simulated network fault during ``commit(EventName.EVENT_B, 10)``
        raises this inside the backend, and the engine re-queues the 10
        increments for the next drain.
    """

    pass


class EngineStateError(RuntimeError):
    """Raised when the engine lifecycle is misused.

    Example:
        Calling ``start()`` outside a running event loop, or after the
        engine has been shut down.
    """

    pass
