"""Exception hierarchy for trackloom.

Fatal, session-level conditions abort a whole load and surface through the
``load_error`` notification. Everything else is raised at the collaborator or
retry boundary and converted into a :class:`~trackloom.models.core.LoadIssue`
by the loader, so a partial result is always delivered.
"""

from typing import List, Optional


class TrackloomError(Exception):
    """Base class for all trackloom errors."""


class LoadFatalError(TrackloomError):
    """A condition that makes the entire batch unprocessable."""


class SessionConflictError(LoadFatalError):
    """Raised when a load is requested while another one is still active."""

    def __init__(self, active_session_id: str) -> None:
        """Initialize the error with the id of the session holding the lock."""
        super().__init__(
            f"Loading already in progress (active session {active_session_id})"
        )
        self.active_session_id = active_session_id


class EmptyBatchError(LoadFatalError):
    """Raised when a batch holds no usable input files."""

    def __init__(self, reason: str = "No files provided") -> None:
        """Initialize the error with a human-readable reason."""
        super().__init__(reason)
        self.reason = reason


class CollaboratorError(TrackloomError):
    """Failure raised by an external collaborator (extractor, parser, probe)."""


class TransientCollaboratorError(CollaboratorError):
    """Network/timeout-class collaborator failure. Eligible for retry."""


class PermanentCollaboratorError(CollaboratorError):
    """Collaborator failure that will not go away by retrying."""


class PrimaryFileReadError(PermanentCollaboratorError):
    """The primary file's bytes could not be read; the entry cannot be built."""

    def __init__(self, file_name: str, reason: str) -> None:
        """Initialize the error with the unreadable file's name."""
        super().__init__(f"Cannot read {file_name}: {reason}")
        self.file_name = file_name
        self.reason = reason


class TerminalFailure(TrackloomError):
    """An operation ended without a result after the retry policy gave up.

    Attributes:
        attempts: Number of attempts made, including the last one.
        history: Errors raised by every attempt, oldest first.
        last_error: The error that ended the operation.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        history: List[BaseException],
        last_error: Optional[BaseException],
    ) -> None:
        """Initialize the failure with its attempt bookkeeping."""
        super().__init__(message)
        self.attempts = attempts
        self.history = history
        self.last_error = last_error


class PermanentFailureError(TerminalFailure):
    """The operation failed with an error classified as permanent."""

    def __init__(
        self, last_error: BaseException, *, attempts: int, history: List[BaseException]
    ) -> None:
        """Wrap the permanent error that stopped the operation."""
        super().__init__(
            f"Permanent failure after {attempts} attempt(s): {last_error}",
            attempts=attempts,
            history=history,
            last_error=last_error,
        )


class RetryExhaustedError(TerminalFailure):
    """Every allowed attempt failed with a transient error."""

    def __init__(
        self, last_error: BaseException, *, attempts: int, history: List[BaseException]
    ) -> None:
        """Wrap the last transient error seen before giving up."""
        super().__init__(
            f"Retries exhausted after {attempts} attempt(s): {last_error}",
            attempts=attempts,
            history=history,
            last_error=last_error,
        )
