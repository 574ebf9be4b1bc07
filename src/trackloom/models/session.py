"""Load session state.

A LoadSession is the scoped execution context of one ``load_files`` call. Its
``id`` doubles as the ownership token that asynchronous enrichment captures
before it starts and compares before it writes.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from trackloom.models.core import IssueKind, LoadIssue


class SessionState(str, Enum):
    """Lifecycle of a load session."""

    CREATED = "created"
    PHASE1 = "phase1"
    PHASE2_PRIORITY = "phase2_priority"
    PHASE2_BACKGROUND = "phase2_background"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"
    SUPERSEDED = "superseded"

    @property
    def terminal(self) -> bool:
        """True for states a session never leaves."""
        return self in {
            SessionState.COMPLETE,
            SessionState.FAILED,
            SessionState.SUPERSEDED,
        }


@dataclass
class LoadSession:
    """Mutable bookkeeping for one load request."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.CREATED
    total_files: int = 0
    processed_count: int = 0
    errors: List[LoadIssue] = field(default_factory=list)
    warnings: List[LoadIssue] = field(default_factory=list)
    is_loading: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    claimed: Set[int] = field(default_factory=set)
    """``id()`` of entries an enrichment operation has taken ownership of."""

    def transition(self, state: SessionState) -> None:
        """Move to *state*; terminal states are final."""
        if self.state.terminal:
            raise RuntimeError(
                f"Session {self.id} is {self.state.value} and cannot become "
                f"{state.value}"
            )
        self.state = state
        if state.terminal:
            self.finished_at = datetime.now()

    def add_error(
        self, file_name: str, message: str, kind: IssueKind, attempts: int = 0
    ) -> LoadIssue:
        """Append an error and return it."""
        issue = LoadIssue(
            file_name=file_name, message=message, kind=kind, attempts=attempts
        )
        self.errors.append(issue)
        return issue

    def add_warning(self, file_name: str, message: str, kind: IssueKind) -> LoadIssue:
        """Append a warning and return it."""
        issue = LoadIssue(file_name=file_name, message=message, kind=kind)
        self.warnings.append(issue)
        return issue

    def claim(self, key: int) -> bool:
        """Take ownership of an entry; False when someone already holds it."""
        if key in self.claimed:
            return False
        self.claimed.add(key)
        return True
