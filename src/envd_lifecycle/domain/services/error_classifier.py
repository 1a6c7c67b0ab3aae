"""Classification of raw container host errors.

The Docker daemon reports most lifecycle conflicts as loosely worded text
(often with the same 409 status), so classification is substring based. All
matching lives here so that wording changes are handled in one place.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class HostOperation(Enum):
    """Host operations whose failures are classified."""
    CREATE = "create"
    START = "start"
    INSPECT = "inspect"
    KILL = "kill"
    REMOVE = "remove"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    PULL = "pull"
    EXEC = "exec"
    INFO = "info"


class ErrorOutcome(Enum):
    """What a host failure means for the caller."""
    NOT_FOUND = "not_found"
    ALREADY_IN_STATE = "already_in_state"
    CONFLICT = "conflict"
    FATAL = "fatal"


NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "no such container",
    "no such image",
)

CONFLICT_PATTERNS: tuple[str, ...] = (
    "port is already allocated",
    "address already in use",
)

# Phrase the host uses when the operation's goal already holds.
ALREADY_IN_STATE_PATTERNS: dict[HostOperation, tuple[str, ...]] = {
    HostOperation.KILL: ("is not running",),
    HostOperation.PAUSE: ("is already paused",),
    HostOperation.UNPAUSE: ("is not paused",),
}


def _chain_text(error: BaseException) -> str:
    """Messages of every error in a ``__cause__`` chain, outermost first.

    The Docker SDK raises APIError from a bare HTTP error whose text is only
    the status line; the daemon's explanation sits on an outer link.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = error
    messages: list[str] = []
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        messages.append(str(getattr(current, "message", None) or current))
        current = current.__cause__
    return "\n".join(messages)


class ErrorClassifier:
    """Maps host errors to a small outcome taxonomy.

    Example:
        classifier = ErrorClassifier()
        outcome = classifier.classify(err, HostOperation.PAUSE)
        if outcome is ErrorOutcome.ALREADY_IN_STATE:
            return None
    """

    def __init__(
        self,
        not_found_patterns: tuple[str, ...] = NOT_FOUND_PATTERNS,
        conflict_patterns: tuple[str, ...] = CONFLICT_PATTERNS,
        already_in_state_patterns: Optional[dict[HostOperation, tuple[str, ...]]] = None,
    ) -> None:
        self._not_found = tuple(p.lower() for p in not_found_patterns)
        self._conflict = tuple(p.lower() for p in conflict_patterns)
        patterns = already_in_state_patterns or ALREADY_IN_STATE_PATTERNS
        self._already = {op: tuple(p.lower() for p in phrases) for op, phrases in patterns.items()}

    def classify(self, error: BaseException, operation: HostOperation) -> ErrorOutcome:
        """Classify a host error raised by an operation.

        Already-in-state phrases are checked first: the host answers
        "is not running" with a message that also names the container, and
        that must never be mistaken for anything else.

        Args:
            error: Error raised by the lifecycle client.
            operation: Operation that raised it.

        Returns:
            Outcome.
        """
        text = _chain_text(error).lower()

        if any(phrase in text for phrase in self._already.get(operation, ())):
            return ErrorOutcome.ALREADY_IN_STATE
        if getattr(error, "status_code", None) == 404 or any(p in text for p in self._not_found):
            return ErrorOutcome.NOT_FOUND
        if any(p in text for p in self._conflict):
            return ErrorOutcome.CONFLICT
        return ErrorOutcome.FATAL

    def is_not_found(self, error: BaseException) -> bool:
        """Check if an error means the target does not exist.

        Args:
            error: Error raised by the lifecycle client.

        Returns:
            True if not found.
        """
        return self.classify(error, HostOperation.INSPECT) is ErrorOutcome.NOT_FOUND
