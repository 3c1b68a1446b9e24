"""
Error taxonomy for the attempt engine.

Store-level errors (ValidationError, AttemptFrozen, AlreadyInitialized) are
recovered locally by the session controller. SubmissionFailed is raised only
after retries are exhausted. UnknownAttempt and IncompleteDefinition are
terminal data-integrity failures of the analysis engine.
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all attempt engine errors"""


class ValidationError(EngineError):
    """Malformed mutation or malformed data; nothing was changed"""


class AttemptFrozen(EngineError):
    """Mutation attempted after the attempt was frozen for submission"""


class AlreadyInitialized(EngineError):
    """initialize() called on a live, unsubmitted attempt"""


class NotFound(EngineError):
    """A test definition could not be located"""


class NetworkError(EngineError):
    """Transient transport or service failure"""


class SubmissionFailed(EngineError):
    """Submission gave up after its bounded retries"""

    def __init__(self, message: str, snapshot=None, attempts: int = 0,
                 cause: Optional[Exception] = None):
        super().__init__(message)
        self.snapshot = snapshot
        self.attempts = attempts
        self.cause = cause


class UnknownAttempt(EngineError):
    """The attempt identifier could not be resolved"""


class IncompleteDefinition(EngineError):
    """An attempt references a question the test definition does not have"""
