"""Exception taxonomy shared by the store, the engine and the front ends."""


class QuizSyncError(Exception):
    """Base class for every error raised by quizsync."""


class StoreError(QuizSyncError):
    """A shared session store operation failed."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or did not answer in time."""


class ValidationError(StoreError, ValueError):
    """The store refused a request because its arguments are invalid."""


class NotFoundError(StoreError):
    """A referenced participant, question or session does not exist."""


class SubmissionAnomalyError(StoreError):
    """The answer row was written but the roster score update failed.

    The stored answer is authoritative, so ``result`` carries what the
    submission returned before the second write broke.
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class SubmissionRejectedError(QuizSyncError, ValueError):
    """The client refused to send an answer (wrong phase, duplicate, time up)."""


class InvalidTransitionError(QuizSyncError, RuntimeError):
    """A phase change that is not reachable from the current phase."""


class NotHostError(InvalidTransitionError):
    """A non-host client tried to drive the phase machine."""


# wire "kind" -> exception type
ERROR_KINDS = {
    "validation": ValidationError,
    "not_found": NotFoundError,
    "anomaly": SubmissionAnomalyError,
    "unavailable": StoreUnavailableError,
    "store": StoreError,
}


def error_kind(exc: Exception) -> str:
    """Return the wire name for a store exception."""
    for kind, exc_type in ERROR_KINDS.items():
        if type(exc) is exc_type:
            return kind
    return "store"
