"""
Conflict check error types.

Kept in a separate module so the pipeline stages, the stores and the API can
share the same exception classes without importing each other.
"""


class ConflictCheckError(Exception):
    """Base class for every failure raised by the conflict engine."""


class ValidationError(ConflictCheckError, ValueError):
    """Malformed query descriptor. Raised before any corpus access."""


class CaseNotFoundError(ConflictCheckError):
    """The case requested for a check does not exist."""

    def __init__(self, case_id):
        super().__init__(f"Case {case_id} not found")
        self.case_id = case_id


class CorpusLookupError(ConflictCheckError, LookupError):
    """
    The corpus could not be read. The outcome of the check is unknown.

    Never converted into an empty candidate set.
    """


class CheckTimeoutError(CorpusLookupError):
    """The caller-supplied deadline elapsed before the check completed."""


class PersistenceError(ConflictCheckError):
    """
    The check result was computed but could not be written to the audit store.

    `result` carries the computed ConflictResult (when available) so callers
    still learn the level while being told the audit trail is incomplete.
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
