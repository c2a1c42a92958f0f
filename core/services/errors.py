"""Exception hierarchy for the emergency pipeline.

None of these cross the pipeline boundary; they exist so each failure domain
can be logged and contained on its own.
"""


class CardioGuardError(Exception):
    """Base class for all pipeline errors."""


class SubjectNotFoundError(CardioGuardError):
    """The subject store has no record for the requested id."""

    def __init__(self, subject_id: str | int) -> None:
        super().__init__(f"No subject found for id {subject_id}")
        self.subject_id = subject_id


class SubjectStoreError(CardioGuardError):
    """The subject store could not be queried."""


class DeliveryError(CardioGuardError):
    """A notification channel failed to deliver a message."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuditWriteError(CardioGuardError):
    """An audit record could not be appended to the log."""
