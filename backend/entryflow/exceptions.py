"""
Error taxonomy for the entry pipeline.

    EntryflowError (base)
    ├── EntryNotFound / DocumentNotFound
    ├── UploadRejected
    ├── FieldNotAllowed
    ├── ExtractionUnavailable
    ├── RateUnavailable          (recovered inside the rate provider)
    ├── StaleWrite
    ├── InvalidTransition
    │   └── EditLocked
    └── ValidationBlocked

Every error carries a human-readable message plus a ``details`` dict so the
API layer can report which rule, field or precondition was involved.
"""


class EntryflowError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EntryNotFound(EntryflowError):
    pass


class DocumentNotFound(EntryflowError):
    pass


class UploadRejected(EntryflowError):
    """An upload with a disallowed type, no content, or over the size limit."""


class FieldNotAllowed(EntryflowError):
    """A field name outside the document type's whitelist."""


class ExtractionUnavailable(EntryflowError):
    """No extraction strategy could run at all; nothing was written."""


class RateUnavailable(EntryflowError):
    """The external FX source failed. Never escapes the rate provider."""


class StaleWrite(EntryflowError):
    """A concurrent writer won the race. The caller should retry."""


class InvalidTransition(EntryflowError):
    """An action whose precondition does not hold; the entry is unchanged."""

    def __init__(self, message: str, precondition: str, details: dict | None = None):
        super().__init__(message, {"precondition": precondition, **(details or {})})
        self.precondition = precondition


class EditLocked(InvalidTransition):
    """Broker edits are not permitted in the entry's current state."""


class ValidationBlocked(EntryflowError):
    """PROCEED attempted while a critical validation failure exists."""

    def __init__(self, message: str, failures: list[dict]):
        super().__init__(message, {"failures": failures})
        self.failures = failures
