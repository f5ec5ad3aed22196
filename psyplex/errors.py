"""
Error types for the practice layer.

Store-level errors (StoreError and subclasses) describe what went wrong
with one store operation. Adapters never raise them; they come back as the
``error`` half of a StoreResult. Orchestrated operations raise
PracticeError subclasses, except StoreUnavailable which is surfaced as-is
because no further fallback exists.
"""

from typing import Optional


# =============================================================================
# Store-level errors
# =============================================================================

class StoreError(Exception):
    """Base class for errors reported by a RecordStore operation."""

    code: Optional[str] = None

    def __init__(self, message: str = "", code: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class PolicyDenied(StoreError):
    """Restricted-path read or write rejected by row-level policy."""
    code = "42501"


class NotFound(StoreError):
    """Requested row does not exist or is not visible to the principal."""
    code = "PGRST116"


class DuplicateKey(StoreError):
    """Insert violated a unique constraint."""
    code = "23505"


class ConstraintViolation(StoreError):
    """Write violated a foreign key or other integrity constraint."""
    code = "23503"


class StoreUnavailable(StoreError):
    """Store (or the privileged credential) is not configured or unreachable."""
    code = "unavailable"


# =============================================================================
# Operation-level errors
# =============================================================================

class PracticeError(Exception):
    """Base class for errors raised by orchestrated operations."""
    pass


class AuthenticationRequired(PracticeError):
    """No active principal or credential."""
    pass


class ValidationError(PracticeError):
    """A required field is missing, empty, or malformed."""

    def __init__(self, message: str, fields: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class RecordNotFound(PracticeError):
    """A record the caller asked for does not exist for this principal."""
    pass


class ProvisioningError(PracticeError):
    """A parent record could not be resolved or created."""
    pass


class OperationFailed(PracticeError):
    """The terminal write of an orchestrated operation failed."""

    def __init__(self, message: str, cause: Optional[StoreError] = None) -> None:
        super().__init__(message)
        self.cause = cause
