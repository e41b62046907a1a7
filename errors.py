class NotFoundError(ValueError):
    """Record is absent or belongs to another user."""


class ValidationError(ValueError):
    pass


class UploadError(ValidationError):
    """Attached file was rejected before it reached storage."""


class DependencyError(RuntimeError):
    """The record store could not be reached or refused a write."""
