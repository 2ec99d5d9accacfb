"""Exceptions raised while migrating a preprint."""


class MigrationError(Exception):
    """Base exception for per-preprint migration failures."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class ContractViolationError(MigrationError):
    """Raised when upstream data breaks an assumption the import relies on.

    Examples are an unknown review state or an author without any name
    information. Retrying cannot fix these, so the preprint is failed at once.
    """

    def __init__(self, message: str, preprint_id: str | None = None):
        self.preprint_id = preprint_id
        super().__init__(message)
