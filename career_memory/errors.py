"""
Error taxonomy.

Component failures abort only the operation in progress; they never
corrupt persisted entries. Nothing in the kernel retries automatically.
"""


class CareerMemoryError(Exception):
    """Base class for all career memory errors."""
    pass


class CollaboratorUnavailable(CareerMemoryError):
    """The reasoning collaborator did not return usable output."""
    pass


class SchemaViolation(CollaboratorUnavailable):
    """The reasoning collaborator returned structurally invalid output."""

    def __init__(self, operation: str, detail: str):
        super().__init__(f"{operation}: invalid collaborator response: {detail}")
        self.operation = operation
        self.detail = detail


class UserInputRejected(CareerMemoryError):
    """User input cannot be accepted; surfaced as guidance, not a fault."""
    pass


class EntryNotFound(CareerMemoryError):
    """No entry with the given id exists."""

    def __init__(self, entry_id: str):
        super().__init__(f"Entry {entry_id} not found")
        self.entry_id = entry_id


class OperationInProgress(CareerMemoryError):
    """Another mutating operation is already in flight."""
    pass


class StaleStateError(CareerMemoryError):
    """A save was attempted from a state that is no longer the latest version."""
    pass
