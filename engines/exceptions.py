"""
Commission Engine Errors

Exception taxonomy shared by the calculation engine and the backend services.
"""


class CommissionError(Exception):
    """Base class for all commission engine errors."""


class NotFoundError(CommissionError):
    """An employee, entry, plan or component id does not exist."""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class ValidationError(CommissionError):
    """Input rejected before any mutation of the store."""


class ParseError(ValidationError):
    """Malformed period or fiscal label."""


class InvalidTransitionError(ValidationError):
    """Commission entry status change not allowed from its current status."""

    def __init__(self, entry_id, current: str, action: str):
        self.entry_id = entry_id
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} entry {entry_id} with status {current}")
