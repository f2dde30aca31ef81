"""Errors raised by the package suggestion engine."""


class SuggestionError(Exception):
    """Base class for package suggestion errors."""


class NotFoundError(SuggestionError):
    """Patient, suggestion or package template is missing or not visible to the organization."""

    def __init__(self, resource_type: str, resource_id: object):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} {resource_id} not found")


class InvalidStateError(SuggestionError):
    """Suggestion is not in the state the operation requires."""

    def __init__(self, suggestion_id: object, status: str, expected: str = "PENDING"):
        self.suggestion_id = suggestion_id
        self.status = status
        super().__init__(f"Suggestion {suggestion_id} is not {expected.lower()} (status: {status})")


class ValidationError(SuggestionError):
    """Caller-supplied input is not acceptable for the requested operation."""
