"""
Error types raised by the collection store.

Routes let these propagate; the application translates them into
HTTP responses in one place (see catalog_api.main).
"""

from fastapi import status


class StoreError(Exception):
    """Base class for collection store failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Database operation failed"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation}: {detail}" if detail else operation)


class InvalidIdentifierError(StoreError):
    """The supplied id is not a valid document identifier."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid ID format"

    def __init__(self, operation: str, identifier: str):
        self.identifier = identifier
        super().__init__(operation, f"'{identifier}' is not a valid identifier")


class StoreUnavailableError(StoreError):
    """The database could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Database unavailable"
