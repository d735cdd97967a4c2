"""
Errors raised while querying the directories.

Every failure of a profile query is reported as exactly one subclass of
QueryError, identifying the phase and cause of the failure.
"""

from typing import Any, Dict, Optional

from ldap3.core.results import RESULT_INVALID_CREDENTIALS


class QueryError(Exception):
    """Base exception for profile query failures."""
    pass


class InvalidCredentials(QueryError):
    """Raised when a bind is rejected because of bad credentials."""

    def __init__(self, message: str = "Invalid user credentials"):
        super().__init__(message)


class DirectoryError(QueryError):
    """Raised when a bind or search returns any other non-success result."""

    def __init__(self, message: str, result_code: Optional[int] = None,
                 description: Optional[str] = None):
        self.result_code = result_code
        self.description = description
        self.message = message
        super().__init__(message)


class InsufficientResults(QueryError):
    """Raised when a required search returned no entries."""

    def __init__(self, message: str = "No results were provided for the search"):
        super().__init__(message)


class AttributeMissing(QueryError):
    """Raised when a required attribute is absent from an entry."""

    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(f"Response was missing attribute: {attribute}")


class TransportError(QueryError):
    """Raised when the connection to a directory cannot be established."""
    pass


class EncodingError(QueryError):
    """Raised when a directory value or the output profile cannot be encoded."""
    pass


def error_from_result(result: Dict[str, Any]) -> QueryError:
    """
    Translate an ldap3 result dictionary into a query error.

    Args:
        result: The ``connection.result`` of a failed operation

    Returns:
        InvalidCredentials for result code 49, DirectoryError otherwise
    """
    result = result or {}
    code = result.get('result')
    if code == RESULT_INVALID_CREDENTIALS:
        return InvalidCredentials()

    description = result.get('description')
    message = result.get('message') or description or 'unknown directory error'
    if description and description != message:
        message = f"{description}: {message}"
    return DirectoryError(message, result_code=code, description=description)
