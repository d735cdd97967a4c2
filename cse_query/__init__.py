"""
cse-query - Look up a user in the UNSW and CSE LDAP directories.

This package resolves one identity against the organization-wide directory
and the department directory and merges the results into a single profile.
"""

from cse_query.errors import (
    AttributeMissing,
    DirectoryError,
    EncodingError,
    InsufficientResults,
    InvalidCredentials,
    QueryError,
    TransportError,
)
from cse_query.main import ProfileQuery, query_own_profile, query_profile
from cse_query.records import Profile

__version__ = "1.0.0"

__all__ = [
    "AttributeMissing",
    "DirectoryError",
    "EncodingError",
    "InsufficientResults",
    "InvalidCredentials",
    "Profile",
    "ProfileQuery",
    "QueryError",
    "TransportError",
    "query_own_profile",
    "query_profile",
]
