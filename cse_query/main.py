"""
Profile query workflow for cse-query.

This module resolves one user against the organization directory and the
department directory and merges the results into a Profile. It also holds
the command-line entry point.
"""

import sys
import json
import getpass
import logging
from typing import Any, Dict, List, Optional

from cse_query.config import ORGANIZATION, DEPARTMENT, load_config, default_config, ConfigurationError
from cse_query.errors import EncodingError, InsufficientResults, InvalidCredentials, QueryError
from cse_query.ldap_client import DirectoryConnection, build_filter
from cse_query.logging_setup import setup_logging, security_logger
from cse_query.records import (
    CSE_USER_SCHEMA,
    GROUP_SCHEMA,
    UNSW_USER_SCHEMA,
    CseGroup,
    CseUser,
    Profile,
    UnswUser,
)

logger = logging.getLogger(__name__)

USER_OBJECT_CLASS = 'user'
ACCOUNT_OBJECT_CLASS = 'account'
GROUP_OBJECT_CLASS = 'groupOfNames'

EXIT_SUCCESS = 0
EXIT_QUERY_FAILED = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_INVALID_CREDENTIALS = 3


def first_result(results) -> Any:
    """Return the first record of a search, ignoring any further matches."""
    for record in results:
        return record
    raise InsufficientResults()


class ProfileQuery:
    """
    Queries both directories for one user.

    Each call opens its own connections and closes them before returning;
    nothing is shared between calls.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the query.

        Args:
            config: Loaded configuration, built-in defaults if None
        """
        self.config = config if config is not None else default_config()
        directories = self.config['directories']
        self.organization_config = directories[ORGANIZATION]
        self.department_config = directories[DEPARTMENT]

    def query_profile(self, auth_zid: str, password: str, subject_zid: str) -> Profile:
        """
        Query a user's profile, authenticating as auth_zid.

        auth_zid and subject_zid are equal for a self-query.

        Raises:
            QueryError: The first failure of any phase
        """
        if auth_zid != subject_zid:
            security_logger.log_delegated_query(auth_zid, subject_zid)

        unsw_user = self._query_organization(auth_zid, password, subject_zid)
        cse_user, groups = self._query_department(auth_zid, password, subject_zid)

        profile = Profile.merge(unsw_user, cse_user, groups)
        logger.info(f"Resolved profile for {profile.zid} with {len(profile.cse_groups)} groups")
        return profile

    def _query_organization(self, auth_zid: str, password: str, subject_zid: str) -> UnswUser:
        logger.debug(f"Querying organization directory for {subject_zid}")
        with DirectoryConnection(self.organization_config, ORGANIZATION) as unsw:
            unsw.connect(auth_zid, password)
            query = build_filter(cn=subject_zid, objectClass=USER_OBJECT_CLASS)
            return first_result(unsw.search(query, UNSW_USER_SCHEMA))

    def _query_department(self, auth_zid: str, password: str, subject_zid: str) -> tuple:
        logger.debug(f"Querying department directory for {subject_zid}")
        with DirectoryConnection(self.department_config, DEPARTMENT) as cse:
            if cse.requires_credentials:
                cse.connect(auth_zid, password)
            else:
                cse.connect()
            query = build_filter(cn=subject_zid, objectClass=ACCOUNT_OBJECT_CLASS)
            cse_user: CseUser = first_result(cse.search(query, CSE_USER_SCHEMA))

            query = build_filter(member=cse_user.item.dn, objectClass=GROUP_OBJECT_CLASS)
            groups: List[CseGroup] = list(cse.search(query, GROUP_SCHEMA, skip_undecodable=True))
            logger.debug(f"Found {len(groups)} groups for {cse_user.item.dn}")
            return cse_user, groups


def query_profile(auth_zid: str, password: str, subject_zid: str,
                  config: Optional[Dict[str, Any]] = None) -> Profile:
    """
    Convenience function to query a profile.

    Args:
        auth_zid: User whose credentials are used for the organization directory
        password: Password of auth_zid
        subject_zid: User to query
        config: Loaded configuration, built-in defaults if None

    Returns:
        The merged profile
    """
    return ProfileQuery(config).query_profile(auth_zid, password, subject_zid)


def query_own_profile(zid: str, password: str, config: Optional[Dict[str, Any]] = None) -> Profile:
    """Query the profile of the authenticating user."""
    return query_profile(zid, password, zid, config=config)


def render_profile(profile: Profile) -> str:
    """Serialize a profile as pretty-printed JSON."""
    try:
        return json.dumps(profile.to_dict(), indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Failed to encode profile: {e}") from e


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description='Query LDAP for user details')
    parser.add_argument('-u', '--user', dest='auth_user',
                        help='Authenticate with a different user than the query')
    parser.add_argument('-p', '--password',
                        help='Password to use to authenticate (rather than prompting)')
    parser.add_argument('-c', '--config', help='Path to configuration file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log progress to stderr')
    parser.add_argument('user', help='CSE user to query')

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    logging_config = dict(config.get('logging', {}))
    if args.verbose:
        logging_config['level'] = 'DEBUG'
    setup_logging(logging_config)

    auth_user = args.auth_user or args.user
    password = args.password
    if password is None:
        try:
            password = getpass.getpass('Enter LDAP password: ')
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)
            return EXIT_QUERY_FAILED

    try:
        profile = query_profile(auth_user, password, args.user, config=config)
        output = render_profile(profile)
    except InvalidCredentials as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_CREDENTIALS
    except QueryError as e:
        logger.debug(f"Query failed with {type(e).__name__}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_QUERY_FAILED

    print(output)
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
