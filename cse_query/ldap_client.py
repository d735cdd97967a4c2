"""
LDAP client for connecting to and searching a single directory.

This module provides the bound session used by the profile query: one
DirectoryConnection per directory and bind identity, with subtree searches
under the directory's fixed search base that decode entries lazily.
"""

import logging
import ssl
from typing import Any, Dict, Iterator, List, Optional

from ldap3 import Server, Connection, NONE, SUBTREE, Tls
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPException,
    LDAPSocketOpenError,
)
from ldap3.core.results import RESULT_SUCCESS
from ldap3.utils.conv import escape_filter_chars

from cse_query.errors import (
    DirectoryError,
    InvalidCredentials,
    QueryError,
    TransportError,
    error_from_result,
)
from cse_query.logging_setup import security_logger
from cse_query.records import Entry, RecordSchema, decode

logger = logging.getLogger(__name__)


def build_filter(**clauses: str) -> str:
    """
    Build a conjunctive LDAP filter from attribute/value pairs.

    Values are escaped, so identifiers containing ``*``, ``(``, ``)``, ``\\``
    or NUL match literally.

    Example:
        build_filter(cn='z1111111', objectClass='user')
        -> '(&(cn=z1111111)(objectClass=user))'
    """
    if not clauses:
        raise ValueError("At least one filter clause is required")
    parts = ''.join(
        f"({attribute}={escape_filter_chars(str(value))})"
        for attribute, value in clauses.items()
    )
    return f"(&{parts})"


class DirectoryConnection:
    """
    A session with one LDAP directory.

    Connections are not reused: a new bind identity needs a new connection.
    """

    def __init__(self, config: Dict[str, Any], name: str = 'directory'):
        """
        Initialize a connection from a directory configuration.

        Args:
            config: Directory configuration dictionary
            name: Label used in log messages
        """
        self.name = name
        self.config = config
        self.server_url = config['server_url']
        self.search_base = config['search_base']
        self.bind_domain = config.get('bind_domain')
        self.requires_credentials = config.get('requires_credentials', False)

        # SSL/TLS configuration
        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')

        # Connection settings
        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)

        self.server = None
        self.connection = None
        self._connected = False

    def bind_user(self, identity: str) -> str:
        """Return the name used to bind as identity."""
        if self.bind_domain and '@' not in identity:
            return f"{identity}@{self.bind_domain}"
        return identity

    def connect(self, bind_identity: Optional[str] = None, secret: Optional[str] = None) -> 'DirectoryConnection':
        """
        Open the connection and bind.

        Without a bind identity the bind is anonymous.

        Raises:
            InvalidCredentials: If the directory rejects the credentials
            TransportError: If the server cannot be reached
            DirectoryError: For any other bind failure
        """
        if bind_identity is None and self.requires_credentials:
            raise InvalidCredentials(f"The {self.name} directory requires credentials")
        if bind_identity is not None and not secret:
            security_logger.log_bind_attempt(self.name, bind_identity, False)
            raise InvalidCredentials("A password is required")

        user = self.bind_user(bind_identity) if bind_identity is not None else None

        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=NONE,
                connect_timeout=self.connection_timeout
            )
            logger.debug(f"Created LDAP server object for {self.server_url} (SSL: {self.use_ssl}, StartTLS: {self.start_tls})")

            self.connection = Connection(
                self.server,
                user=user,
                password=secret if user is not None else None,
                auto_bind=False,
                receive_timeout=self.receive_timeout
            )

            self.connection.open()

            if self.start_tls and not self.use_ssl:
                if not self.connection.start_tls():
                    raise error_from_result(self.connection.result)
                logger.debug("StartTLS negotiation successful")

            if not self.connection.bind():
                raise error_from_result(self.connection.result)

        except InvalidCredentials:
            security_logger.log_bind_attempt(self.name, user or 'anonymous', False)
            self._close()
            raise
        except QueryError:
            self._close()
            raise
        except (LDAPSocketOpenError, LDAPCommunicationError) as e:
            self._close()
            raise TransportError(f"Failed to connect to {self.server_url}: {e}") from e
        except LDAPException as e:
            self._close()
            raise DirectoryError(f"Bind to {self.server_url} failed: {e}") from e

        self._connected = True
        if user is not None:
            security_logger.log_bind_attempt(self.name, user, True)
        logger.info(f"Connected to {self.name} directory {self.server_url}")
        return self

    def _create_tls_config(self) -> Optional[Tls]:
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}

        if not self.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise TransportError(f"Failed to create TLS configuration: {e}") from e

    def search(self, search_filter: str, schema: RecordSchema,
               skip_undecodable: bool = False) -> Iterator[Any]:
        """
        Search the subtree under the search base.

        The search itself runs immediately; entries are decoded one at a time
        as the returned iterator is consumed. A search matching nothing
        yields nothing.

        Args:
            search_filter: LDAP filter expression
            schema: Record kind to decode entries into
            skip_undecodable: Drop entries that fail to decode instead of raising

        Returns:
            Iterator of decoded records

        Raises:
            DirectoryError: If the search fails
            TransportError: If the connection fails during the search
        """
        if not self._connected:
            raise DirectoryError(f"Not connected to {self.name} directory")

        logger.debug(f"Searching {self.name} with filter: {search_filter} in base: {self.search_base}")

        try:
            self.connection.search(
                search_base=self.search_base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=list(schema.attributes)
            )
        except (LDAPSocketOpenError, LDAPCommunicationError) as e:
            raise TransportError(f"Search on {self.server_url} failed: {e}") from e
        except LDAPException as e:
            raise DirectoryError(f"Search on {self.server_url} failed: {e}") from e

        # ldap3 reports an empty result as a failed search, so check the code
        result = self.connection.result or {}
        if result.get('result') != RESULT_SUCCESS:
            raise error_from_result(result)

        return self._decode_entries(self.connection.response or [], schema, skip_undecodable)

    def _decode_entries(self, response: List[Dict[str, Any]], schema: RecordSchema,
                        skip_undecodable: bool) -> Iterator[Any]:
        for item in response:
            if item.get('type') != 'searchResEntry':
                continue
            try:
                yield decode(Entry.from_response(item), schema)
            except QueryError as e:
                if not skip_undecodable:
                    raise
                logger.warning(f"Skipping {schema.name} entry {item.get('dn')}: {e}")

    def _close(self):
        if self.connection is not None:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug(f"Error closing LDAP connection: {e}")
        self.connection = None
        self._connected = False

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection is not None:
            self._close()
            logger.debug(f"{self.name} connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
