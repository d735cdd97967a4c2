"""
Typed records decoded from raw directory entries.

Each record kind has a schema naming the attributes to request from the
directory and a decoder turning one Entry into the record. Decoders take
attributes out of the entry as they read them, so an attribute can only be
consumed once.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from cse_query.errors import AttributeMissing, EncodingError

logger = logging.getLogger(__name__)


class Entry:
    """
    Working copy of one raw directory entry.

    Holds the distinguished name and a mapping of attribute name to its
    ordered list of values. Attribute names are matched case-insensitively.
    """

    def __init__(self, dn: str, attributes: Dict[str, Iterable[Any]]):
        self.dn = dn
        self.attributes = {}
        for name, values in attributes.items():
            if isinstance(values, (str, bytes)):
                values = [values]
            self.attributes[name.lower()] = [_to_text(name, value) for value in values]

    @classmethod
    def from_response(cls, item: Dict[str, Any]) -> 'Entry':
        """Build an entry from an ldap3 ``searchResEntry`` response item."""
        raw = item.get('raw_attributes')
        if raw is None:
            raw = item.get('attributes', {})
        # An attribute present with no values was not returned
        attributes = {name: values for name, values in raw.items() if values}
        return cls(item.get('dn', ''), attributes)

    def take_dn(self) -> str:
        dn, self.dn = self.dn, ''
        return dn

    def take_one(self, name: str) -> str:
        """Take the first value of a required attribute."""
        values = self.attributes.pop(name.lower(), None)
        if not values:
            raise AttributeMissing(name)
        return values[0]

    def maybe_take_one(self, name: str) -> Optional[str]:
        """Take the first value of an optional attribute, or None."""
        values = self.attributes.pop(name.lower(), None)
        if not values:
            return None
        return values[0]

    def take_all(self, name: str) -> List[str]:
        """Take every value of a required multi-valued attribute."""
        values = self.attributes.pop(name.lower(), None)
        if values is None:
            raise AttributeMissing(name)
        return values

    def __repr__(self) -> str:
        return f"Entry(dn={self.dn!r}, attributes={sorted(self.attributes)})"


def _to_text(name: str, value: Any) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EncodingError(f"Attribute {name} is not valid UTF-8: {e}") from e
    return str(value)


@dataclass(frozen=True)
class LdapItem:
    """An item in an LDAP server."""
    dn: str
    cn: str


@dataclass(frozen=True)
class CseGroup:
    """A group as recorded by the department directory."""
    item: LdapItem


@dataclass(frozen=True)
class CseUser:
    """An account as recorded by the department directory."""
    item: LdapItem
    uids: Tuple[str, ...]


@dataclass(frozen=True)
class UnswUser:
    """A user as recorded by the organization directory."""
    item: LdapItem
    # Faculty
    company: Optional[str]
    # School
    department: Optional[str]
    display_name: str
    # zID
    name: str
    mail: str


def decode_item(entry: Entry) -> LdapItem:
    dn = entry.take_dn()
    cn = entry.take_one('cn')
    return LdapItem(dn=dn, cn=cn)


def decode_group(entry: Entry) -> CseGroup:
    return CseGroup(item=decode_item(entry))


def decode_cse_user(entry: Entry) -> CseUser:
    uids = entry.take_all('uid')
    item = decode_item(entry)
    return CseUser(item=item, uids=tuple(uids))


def decode_unsw_user(entry: Entry) -> UnswUser:
    company = entry.maybe_take_one('company')
    department = entry.maybe_take_one('department')
    display_name = entry.take_one('displayName')
    name = entry.take_one('name')
    mail = entry.take_one('mail')
    item = decode_item(entry)
    return UnswUser(
        item=item,
        company=company,
        department=department,
        display_name=display_name,
        name=name,
        mail=mail,
    )


@dataclass(frozen=True)
class RecordSchema:
    """
    Declares how one record kind is read from a directory.

    ``attributes`` must name every attribute the decoder consumes; anything
    not requested will be missing from the returned entries.
    """
    name: str
    attributes: Tuple[str, ...]
    decoder: Callable[[Entry], Any]


ITEM_SCHEMA = RecordSchema('item', ('cn',), decode_item)
GROUP_SCHEMA = RecordSchema('group', ('cn',), decode_group)
CSE_USER_SCHEMA = RecordSchema('cse_user', ('cn', 'uid'), decode_cse_user)
UNSW_USER_SCHEMA = RecordSchema(
    'unsw_user',
    ('cn', 'company', 'department', 'displayName', 'name', 'mail'),
    decode_unsw_user,
)

SCHEMAS = {
    schema.name: schema
    for schema in (ITEM_SCHEMA, GROUP_SCHEMA, CSE_USER_SCHEMA, UNSW_USER_SCHEMA)
}


def decode(entry: Entry, schema: RecordSchema) -> Any:
    """
    Decode an entry into the record kind described by schema.

    Raises:
        AttributeMissing: If a required attribute is absent
    """
    record = schema.decoder(entry)
    if entry.attributes:
        logger.debug(f"Unused attributes decoding {schema.name}: {sorted(entry.attributes)}")
    return record


@dataclass(frozen=True)
class Profile:
    """A user as described by both directories."""
    zid: str
    name: str
    email: str
    aliases: Tuple[str, ...] = ()
    company: Optional[str] = None
    department: Optional[str] = None
    cse_groups: Tuple[str, ...] = ()

    @classmethod
    def merge(cls, unsw_user: UnswUser, cse_user: CseUser,
              groups: Iterable[CseGroup]) -> 'Profile':
        """Combine both accounts and the department groups into a profile."""
        return cls(
            zid=unsw_user.name,
            name=unsw_user.display_name,
            email=unsw_user.mail,
            aliases=tuple(cse_user.uids),
            company=unsw_user.company,
            department=unsw_user.department,
            cse_groups=tuple(group.item.cn for group in groups),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, omitting empty lists and absent values."""
        data = {'zid': self.zid, 'name': self.name, 'email': self.email}
        if self.aliases:
            data['aliases'] = list(self.aliases)
        if self.company is not None:
            data['company'] = self.company
        if self.department is not None:
            data['department'] = self.department
        if self.cse_groups:
            data['cse_groups'] = list(self.cse_groups)
        return data
