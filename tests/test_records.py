#!/usr/bin/env python3
"""
Unit tests for record decoding.

Covers the required, optional and multi-valued attribute rules, the
consume-once behaviour of Entry, and the schema attribute lists.
"""

import os
import sys
import unittest

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cse_query.errors import AttributeMissing, EncodingError
from cse_query.records import (
    CSE_USER_SCHEMA,
    GROUP_SCHEMA,
    ITEM_SCHEMA,
    SCHEMAS,
    UNSW_USER_SCHEMA,
    CseGroup,
    CseUser,
    Entry,
    LdapItem,
    Profile,
    UnswUser,
    decode,
)

UNSW_DN = 'CN=z1111111,OU=IDM,DC=ad,DC=unsw,DC=edu,DC=au'
CSE_DN = 'uid=jdoe,ou=people,dc=cse,dc=unsw,dc=edu,dc=au'


def unsw_attributes(**overrides):
    attributes = {
        'cn': ['z1111111'],
        'company': ['Engineering'],
        'department': ['Computer Science and Engineering'],
        'displayName': ['Jane Doe'],
        'name': ['z1111111'],
        'mail': ['jane@example.edu'],
    }
    attributes.update(overrides)
    return {key: value for key, value in attributes.items() if value is not None}


class TestEntry(unittest.TestCase):
    """Test cases for the Entry working copy."""

    def test_take_one_returns_first_value(self):
        entry = Entry(UNSW_DN, {'mail': ['first@example.edu', 'second@example.edu']})
        self.assertEqual(entry.take_one('mail'), 'first@example.edu')

    def test_take_one_missing_attribute(self):
        entry = Entry(UNSW_DN, {'cn': ['z1111111']})
        with self.assertRaises(AttributeMissing) as context:
            entry.take_one('mail')
        self.assertEqual(context.exception.attribute, 'mail')
        self.assertIn('mail', str(context.exception))

    def test_maybe_take_one(self):
        entry = Entry(UNSW_DN, {'company': ['Engineering']})
        self.assertEqual(entry.maybe_take_one('company'), 'Engineering')
        self.assertIsNone(entry.maybe_take_one('department'))

    def test_take_all_preserves_order_and_duplicates(self):
        entry = Entry(CSE_DN, {'uid': ['jdoe', 'j.doe', 'jdoe']})
        self.assertEqual(entry.take_all('uid'), ['jdoe', 'j.doe', 'jdoe'])

    def test_take_all_missing_attribute(self):
        entry = Entry(CSE_DN, {'cn': ['z1111111']})
        with self.assertRaises(AttributeMissing) as context:
            entry.take_all('uid')
        self.assertEqual(context.exception.attribute, 'uid')

    def test_attribute_can_only_be_taken_once(self):
        entry = Entry(UNSW_DN, {'mail': ['jane@example.edu'], 'uid': ['jdoe']})
        entry.take_one('mail')
        entry.take_all('uid')

        with self.assertRaises(AttributeMissing):
            entry.take_one('mail')
        self.assertIsNone(entry.maybe_take_one('mail'))
        with self.assertRaises(AttributeMissing):
            entry.take_all('uid')

    def test_take_dn_leaves_empty_placeholder(self):
        entry = Entry(UNSW_DN, {})
        self.assertEqual(entry.take_dn(), UNSW_DN)
        self.assertEqual(entry.dn, '')
        self.assertEqual(entry.take_dn(), '')

    def test_attribute_names_are_case_insensitive(self):
        entry = Entry(UNSW_DN, {'DisplayName': ['Jane Doe']})
        self.assertEqual(entry.take_one('displayName'), 'Jane Doe')

    def test_single_value_is_not_split(self):
        entry = Entry(CSE_DN, {'uid': 'jdoe', 'cn': b'z1111111'})
        self.assertEqual(entry.take_all('uid'), ['jdoe'])
        self.assertEqual(entry.take_one('cn'), 'z1111111')

    def test_invalid_utf8_is_rejected(self):
        with self.assertRaises(EncodingError) as context:
            Entry(CSE_DN, {'uid': [b'jdoe', b'\xffjdoe']})
        self.assertIn('uid', str(context.exception))

    def test_from_response_decodes_raw_values(self):
        item = {
            'type': 'searchResEntry',
            'dn': CSE_DN,
            'raw_attributes': {'uid': [b'jdoe', b'j.doe'], 'cn': [b'J\xc3\xa9r\xc3\xb4me']},
            'attributes': {},
        }
        entry = Entry.from_response(item)
        self.assertEqual(entry.dn, CSE_DN)
        self.assertEqual(entry.take_all('uid'), ['jdoe', 'j.doe'])
        self.assertEqual(entry.take_one('cn'), 'Jérôme')

    def test_from_response_drops_empty_attributes(self):
        item = {'dn': CSE_DN, 'raw_attributes': {'uid': [], 'cn': [b'z1111111']}}
        entry = Entry.from_response(item)
        with self.assertRaises(AttributeMissing):
            entry.take_all('uid')

    def test_from_response_falls_back_to_attributes(self):
        item = {'dn': CSE_DN, 'attributes': {'cn': 'z1111111'}}
        entry = Entry.from_response(item)
        self.assertEqual(entry.take_one('cn'), 'z1111111')


class TestDecode(unittest.TestCase):
    """Test cases for decoding each record kind."""

    def test_decode_unsw_user(self):
        user = decode(Entry(UNSW_DN, unsw_attributes()), UNSW_USER_SCHEMA)

        self.assertIsInstance(user, UnswUser)
        self.assertEqual(user.item, LdapItem(dn=UNSW_DN, cn='z1111111'))
        self.assertEqual(user.company, 'Engineering')
        self.assertEqual(user.department, 'Computer Science and Engineering')
        self.assertEqual(user.display_name, 'Jane Doe')
        self.assertEqual(user.name, 'z1111111')
        self.assertEqual(user.mail, 'jane@example.edu')

    def test_decode_unsw_user_without_optional_attributes(self):
        entry = Entry(UNSW_DN, unsw_attributes(company=None, department=None))
        user = decode(entry, UNSW_USER_SCHEMA)
        self.assertIsNone(user.company)
        self.assertIsNone(user.department)

    def test_decode_unsw_user_missing_each_required_attribute(self):
        for attribute in ('cn', 'displayName', 'name', 'mail'):
            with self.subTest(attribute=attribute):
                entry = Entry(UNSW_DN, unsw_attributes(**{attribute: None}))
                with self.assertRaises(AttributeMissing) as context:
                    decode(entry, UNSW_USER_SCHEMA)
                self.assertEqual(context.exception.attribute, attribute)

    def test_decode_cse_user_single_uid(self):
        user = decode(Entry(CSE_DN, {'cn': ['z1111111'], 'uid': ['jdoe']}), CSE_USER_SCHEMA)
        self.assertIsInstance(user, CseUser)
        self.assertEqual(user.uids, ('jdoe',))
        self.assertEqual(user.item.dn, CSE_DN)

    def test_decode_cse_user_takes_uid_before_item(self):
        # Both missing: the subtype attribute is reported
        with self.assertRaises(AttributeMissing) as context:
            decode(Entry(CSE_DN, {}), CSE_USER_SCHEMA)
        self.assertEqual(context.exception.attribute, 'uid')

    def test_decode_group(self):
        group = decode(Entry('cn=staff,ou=groups,dc=cse', {'cn': ['staff']}), GROUP_SCHEMA)
        self.assertEqual(group, CseGroup(item=LdapItem(dn='cn=staff,ou=groups,dc=cse', cn='staff')))

    def test_decode_group_missing_cn(self):
        with self.assertRaises(AttributeMissing):
            decode(Entry('cn=broken,ou=groups,dc=cse', {'description': ['no name']}), GROUP_SCHEMA)

    def test_decode_item(self):
        item = decode(Entry(CSE_DN, {'cn': ['z1111111']}), ITEM_SCHEMA)
        self.assertEqual(item, LdapItem(dn=CSE_DN, cn='z1111111'))

    def test_schema_attributes_cover_decoder(self):
        """Decoding an entry holding exactly the schema attributes consumes all of them."""
        samples = {
            'unsw_user': ['uid'],
            'cse_user': ['jdoe', 'j.doe'],
            'group': ['staff'],
            'item': ['x'],
        }
        for name, schema in SCHEMAS.items():
            with self.subTest(schema=name):
                entry = Entry('cn=x', {attribute: list(samples[name]) for attribute in schema.attributes})
                decode(entry, schema)
                self.assertEqual(entry.attributes, {})


class TestProfile(unittest.TestCase):
    """Test cases for merging and serializing profiles."""

    def setUp(self):
        self.unsw_user = UnswUser(
            item=LdapItem(dn=UNSW_DN, cn='z1111111'),
            company='Engineering',
            department=None,
            display_name='Jane Doe',
            name='z1111111',
            mail='jane@example.edu',
        )
        self.cse_user = CseUser(item=LdapItem(dn=CSE_DN, cn='z1111111'), uids=('jdoe', 'j.doe'))

    def test_merge(self):
        groups = [
            CseGroup(item=LdapItem(dn='cn=staff', cn='staff')),
            CseGroup(item=LdapItem(dn='cn=csesoc', cn='csesoc')),
        ]
        profile = Profile.merge(self.unsw_user, self.cse_user, groups)

        self.assertEqual(profile, Profile(
            zid='z1111111',
            name='Jane Doe',
            email='jane@example.edu',
            aliases=('jdoe', 'j.doe'),
            company='Engineering',
            department=None,
            cse_groups=('staff', 'csesoc'),
        ))

    def test_profile_is_immutable(self):
        profile = Profile.merge(self.unsw_user, self.cse_user, [])
        with self.assertRaises(Exception):
            profile.zid = 'z2222222'

    def test_to_dict_omits_empty_fields(self):
        profile = Profile(zid='z1111111', name='Jane Doe', email='jane@example.edu')
        self.assertEqual(profile.to_dict(), {
            'zid': 'z1111111',
            'name': 'Jane Doe',
            'email': 'jane@example.edu',
        })

    def test_to_dict_full(self):
        profile = Profile.merge(self.unsw_user, self.cse_user, [CseGroup(item=LdapItem(dn='cn=staff', cn='staff'))])
        self.assertEqual(profile.to_dict(), {
            'zid': 'z1111111',
            'name': 'Jane Doe',
            'email': 'jane@example.edu',
            'aliases': ['jdoe', 'j.doe'],
            'company': 'Engineering',
            'cse_groups': ['staff'],
        })


if __name__ == '__main__':
    unittest.main()
