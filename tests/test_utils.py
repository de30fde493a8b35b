#!/usr/bin/env python3
"""Unit tests for formatting, escaping and secret helpers in utils.py."""

import sys
import unittest
from unittest.mock import patch
from pathlib import Path

# Add parent directory to path to import cstemplate
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cstemplate.errors import ConfigError
from cstemplate.utils import (
    pretty_duration, pretty_size, escape_keyword, escape_url, retrieve_secret
)


class TestPrettyDuration(unittest.TestCase):

    def test_zero_is_empty(self):
        self.assertEqual(pretty_duration(0), "")

    def test_minutes_and_seconds(self):
        self.assertEqual(pretty_duration(90), "1m30s")

    def test_hours_minutes_seconds(self):
        self.assertEqual(pretty_duration(3661), "1h1m1s")

    def test_zero_components_are_omitted(self):
        self.assertEqual(pretty_duration(3600), "1h")
        self.assertEqual(pretty_duration(3630), "1h30s")
        self.assertEqual(pretty_duration(30), "30s")

    def test_minutes_wrap_at_an_hour(self):
        self.assertEqual(pretty_duration(7320), "2h2m")


class TestPrettySize(unittest.TestCase):

    def test_sub_kilobyte_is_shown_in_kb(self):
        self.assertEqual(pretty_size(512), "0.5KB")

    def test_megabytes(self):
        self.assertEqual(pretty_size(1024 * 1024), "1.0MB")

    def test_gigabytes(self):
        self.assertEqual(pretty_size(1024 * 1024 * 1024 * 2), "2.0GB")

    def test_just_below_a_megabyte(self):
        self.assertEqual(pretty_size(1024 * 1023), "1023.0KB")

    def test_numeric_string(self):
        self.assertEqual(pretty_size("1572864"), "1.5MB")

    def test_non_numeric_is_returned_unchanged(self):
        self.assertEqual(pretty_size("unknown"), "unknown")


class TestEscaping(unittest.TestCase):

    def test_keyword_percent_is_escaped(self):
        self.assertEqual(escape_keyword("centos%6.5%64"), "centos%256.5%2564")

    def test_keyword_without_percent_is_unchanged(self):
        self.assertEqual(escape_keyword("ubuntu"), "ubuntu")

    def test_url_colon_and_slash_are_escaped(self):
        self.assertEqual(
            escape_url("http://images.example.com/centos.qcow2"),
            "http%3A%2F%2Fimages.example.com%2Fcentos.qcow2"
        )


class TestRetrieveSecret(unittest.TestCase):

    def test_plain_value_is_returned(self):
        self.assertEqual(retrieve_secret("plain-secret"), "plain-secret")

    def test_empty_value(self):
        self.assertEqual(retrieve_secret(""), "")

    def test_base64_value_is_decoded(self):
        self.assertEqual(retrieve_secret("base64:czNjcmV0"), "s3cret")

    def test_invalid_base64_raises_config_error(self):
        with self.assertRaises(ConfigError):
            retrieve_secret("base64:abc")

    @patch('cstemplate.utils.keyring.get_password', return_value='from-keyring')
    def test_keyring_reference(self, get_password):
        self.assertEqual(retrieve_secret("keyring:admin@cloud"), "from-keyring")
        get_password.assert_called_once_with('cstemplate', 'admin@cloud')

    @patch('cstemplate.utils.keyring.get_password', return_value=None)
    def test_missing_keyring_entry_raises_config_error(self, get_password):
        with self.assertRaises(ConfigError) as ctx:
            retrieve_secret("keyring:admin@cloud")
        self.assertIn("keyring set cstemplate admin@cloud", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
