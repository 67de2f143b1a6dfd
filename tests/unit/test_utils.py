"""Unit tests for key-value extraction and hostname sanitizing."""
import pytest

from rtd_core.exceptions import ValidationError
from rtd_core.utils import (
    extract_value,
    first_token,
    is_valid_hostname,
    sanitize_hostname,
    strip_control,
    validate_key,
)


OS_RELEASE = """\
# comment line
NAME="Ubuntu"

VERSION_ID="22.04"
ID=ubuntu
PRETTY_NAME='Ubuntu 22.04.3 LTS'
id=lowercase-duplicate
"""


class TestExtractValue:
    """Tests for os-release style KEY=value lookups."""

    def test_double_quoted_value(self):
        assert extract_value(OS_RELEASE, "VERSION_ID") == "22.04"

    def test_single_quoted_value(self):
        assert extract_value(OS_RELEASE, "PRETTY_NAME") == "Ubuntu 22.04.3 LTS"

    def test_unquoted_value(self):
        assert extract_value(OS_RELEASE, "ID") == "ubuntu"

    def test_lowercase_key_matches_uppercase_line_first(self):
        """The first matching line wins, whichever case it uses."""
        assert extract_value(OS_RELEASE, "id") == "ubuntu"

    def test_lowercase_line(self):
        assert extract_value("foo=bar\n", "FOO") == "bar"

    def test_missing_key(self):
        assert extract_value(OS_RELEASE, "VERSION_CODENAME") is None

    def test_prefix_of_longer_key_does_not_match(self):
        assert extract_value("VERSION_ID=1\n", "VERSION") is None

    def test_comment_lines_skipped(self):
        assert extract_value("#ID=commented\nID=real\n", "ID") == "real"

    def test_indented_line_does_not_match(self):
        assert extract_value("  ID=indented\n", "ID") is None

    def test_only_one_quote_layer_removed(self):
        assert extract_value("ID=\"'nested'\"\n", "ID") == "'nested'"

    def test_mismatched_quotes_kept(self):
        assert extract_value("ID=\"half\n", "ID") == '"half'

    def test_value_may_contain_equals(self):
        assert extract_value("OPTS=a=b\n", "OPTS") == "a=b"

    def test_control_characters_stripped(self):
        assert extract_value("ID=ub\x07untu\x1b\n", "ID") == "ubuntu"

    def test_overlong_value_skipped_scan_continues(self):
        content = "ID=" + "x" * 600 + "\nid=short\n"
        assert extract_value(content, "ID") == "short"

    def test_value_at_limit_accepted(self):
        assert extract_value("ID=" + "y" * 512 + "\n", "ID") == "y" * 512

    @pytest.mark.parametrize("key", ["", "1ID", "ID-X", "ID X", "I.D", "$(id)"])
    def test_invalid_keys_return_none(self, key):
        assert extract_value("1ID=1\nID-X=2\n", key) is None


class TestValidateKey:
    """Tests for key validation."""

    def test_valid(self):
        assert validate_key("VERSION_CODENAME") == "VERSION_CODENAME"
        assert validate_key("_private") == "_private"

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_key("9lives")
        assert exc_info.value.field == "key"


class TestSanitizeHostname:
    """Tests for hostname normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("buildbox", "buildbox"),
        ("BuildBox.Local", "buildbox.local"),
        ("  my host  \n", "my-host"),
        ("my \t  box", "my-box"),
        (".example.com.", "example.com"),
        ("..double..", ".double."),
        ("web_server!", "webserver"),
        ("\x01host\x02", "host"),
        ("", ""),
        ("   ", ""),
        (None, ""),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_hostname(raw) == expected

    def test_truncated_to_63(self):
        assert sanitize_hostname("a" * 100) == "a" * 63

    def test_validity(self):
        assert is_valid_hostname("host1")
        assert is_valid_hostname("1host")
        assert not is_valid_hostname("")
        assert not is_valid_hostname("-host")
        assert not is_valid_hostname(".host")


class TestSmallHelpers:
    """Tests for string helpers."""

    def test_strip_control(self):
        assert strip_control("a\x00b\x1fc\x7fd") == "abcd"

    def test_first_token(self):
        assert first_token("6.5.0-14-generic\n") == "6.5.0-14-generic"
        assert first_token("a b c") == "a"
        assert first_token("") == ""
        assert first_token(None) == ""
