import pytest

from app.core.exceptions import ValidationError
from app.utils.request_meta import UNKNOWN_CLIENT, extract_bearer_token, resolve_client_identity
from app.utils.validators import (
    require_fields,
    sanitize_input,
    validate_comment,
    validate_email,
    validate_password,
)


class TestClientIdentity:
    def test_forwarded_for_wins(self):
        headers = {"x-forwarded-for": "203.0.113.5, 10.0.0.2"}
        assert resolve_client_identity(headers, "127.0.0.1") == "203.0.113.5"

    def test_peer_address_fallback(self):
        assert resolve_client_identity({}, "127.0.0.1") == "127.0.0.1"

    def test_blank_forwarded_for_is_ignored(self):
        assert resolve_client_identity({"x-forwarded-for": " , 10.0.0.2"}, "127.0.0.1") == "127.0.0.1"

    def test_unknown(self):
        assert resolve_client_identity({}, None) == UNKNOWN_CLIENT == "UNKNOWN"


class TestBearer:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            (None, None),
            ("", None),
            ("Bearer", None),
            ("Bearer   ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("abc.def.ghi", None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestValidators:
    def test_require_fields_names_the_field(self):
        with pytest.raises(ValidationError, match="password"):
            require_fields(identifier="bob", password="  ")

    @pytest.mark.parametrize("password", ["Abcdefg1", "12345abc", "a" * 127 + "1"])
    def test_good_passwords(self, password):
        assert validate_password(password) == password

    @pytest.mark.parametrize("password", ["Abcdef1", "abcdefgh", "12345678", "a" * 128 + "1"])
    def test_bad_passwords(self, password):
        with pytest.raises(ValidationError):
            validate_password(password)

    def test_email_is_trimmed(self):
        assert validate_email("  bob@example.com ") == "bob@example.com"

    @pytest.mark.parametrize("email", ["bob", "bob@", "bob@example", "b ob@example.com"])
    def test_bad_emails(self, email):
        with pytest.raises(ValidationError):
            validate_email(email)

    def test_whitespace_only_comment_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_comment("Alice", "   \n ", None)

    def test_sanitize(self):
        assert sanitize_input("<a href='/x'>&</a>") == "&lt;a href=&#x27;&#x2F;x&#x27;&gt;&amp;&lt;&#x2F;a&gt;"
        assert sanitize_input(None) is None
