"""Tests for user and external secret reference parsing."""

import pytest

from credentia.errors import InvalidSecretFormatError
from credentia.secrets.references import EncryptedSecret, UserSecretReference


class TestUserSecretReference:
    def test_parse(self):
        ref = UserSecretReference.parse("secret://vault?n=prod&k=password")
        assert ref.engine_identifier == "vault"
        assert ref.params == {"n": "prod", "k": "password"}

    def test_parameter_order_ignored(self):
        a = UserSecretReference.parse("secret://vault?a=1&b=2")
        b = UserSecretReference.parse("secret://vault?b=2&a=1")
        assert a == b
        assert hash(a) == hash(b)
        assert str(a) == "secret://vault?a=1&b=2"

    def test_no_parameters(self):
        ref = UserSecretReference.parse("secret://vault")
        assert ref.params == {}
        assert str(ref) == "secret://vault"

    @pytest.mark.parametrize(
        "uri",
        [
            "secret://?k=x",
            "secret://vault/some/path?k=x",
            "secret://vault?k=x#frag",
            "secret://vault?novalue",
        ],
    )
    def test_malformed(self, uri):
        with pytest.raises(InvalidSecretFormatError):
            UserSecretReference.parse(uri)

    def test_try_parse(self):
        assert UserSecretReference.try_parse("plain-password") is None
        assert UserSecretReference.try_parse("secret://vault").engine_identifier == "vault"
        with pytest.raises(InvalidSecretFormatError):
            UserSecretReference.try_parse("secret://")

    def test_parse_rejects_other_schemes(self):
        with pytest.raises(InvalidSecretFormatError, match="Not a user secret"):
            UserSecretReference.parse("https://vault?k=x")


class TestEncryptedSecret:
    def test_detection(self):
        assert EncryptedSecret.is_encrypted_secret("encrypted:vault!s:key")
        assert not EncryptedSecret.is_encrypted_secret("encrypted:vault")
        assert not EncryptedSecret.is_encrypted_secret("vault!s:key")
        assert not EncryptedSecret.is_encrypted_secret(42)

    def test_parse(self):
        secret = EncryptedSecret.parse("encrypted:s3!r:us-west-2!b:bucket!f:creds.json")
        assert secret.engine_identifier == "s3"
        assert secret.params == {"r": "us-west-2", "b": "bucket", "f": "creds.json"}
        assert str(secret) == "encrypted:s3!b:bucket!f:creds.json!r:us-west-2"

    def test_value_may_contain_colon(self):
        assert EncryptedSecret.parse("encrypted:vault!k:a:b").params == {"k": "a:b"}

    def test_malformed(self):
        with pytest.raises(InvalidSecretFormatError, match="at least one parameter"):
            EncryptedSecret.parse("encrypted:vault")
        with pytest.raises(InvalidSecretFormatError, match="delimited by ':'"):
            EncryptedSecret.parse("encrypted:vault!oops")

    def test_try_parse(self):
        assert EncryptedSecret.try_parse("encrypted") is None
        assert EncryptedSecret.try_parse("encrypted:vault!k:v") == EncryptedSecret.parse(
            "encrypted:vault!k:v"
        )
