"""
Secret reference grammars.

Two kinds of pointer may appear in a string field of a definition:

  secret://<engine>?k=v&...          user secret, readable by the roles it names
  encrypted:<engine>!k:v!...         external secret, defined by admins only

References are parsed on demand and compared by engine and parameters, so
``secret://vault?a=1&b=2`` equals ``secret://vault?b=2&a=1``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit

from credentia.errors import InvalidSecretFormatError

USER_SECRET_PREFIX = "secret://"
ENCRYPTED_PREFIX = "encrypted:"
_ENCRYPTED_PATTERN = re.compile(r"encrypted:.+(![a-zA-Z0-9]+:.+)+", re.DOTALL)

# Standard parameter selecting one key out of a multi-valued secret.
KEY_PARAMETER = "k"

Parameters = tuple[tuple[str, str], ...]


def _freeze(params: dict[str, str]) -> Parameters:
    return tuple(sorted(params.items()))


@dataclass(frozen=True)
class UserSecretReference:
    engine_identifier: str
    parameters: Parameters = ()

    @property
    def params(self) -> dict[str, str]:
        return dict(self.parameters)

    @staticmethod
    def is_user_secret(value: object) -> bool:
        return isinstance(value, str) and value.startswith(USER_SECRET_PREFIX)

    @classmethod
    def parse(cls, uri: str) -> UserSecretReference:
        if not cls.is_user_secret(uri):
            raise InvalidSecretFormatError(f"Not a user secret URI: {uri!r}")
        try:
            parts = urlsplit(uri)
            pairs = parse_qsl(parts.query, keep_blank_values=True, strict_parsing=bool(parts.query))
        except ValueError as e:
            raise InvalidSecretFormatError(f"Invalid user secret URI: {e}") from e
        if not parts.netloc:
            raise InvalidSecretFormatError("Invalid user secret URI: missing secret engine identifier")
        if parts.path not in ("", "/") or parts.fragment:
            raise InvalidSecretFormatError(
                "Invalid user secret URI: only an engine and query parameters are allowed"
            )
        return cls(parts.netloc, _freeze(dict(pairs)))

    @classmethod
    def try_parse(cls, value: str) -> UserSecretReference | None:
        """None when ``value`` is not a user secret URI; raises when it is but is malformed."""
        if not cls.is_user_secret(value):
            return None
        return cls.parse(value)

    def __str__(self) -> str:
        query = urlencode(self.parameters)
        return f"{USER_SECRET_PREFIX}{self.engine_identifier}" + (f"?{query}" if query else "")


@dataclass(frozen=True)
class EncryptedSecret:
    engine_identifier: str
    parameters: Parameters = ()

    @property
    def params(self) -> dict[str, str]:
        return dict(self.parameters)

    @staticmethod
    def is_encrypted_secret(value: object) -> bool:
        return (
            isinstance(value, str)
            and value.startswith(ENCRYPTED_PREFIX)
            and _ENCRYPTED_PATTERN.fullmatch(value) is not None
        )

    @classmethod
    def parse(cls, value: str) -> EncryptedSecret:
        parts = value.split("!")
        if len(parts) < 2:
            raise InvalidSecretFormatError(
                "Invalid encrypted secret format, must have at least one parameter"
            )
        engine = ""
        params: dict[str, str] = {}
        for i, part in enumerate(parts):
            key, sep, val = part.partition(":")
            if not sep:
                raise InvalidSecretFormatError(
                    "Invalid encrypted secret format, keys and values must be delimited by ':'"
                )
            if i == 0:
                engine = val
            else:
                params[key] = val
        return cls(engine, _freeze(params))

    @classmethod
    def try_parse(cls, value: str) -> EncryptedSecret | None:
        """None when ``value`` does not look like an encrypted secret; raises when malformed."""
        if not cls.is_encrypted_secret(value):
            return None
        return cls.parse(value)

    def __str__(self) -> str:
        params = "".join(f"!{k}:{v}" for k, v in self.parameters)
        return f"{ENCRYPTED_PREFIX}{self.engine_identifier}{params}"
