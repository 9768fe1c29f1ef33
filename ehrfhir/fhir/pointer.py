"""JSON Pointer (RFC 6901) parsing and formatting."""

import re

from ehrfhir.fhir.errors import MalformedPatchError

# "~" must be followed by 0 or 1
_BAD_ESCAPE_RE = re.compile(r"~(?![01])")

# Array index token: "0" or a number without leading zeros
ARRAY_INDEX_RE = re.compile(r"^(0|[1-9][0-9]*)$")

END_OF_ARRAY = "-"


def parse_pointer(pointer: str) -> list[str]:
    """Split a pointer into unescaped reference tokens.

    "" is the whole document (no tokens); "/" is the single token "".
    """
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise MalformedPatchError(f"JSON Pointer must be empty or start with '/': {pointer!r}")
    tokens = pointer[1:].split("/")
    for token in tokens:
        if _BAD_ESCAPE_RE.search(token):
            raise MalformedPatchError(f"Invalid '~' escape in JSON Pointer: {pointer!r}")
    # ~1 first, then ~0, so "~01" decodes to "~1" and not "/"
    return [token.replace("~1", "/").replace("~0", "~") for token in tokens]


def escape_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def format_pointer(tokens: list[str]) -> str:
    return "".join("/" + escape_token(token) for token in tokens)


def is_proper_prefix(prefix: list[str], tokens: list[str]) -> bool:
    """True when *tokens* addresses a location strictly inside *prefix*."""
    return len(prefix) < len(tokens) and tokens[: len(prefix)] == prefix
