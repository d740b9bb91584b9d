"""Heuristics that flag clipboard text which looks like a password or token.

The result only decides whether a text entry is stored and how long it is
kept. It never changes what is displayed.
"""

import string
from enum import Enum

MIN_LENGTH = 16
MIXED_MIN_LENGTH = 20
HEX_MIN_LENGTH = 32
BCRYPT_MIN_LENGTH = 50
JSON_TOKEN_MIN_LENGTH = 40
AWS_KEY_LENGTH = 20

GITHUB_PREFIXES = ("ghp_", "gho_")
SLACK_PREFIXES = ("xoxb-", "xoxp-")


class SensitiveKind(Enum):
    """Which rule classified a text as sensitive."""

    BCRYPT_HASH = "bcrypt_hash"
    JSON_TOKEN = "json_token"
    GITHUB_TOKEN = "github_token"
    SLACK_TOKEN = "slack_token"
    AWS_ACCESS_KEY = "aws_access_key"
    HEX_TOKEN = "hex_token"
    MIXED_CREDENTIAL = "mixed_credential"


def _is_hex_or_space(text: str) -> bool:
    return all(c in string.hexdigits or c.isspace() for c in text)


def _match_known_pattern(text: str) -> SensitiveKind | None:
    if text.startswith("$2") and len(text) >= BCRYPT_MIN_LENGTH:
        return SensitiveKind.BCRYPT_HASH
    if text.startswith("eyJ") or (text.startswith("{") and '"' in text and len(text) > JSON_TOKEN_MIN_LENGTH):
        return SensitiveKind.JSON_TOKEN
    if text.startswith(GITHUB_PREFIXES):
        return SensitiveKind.GITHUB_TOKEN
    if text.startswith(SLACK_PREFIXES):
        return SensitiveKind.SLACK_TOKEN
    if text.startswith("AKIA") and len(text) == AWS_KEY_LENGTH:
        return SensitiveKind.AWS_ACCESS_KEY
    if len(text) >= HEX_MIN_LENGTH and _is_hex_or_space(text):
        return SensitiveKind.HEX_TOKEN
    return None


def classify(text: str) -> SensitiveKind | None:
    """Classify text that looks like a secret.

    Args:
        text: Clipboard text to inspect.

    Returns:
        The rule that matched, or None if the text does not look sensitive.
    """
    if not isinstance(text, str):
        return None
    t = text.strip()
    if len(t) < MIN_LENGTH:
        return None

    kind = _match_known_pattern(t)
    if kind is not None:
        return kind

    has_letter = any(c.isalpha() for c in t)
    has_digit = any(c.isnumeric() for c in t)
    has_symbol = any(not c.isalpha() and not c.isnumeric() and not c.isspace() for c in t)
    if has_letter and (has_digit or has_symbol) and len(t) >= MIXED_MIN_LENGTH:
        return SensitiveKind.MIXED_CREDENTIAL

    return None


def is_sensitive(text: str) -> bool:
    """Check if text looks like a password, key or token."""
    return classify(text) is not None
