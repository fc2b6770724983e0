"""
Security utilities: shared-secret checks, tax id normalization.
"""
import re
import secrets
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def verify_shared_secret(provided: Optional[str], expected: str) -> bool:
    """
    Constant-time comparison of a header secret against the configured one.
    An empty expected secret never matches.
    """
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def digits_only(value: Optional[str]) -> str:
    """Strip CPF/CNPJ punctuation: '123.456.789-09' -> '12345678909'."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)
