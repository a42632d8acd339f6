"""Consent token issuer.

A consent token is a bearer credential: whoever holds it can view the
document and complete the record once. Tokens are hex strings drawn from
``secrets`` so enumeration is infeasible.
"""

from __future__ import annotations

import secrets

from consentlink.config import settings


def generate_consent_token(nbytes: int | None = None) -> str:
    """Return a fresh hex token (``2 * nbytes`` characters)."""
    return secrets.token_hex(nbytes or settings.CONSENT_TOKEN_BYTES)


def issue_tokens(count: int, nbytes: int | None = None) -> list[str]:
    """Issue ``count`` tokens that are distinct from each other.

    Uniqueness against already-stored tokens is enforced by the database
    constraint; callers regenerate on a collision.
    """
    tokens: set[str] = set()
    while len(tokens) < count:
        tokens.add(generate_consent_token(nbytes))
    return list(tokens)


def token_hint(token: str) -> str:
    """Short prefix safe to put in logs."""
    return token[:8]
