"""
Secret generation and JWT handling for per-user signing secrets.

Tokens carry only ``{id, iat, exp}``. Reading claims without a signature
check is confined to :func:`read_claims`; nothing returned from it is an
identity until :func:`check_signature` succeeds against the user's current
secret.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
import structlog
from bson import ObjectId

from session.models import (
    ClaimsOutcome, Credentials, Rejected, RejectionReason, TokenKind,
    TokenPair, Unverified, UserRecord
)
from utilities.config import config
from utilities.exceptions import InvalidToken

logger = structlog.get_logger(__name__)

SECRET_BYTES = 32


def generate_secret() -> str:
    """Generate a 256-bit random secret, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


def generate_credentials() -> Credentials:
    """Generate an independent access/refresh secret pair."""
    return Credentials(access_secret=generate_secret(), refresh_secret=generate_secret())


def mint_token(user_id: Optional[str], secret: str, lifetime: timedelta) -> str:
    """
    Sign ``{id: user_id}`` with an expiry of ``lifetime`` from now.

    Raises:
        InvalidToken: If the user id or secret is missing
    """
    if not user_id:
        raise InvalidToken("Cannot mint a token without a user id")
    if not secret:
        raise InvalidToken("Cannot mint a token without a signing secret")

    issued_at = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, secret, algorithm=config.token_algorithm)


def mint_access_token(user: UserRecord) -> str:
    return mint_token(user.id, user.credentials.access_secret, config.access_token_lifetime())


def mint_refresh_token(user: UserRecord) -> str:
    return mint_token(user.id, user.credentials.refresh_secret, config.refresh_token_lifetime())


def issue_tokens(user: UserRecord) -> TokenPair:
    """Mint both tokens from the user's current credentials."""
    return TokenPair(
        access_token=mint_access_token(user),
        refresh_token=mint_refresh_token(user),
    )


def read_claims(token: Optional[str]) -> ClaimsOutcome:
    """
    Phase one of verification: decode claims without checking the signature.

    Only structural checks happen here, before any directory lookup: the
    token must be a JWT signed with the configured algorithm and carry an
    ``id`` that is a well-formed ObjectId.

    Args:
        token: Raw token from the transport layer

    Returns:
        Unverified with the claimed id, or Rejected
    """
    if not token:
        return Rejected(reason=RejectionReason.MISSING_TOKEN)

    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return Rejected(reason=RejectionReason.MALFORMED_CLAIMS)

    if header.get("alg") != config.token_algorithm:
        return Rejected(reason=RejectionReason.MALFORMED_CLAIMS)

    claimed_id = claims.get("id")
    if not isinstance(claimed_id, str) or not ObjectId.is_valid(claimed_id):
        return Rejected(reason=RejectionReason.MALFORMED_CLAIMS)

    return Unverified(claimed_id=claimed_id)


def check_signature(token: str, user: UserRecord, kind: TokenKind) -> Optional[Dict]:
    """
    Phase two: verify signature and expiry against the user's current secret.

    Returns:
        Verified claims, or None if the signature, expiry or subject is wrong
    """
    try:
        claims = jwt.decode(
            token,
            user.credentials.secret_for(kind),
            algorithms=[config.token_algorithm],
            options={"require": ["exp", "id"]},
        )
    except jwt.InvalidTokenError as e:
        logger.debug("Token signature check failed", token_kind=kind.value, error=type(e).__name__)
        return None

    if claims["id"] != user.id:
        return None
    return claims
