"""
Cookie transport and request guards for the FastAPI API.
"""

from typing import Optional

import structlog
from fastapi import Depends, Request, Response

from api.config import config
from session.authority import SessionAuthority
from session.models import TokenKind, TokenPair, UserRecord

logger = structlog.get_logger(__name__)


def get_session_authority(request: Request) -> SessionAuthority:
    """Session authority attached to the application at startup."""
    return request.app.state.session_authority


def client_key(request: Request) -> Optional[str]:
    """Key used by the verification throttle."""
    if request.client:
        return request.client.host
    return None


def access_token_from(request: Request) -> Optional[str]:
    return request.cookies.get(config.access_cookie_name)


def refresh_token_from(request: Request) -> Optional[str]:
    return request.cookies.get(config.refresh_cookie_name)


def set_session_cookies(response: Response, tokens: TokenPair) -> None:
    """
    Deliver both tokens as HttpOnly, Secure cookies.

    Args:
        response: Outgoing response
        tokens: Freshly minted token pair
    """
    for name, value in (
        (config.access_cookie_name, tokens.access_token),
        (config.refresh_cookie_name, tokens.refresh_token),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=config.cookie_max_age,
            httponly=True,
            secure=True,
            samesite=config.cookie_samesite,
        )


def clear_session_cookies(response: Response) -> None:
    for name in (config.access_cookie_name, config.refresh_cookie_name):
        response.delete_cookie(
            key=name,
            httponly=True,
            secure=True,
            samesite=config.cookie_samesite,
        )


async def require_user(
    request: Request,
    authority: SessionAuthority = Depends(get_session_authority)
) -> UserRecord:
    """
    Verify the access cookie and bind the user to the request.

    Raises:
        Unauthenticated, InvalidToken, SessionExpired, RateLimited
    """
    user = await authority.verify(TokenKind.ACCESS, access_token_from(request), client_key(request))
    request.state.user = user
    return user


async def require_admin(
    request: Request,
    authority: SessionAuthority = Depends(get_session_authority)
) -> UserRecord:
    """Same as require_user, and the user must be an admin."""
    user = await authority.verify_admin(access_token_from(request), client_key(request))
    request.state.user = user
    return user
