"""
Session Authority: registration, login, two-phase token verification and
credential rotation.

Each user owns two signing secrets. Rotating them is the only revocation
mechanism: every token minted before a rotation stops verifying at once.
"""

from typing import Any, Optional

import structlog

from session import tokens
from session.directory import UserDirectory
from session.models import (
    AuthResult, Rejected, RejectionReason, TokenKind, TokenPair, Unverified,
    UserRecord, UserRole, Verified, VerificationOutcome
)
from session.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from session.throttle import VerificationThrottle
from utilities.exceptions import (
    BookwormError, Conflict, Forbidden, InvalidCredentials, InvalidToken,
    RateLimited, SessionExpired, Unauthenticated, ValidationError
)
from utilities.logger import AuthEventLogger

logger = structlog.get_logger(__name__)

REJECTION_ERRORS = {
    RejectionReason.MISSING_TOKEN: Unauthenticated,
    RejectionReason.MALFORMED_CLAIMS: InvalidToken,
    RejectionReason.UNKNOWN_USER: Unauthenticated,
    RejectionReason.BAD_SIGNATURE: SessionExpired,
    RejectionReason.THROTTLED: RateLimited,
}


def rejection_error(reason: RejectionReason) -> BookwormError:
    return REJECTION_ERRORS[reason]()


class SessionAuthority:
    """
    Mints, verifies and rotates per-user access and refresh tokens.

    Collaborators are passed in explicitly so tests can substitute doubles:
    the user directory, the password hasher, the media store used for
    profile photos, and the verification failure throttle.
    """

    def __init__(
        self,
        directory: UserDirectory,
        passwords: PasswordHasher,
        media_store: Any,
        throttle: Optional[VerificationThrottle] = None
    ):
        self.directory = directory
        self.passwords = passwords
        self.media_store = media_store
        self.throttle = throttle or VerificationThrottle()
        self.events = AuthEventLogger("session.authority")

    async def rotate(self, user: UserRecord, reason: str = "rotate") -> TokenPair:
        """
        Replace the user's secrets and mint tokens from the new ones.

        Args:
            user: User whose sessions are renewed; its credentials are updated in place
            reason: Label for the audit log

        Returns:
            TokenPair signed with the fresh secrets

        Raises:
            Unauthenticated: If the user vanished before the update
        """
        credentials = tokens.generate_credentials()
        if not await self.directory.update_credentials(user.id, credentials):
            raise Unauthenticated()

        user.credentials = credentials
        self.events.log_rotation(user.id, reason)
        return tokens.issue_tokens(user)

    async def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        photo: Any
    ) -> AuthResult:
        """
        Create a user with role ``user`` and fresh secrets.

        Args:
            name: Display name
            email: Unique email address
            password: Plaintext password, hashed before storage
            photo: Uploaded profile photo handed to the media store

        Raises:
            ValidationError: For the first missing field, or a password over 72 bytes
            Conflict: If the email is already registered
        """
        for field, value in (("name", name), ("email", email), ("password", password), ("photo", photo)):
            if not value:
                raise ValidationError(f"{field.capitalize()} required", field=field)

        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError("Password too long", field="password")

        if await self.directory.find_by_email(email):
            raise Conflict("User already exists", field="email")

        photo_url = await self.media_store.upload_profile_photo(photo)
        password_hash = await self.passwords.hash(password)

        user = await self.directory.insert(UserRecord(
            name=name,
            email=email,
            password=password_hash,
            role=UserRole.USER,
            photo=photo_url,
            credentials=tokens.generate_credentials(),
        ))

        self.events.log_registration(user.id, user.email)
        return AuthResult(user=user, tokens=tokens.issue_tokens(user))

    async def login(self, email: Optional[str], password: Optional[str]) -> AuthResult:
        """
        Check credentials and rotate the user's secrets.

        A failed attempt never touches the stored secrets.

        Raises:
            ValidationError: If email or password is missing
            InvalidCredentials: If the email is unknown or the password is wrong
        """
        if not email or not password:
            raise ValidationError("Email and password required")

        user = await self.directory.find_by_email(email)
        if not user or not await self.passwords.verify(password, user.password):
            self.events.log_login(email, success=False)
            raise InvalidCredentials()

        pair = await self.rotate(user, reason="login")
        self.events.log_login(email, success=True, user_id=user.id)
        return AuthResult(user=user, tokens=pair)

    async def refresh(self, refresh_token: Optional[str], client: Optional[str] = None) -> AuthResult:
        """Verify a refresh token against ``refresh_secret`` and rotate."""
        user = await self.verify(TokenKind.REFRESH, refresh_token, client)
        pair = await self.rotate(user, reason="refresh")
        return AuthResult(user=user, tokens=pair)

    async def logout(self, user: UserRecord) -> None:
        """Rotate and discard the new tokens, so nothing issued so far verifies."""
        await self.rotate(user, reason="logout")

    async def resolve(self, kind: TokenKind, token: str, unverified: Unverified) -> VerificationOutcome:
        """
        Phase two: look up the claimed user and check the token against
        the current secret of the requested kind.
        """
        user = await self.directory.find_by_id(unverified.claimed_id)
        if not user:
            return Rejected(reason=RejectionReason.UNKNOWN_USER)

        if tokens.check_signature(token, user, kind) is None:
            return Rejected(reason=RejectionReason.BAD_SIGNATURE)

        return Verified(user=user)

    async def inspect(self, kind: TokenKind, token: Optional[str], client: Optional[str] = None) -> VerificationOutcome:
        """
        Run both verification phases and return the tagged outcome.

        Structural checks and the throttle run before the directory is touched.
        """
        claims = tokens.read_claims(token)
        if isinstance(claims, Rejected):
            if claims.reason != RejectionReason.MISSING_TOKEN:
                self.throttle.record_failure(client)
            return claims

        if not self.throttle.allow(client):
            self.events.log_throttled(client, self.throttle.failures(client))
            return Rejected(reason=RejectionReason.THROTTLED)

        outcome = await self.resolve(kind, token, claims)
        if isinstance(outcome, Rejected):
            self.throttle.record_failure(client)
        return outcome

    async def verify(self, kind: TokenKind, token: Optional[str], client: Optional[str] = None) -> UserRecord:
        """
        Verify a token and return the user it belongs to.

        Raises:
            Unauthenticated: No token, or the claimed user does not exist
            InvalidToken: Claims are malformed
            SessionExpired: Signature or expiry check failed
            RateLimited: The client has failed too often recently
        """
        outcome = await self.inspect(kind, token, client)
        if isinstance(outcome, Verified):
            return outcome.user

        self.events.log_rejection(kind.value, outcome.reason.value, client)
        if outcome.reason == RejectionReason.THROTTLED:
            raise RateLimited(retry_after=self.throttle.retry_after(client))
        raise rejection_error(outcome.reason)

    async def verify_admin(self, token: Optional[str], client: Optional[str] = None) -> UserRecord:
        """Verify an access token and require the admin role."""
        user = await self.verify(TokenKind.ACCESS, token, client)
        if not user.is_admin:
            raise Forbidden()
        return user
