"""
Tests for the Session Authority: registration, login, verification,
refresh, logout and rotation.
"""

import pytest
from bson import ObjectId

from session import tokens
from session.authority import SessionAuthority
from session.models import (
    Rejected, RejectionReason, TokenKind, UserRole, Verified
)
from session.throttle import VerificationThrottle
from utilities.exceptions import (
    Conflict, Forbidden, InvalidCredentials, InvalidToken, RateLimited,
    SessionExpired, Unauthenticated, ValidationError
)
from utilities.config import config


async def register(authority, registration):
    return await authority.register(**registration)


class TestRegister:
    """Test cases for registration."""

    @pytest.mark.asyncio
    async def test_register_creates_plain_user(self, authority, directory, registration, media_store):
        result = await register(authority, registration)

        assert result.user.role == UserRole.USER
        assert result.user.photo == media_store.upload_profile_photo.return_value
        media_store.upload_profile_photo.assert_awaited_once_with(registration["photo"])

        stored = directory.stored("a@x.com")
        assert stored.password != "pw123456"
        assert stored.password.startswith("$2")
        assert stored.credentials.access_secret
        assert stored.credentials.refresh_secret

    @pytest.mark.asyncio
    async def test_register_tokens_verify(self, authority, registration):
        result = await register(authority, registration)

        user = await authority.verify(TokenKind.ACCESS, result.tokens.access_token)
        assert user.id == result.user.id
        user = await authority.verify(TokenKind.REFRESH, result.tokens.refresh_token)
        assert user.id == result.user.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["name", "email", "password", "photo"])
    async def test_register_requires_every_field(self, authority, registration, missing):
        registration[missing] = None

        with pytest.raises(ValidationError) as exc_info:
            await register(authority, registration)

        assert exc_info.value.field == missing
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_register_reports_first_missing_field(self, authority, registration):
        registration["email"] = ""
        registration["photo"] = None

        with pytest.raises(ValidationError) as exc_info:
            await register(authority, registration)
        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_register_rejects_password_over_72_bytes(self, authority, directory, registration, media_store):
        registration["password"] = "p" * 80

        with pytest.raises(ValidationError) as exc_info:
            await register(authority, registration)

        assert exc_info.value.field == "password"
        assert exc_info.value.message == "Password too long"
        media_store.upload_profile_photo.assert_not_awaited()
        assert directory.users == {}

    @pytest.mark.asyncio
    async def test_register_accepts_72_byte_multibyte_password(self, authority, registration):
        registration["password"] = "é" * 36

        result = await register(authority, registration)

        assert (await authority.login("a@x.com", "é" * 36)).user.id == result.user.id

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, authority, registration, media_store, photo):
        await register(authority, registration)
        media_store.upload_profile_photo.reset_mock()

        with pytest.raises(Conflict):
            await authority.register("B", "a@x.com", "another-password", photo)

        media_store.upload_profile_photo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_racing_insert_conflicts(self, authority, directory, registration):
        """A duplicate that slips past the lookup is caught by the directory."""
        original_find = directory.find_by_email

        async def find_nothing(email):
            return None

        await register(authority, registration)
        directory.find_by_email = find_nothing
        try:
            with pytest.raises(Conflict):
                await register(authority, registration)
        finally:
            directory.find_by_email = original_find


class TestLogin:
    """Test cases for login."""

    @pytest.mark.asyncio
    async def test_login_rotates_secrets(self, authority, directory, registration):
        registered = await register(authority, registration)
        before = directory.stored("a@x.com").credentials

        result = await authority.login("a@x.com", "pw123456")

        after = directory.stored("a@x.com").credentials
        assert after.access_secret != before.access_secret
        assert after.refresh_secret != before.refresh_secret
        assert (await authority.verify(TokenKind.ACCESS, result.tokens.access_token)).id == registered.user.id

        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.ACCESS, registered.tokens.access_token)

    @pytest.mark.asyncio
    async def test_wrong_password_keeps_secrets(self, authority, directory, registration):
        await register(authority, registration)
        before = directory.stored("a@x.com").credentials.copy()

        with pytest.raises(InvalidCredentials):
            await authority.login("a@x.com", "wrong-password")

        assert directory.stored("a@x.com").credentials == before

    @pytest.mark.asyncio
    async def test_overlong_password_is_invalid_credentials(self, authority, registration):
        await register(authority, registration)

        with pytest.raises(InvalidCredentials):
            await authority.login("a@x.com", "p" * 80)

    @pytest.mark.asyncio
    async def test_unknown_email(self, authority):
        with pytest.raises(InvalidCredentials):
            await authority.login("nobody@x.com", "pw123456")

    @pytest.mark.asyncio
    async def test_missing_credentials(self, authority):
        with pytest.raises(ValidationError):
            await authority.login("a@x.com", None)
        with pytest.raises(ValidationError):
            await authority.login(None, "pw123456")


class TestVerify:
    """Test cases for two-phase verification."""

    @pytest.mark.asyncio
    async def test_missing_token(self, authority):
        with pytest.raises(Unauthenticated):
            await authority.verify(TokenKind.ACCESS, None)

    @pytest.mark.asyncio
    async def test_malformed_token_skips_directory(self, authority, directory):
        with pytest.raises(InvalidToken):
            await authority.verify(TokenKind.ACCESS, "garbage")
        assert directory.lookups == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, authority):
        token = tokens.mint_token(str(ObjectId()), tokens.generate_secret(), config.access_token_lifetime())
        with pytest.raises(Unauthenticated):
            await authority.verify(TokenKind.ACCESS, token)

    @pytest.mark.asyncio
    async def test_forged_signature(self, authority, registration):
        result = await register(authority, registration)
        forged = tokens.mint_token(result.user.id, tokens.generate_secret(), config.access_token_lifetime())

        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.ACCESS, forged)

    @pytest.mark.asyncio
    async def test_inspect_returns_tagged_outcomes(self, authority, registration):
        result = await register(authority, registration)

        verified = await authority.inspect(TokenKind.ACCESS, result.tokens.access_token)
        assert isinstance(verified, Verified)
        assert verified.user.email == "a@x.com"

        rejected = await authority.inspect(TokenKind.REFRESH, result.tokens.access_token)
        assert rejected == Rejected(reason=RejectionReason.BAD_SIGNATURE)

    @pytest.mark.asyncio
    async def test_rotation_invalidates_previous_tokens(self, authority, registration):
        result = await register(authority, registration)
        assert await authority.verify(TokenKind.ACCESS, result.tokens.access_token)

        pair = await authority.rotate(result.user)

        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.ACCESS, result.tokens.access_token)
        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.REFRESH, result.tokens.refresh_token)
        assert await authority.verify(TokenKind.ACCESS, pair.access_token)

    @pytest.mark.asyncio
    async def test_racing_rotations_last_writer_wins(self, authority, registration):
        result = await register(authority, registration)
        first_copy = result.user.copy(deep=True)
        second_copy = result.user.copy(deep=True)

        losing = await authority.rotate(first_copy)
        winning = await authority.rotate(second_copy)

        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.ACCESS, losing.access_token)
        assert await authority.verify(TokenKind.ACCESS, winning.access_token)

    @pytest.mark.asyncio
    async def test_admin_gate(self, authority, directory, registration):
        result = await register(authority, registration)

        with pytest.raises(Forbidden):
            await authority.verify_admin(result.tokens.access_token)

        directory.grant_role("a@x.com", UserRole.ADMIN)
        admin = await authority.verify_admin(result.tokens.access_token)
        assert admin.is_admin


class TestRefreshAndLogout:
    """Test cases for refresh and logout."""

    @pytest.mark.asyncio
    async def test_refresh_rotates(self, authority, registration):
        registered = await register(authority, registration)

        refreshed = await authority.refresh(registered.tokens.refresh_token)

        assert await authority.verify(TokenKind.ACCESS, refreshed.tokens.access_token)
        with pytest.raises(SessionExpired):
            await authority.refresh(registered.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(self, authority, directory, registration):
        registered = await register(authority, registration)
        before = directory.stored("a@x.com").credentials.copy()

        with pytest.raises(SessionExpired):
            await authority.refresh(registered.tokens.access_token)

        assert directory.stored("a@x.com").credentials == before

    @pytest.mark.asyncio
    async def test_logout_then_replay_fails(self, authority, registration):
        registered = await register(authority, registration)
        user = await authority.verify(TokenKind.ACCESS, registered.tokens.access_token)

        await authority.logout(user)

        with pytest.raises(SessionExpired):
            await authority.verify(TokenKind.ACCESS, registered.tokens.access_token)
        with pytest.raises(SessionExpired):
            await authority.refresh(registered.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_rotate_for_deleted_user(self, authority, directory, registration):
        registered = await register(authority, registration)
        directory.users.clear()

        with pytest.raises(Unauthenticated):
            await authority.rotate(registered.user)


class TestThrottle:
    """Test cases for the failure throttle in front of the directory."""

    @pytest.mark.asyncio
    async def test_repeated_failures_block_lookups(self, directory, passwords, media_store, registration):
        authority = SessionAuthority(
            directory, passwords, media_store,
            throttle=VerificationThrottle(limit=2, window_seconds=60)
        )
        registered = await register(authority, registration)
        probe = tokens.mint_token(str(ObjectId()), tokens.generate_secret(), config.access_token_lifetime())

        for _ in range(2):
            with pytest.raises(Unauthenticated):
                await authority.verify(TokenKind.ACCESS, probe, client="10.0.0.1")

        lookups = len(directory.lookups)
        with pytest.raises(RateLimited) as exc_info:
            await authority.verify(TokenKind.ACCESS, registered.tokens.access_token, client="10.0.0.1")
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after > 0
        assert len(directory.lookups) == lookups

        # Other clients are unaffected
        user = await authority.verify(TokenKind.ACCESS, registered.tokens.access_token, client="10.0.0.2")
        assert user.email == "a@x.com"

    @pytest.mark.asyncio
    async def test_missing_tokens_are_not_counted(self, authority, throttle):
        for _ in range(5):
            with pytest.raises(Unauthenticated):
                await authority.verify(TokenKind.ACCESS, None, client="10.0.0.1")
        assert throttle.failures("10.0.0.1") == 0
