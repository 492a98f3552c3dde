"""Tests for TokenIssuer: issuance, refresh rotation policy and failure mapping."""

import copy
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from common.auth import TokenCodec, TokenCodecConfig
from common.utils import BadRequestException, ForbiddenException, NotFoundException, UnauthorizedException
from aang.auth.services.token_issuer import TokenIssuer
from aang.auth.types import AuthMethodType, RotationPolicy


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


class FakeRefreshStore:
    """One credential per user, keyed by user id."""

    def __init__(self):
        self.rows = {}

    async def upsert_by_user(self, user_id, token, expires_at, auth_method, device=None, ip=None):
        self.rows[user_id] = {"token": token, "expiresAt": expires_at, "authMethod": auth_method}

    async def find_by_user_and_token(self, user_id, token):
        row = self.rows.get(user_id)
        return copy.deepcopy(row) if row and row["token"] == token else None

    async def delete_by_user_and_token(self, user_id, token):
        if await self.find_by_user_and_token(user_id, token):
            del self.rows[user_id]
            return True
        return False

    async def touch(self, user_id, token):
        return await self.find_by_user_and_token(user_id, token) is not None

    async def rotate(self, user_id, old_token, new_token, expires_at):
        if not await self.find_by_user_and_token(user_id, old_token):
            return False
        self.rows[user_id].update(token=new_token, expiresAt=expires_at)
        return True


@pytest.fixture
def refresh_store():
    return FakeRefreshStore()


@pytest.fixture
def identity_store(sample_user_doc):
    store = AsyncMock()
    store.find_by_id.return_value = sample_user_doc
    return store


@pytest.fixture
def session_tracker():
    tracker = AsyncMock()
    tracker.device_label = MagicMock(return_value="Chrome on macOS")
    return tracker


@pytest.fixture
def issuer(token_codec, refresh_store, identity_store, session_tracker):
    return TokenIssuer(token_codec, refresh_store, identity_store, session_tracker, RotationPolicy(threshold_hours=24))


def _refresh_token(token_codec, user_id, lifetime):
    return token_codec.create_refresh_token(user_id, "Credentials", expires_delta=lifetime)


async def _store(refresh_store, token_codec, user_id, token):
    claims = token_codec.verify_refresh_token(token, verify_exp=False)
    await refresh_store.upsert_by_user(user_id, token, token_codec.expires_at(claims), "Credentials")


# ─────────────────────────────────────────────────────────────────
# issue
# ─────────────────────────────────────────────────────────────────


class TestIssue:
    @pytest.mark.asyncio
    async def test_issues_pair_and_records_bookkeeping(
        self, issuer, token_codec, refresh_store, identity_store, session_tracker, sample_user_doc,
    ):
        tokens = await issuer.issue(sample_user_doc, AuthMethodType.CREDENTIALS, "10.0.0.1", "ua")
        user_id = str(sample_user_doc["_id"])

        assert token_codec.verify_access_token(tokens.access_token)["id"] == user_id
        assert refresh_store.rows[user_id]["token"] == tokens.refresh_token
        session_tracker.add_session.assert_awaited_once_with(user_id, tokens.access_token, "10.0.0.1", "ua")
        identity_store.record_login.assert_awaited_once_with(user_id, AuthMethodType.CREDENTIALS)

    @pytest.mark.asyncio
    async def test_second_login_invalidates_first_refresh_token(self, issuer, sample_user_doc):
        first = await issuer.issue(sample_user_doc, AuthMethodType.CREDENTIALS)
        await issuer.issue(sample_user_doc, AuthMethodType.CREDENTIALS)

        with pytest.raises(ForbiddenException):
            await issuer.refresh(None, first.refresh_token)


# ─────────────────────────────────────────────────────────────────
# refresh
# ─────────────────────────────────────────────────────────────────


class TestRefreshRotation:
    @pytest.mark.asyncio
    async def test_far_from_expiry_keeps_refresh_token(self, issuer, token_codec, refresh_store, sample_user_id):
        token = _refresh_token(token_codec, sample_user_id, timedelta(days=20))
        await _store(refresh_store, token_codec, sample_user_id, token)

        result = await issuer.refresh(None, token)

        assert result.rotated is False
        assert result.refresh_token is None
        assert refresh_store.rows[sample_user_id]["token"] == token
        assert token_codec.verify_access_token(result.access_token)["id"] == sample_user_id

    @pytest.mark.asyncio
    async def test_near_expiry_rotates_and_revokes_old(self, issuer, token_codec, refresh_store, sample_user_id):
        token = _refresh_token(token_codec, sample_user_id, timedelta(hours=10))
        await _store(refresh_store, token_codec, sample_user_id, token)

        result = await issuer.refresh(None, token)

        assert result.rotated is True
        assert result.refresh_token != token
        assert refresh_store.rows[sample_user_id]["token"] == result.refresh_token

        with pytest.raises(ForbiddenException):
            await issuer.refresh(None, token)

    @pytest.mark.asyncio
    async def test_touches_old_session_of_same_owner(
        self, issuer, token_codec, refresh_store, session_tracker, sample_user_id,
    ):
        token = _refresh_token(token_codec, sample_user_id, timedelta(days=20))
        await _store(refresh_store, token_codec, sample_user_id, token)
        stale = token_codec.create_access_token(sample_user_id, "Driver", "d@x.co", expires_delta=timedelta(seconds=-1))

        await issuer.refresh(f"Bearer {stale}", token)

        session_tracker.touch.assert_awaited_once_with(sample_user_id, stale)
        session_tracker.add_session.assert_awaited_once()


class TestRefreshFailures:
    @pytest.mark.asyncio
    async def test_missing_token(self, issuer):
        with pytest.raises(BadRequestException) as exc_info:
            await issuer.refresh(None, None)

        assert exc_info.value.code == "REFRESH_TOKEN_REQUIRED"

    @pytest.mark.asyncio
    async def test_malformed_token(self, issuer):
        with pytest.raises(BadRequestException) as exc_info:
            await issuer.refresh(None, "garbage")

        assert exc_info.value.code == "MALFORMED_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_wrong_signature(self, issuer, sample_user_id):
        forger = TokenCodec(TokenCodecConfig(access_secret="a", refresh_secret="forged", operation_secret="o"))
        token = forger.create_refresh_token(sample_user_id, "Credentials")

        with pytest.raises(UnauthorizedException) as exc_info:
            await issuer.refresh(None, token)

        assert exc_info.value.code == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_expired_token_deletes_credential_idempotently(
        self, issuer, token_codec, refresh_store, sample_user_id,
    ):
        token = _refresh_token(token_codec, sample_user_id, timedelta(seconds=-5))
        await _store(refresh_store, token_codec, sample_user_id, token)

        for _ in range(2):
            with pytest.raises(UnauthorizedException) as exc_info:
                await issuer.refresh(None, token)
            assert exc_info.value.code == "REFRESH_EXPIRED"

        assert sample_user_id not in refresh_store.rows

    @pytest.mark.asyncio
    async def test_unknown_credential_is_revoked(self, issuer, token_codec, sample_user_id):
        token = _refresh_token(token_codec, sample_user_id, timedelta(days=20))

        with pytest.raises(ForbiddenException) as exc_info:
            await issuer.refresh(None, token)

        assert exc_info.value.code == "REFRESH_REVOKED"

    @pytest.mark.asyncio
    async def test_stored_expiry_in_the_past_is_revoked(self, issuer, token_codec, refresh_store, sample_user_id):
        token = _refresh_token(token_codec, sample_user_id, timedelta(days=20))
        await _store(refresh_store, token_codec, sample_user_id, token)
        refresh_store.rows[sample_user_id]["expiresAt"] = datetime.now(timezone.utc) - timedelta(minutes=1)

        with pytest.raises(ForbiddenException):
            await issuer.refresh(None, token)

        assert sample_user_id not in refresh_store.rows

    @pytest.mark.asyncio
    async def test_deleted_user(self, issuer, token_codec, refresh_store, identity_store, sample_user_id):
        token = _refresh_token(token_codec, sample_user_id, timedelta(days=20))
        await _store(refresh_store, token_codec, sample_user_id, token)
        identity_store.find_by_id.return_value = None

        with pytest.raises(NotFoundException):
            await issuer.refresh(None, token)

    @pytest.mark.asyncio
    async def test_suspended_user(self, issuer, token_codec, refresh_store, identity_store, sample_user_doc):
        user_id = str(sample_user_doc["_id"])
        token = _refresh_token(token_codec, user_id, timedelta(days=20))
        await _store(refresh_store, token_codec, user_id, token)
        identity_store.find_by_id.return_value = {**sample_user_doc, "status": "suspended"}

        with pytest.raises(ForbiddenException) as exc_info:
            await issuer.refresh(None, token)

        assert exc_info.value.code == "ACCOUNT_NOT_ACTIVE"
