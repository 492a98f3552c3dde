"""Tests for AuthPinService lockout, operation tokens and removal."""

import copy
import pytest
from datetime import datetime, timedelta, timezone
from bson import ObjectId

from common.auth import hash_secret, verify_secret
from common.utils import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    LockedException,
    NotFoundException,
    UnauthorizedException,
)
from aang.auth.services.auth_pin import AuthPinService
from aang.auth.types import AuthMethodType, AuthPinPolicy


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


class FakeIdentityStore:
    """In-memory stand-in for the AuthPin subset of IdentityStore."""

    def __init__(self, user):
        self.user = user

    def load(self):
        return copy.deepcopy(self.user)

    async def set_pin(self, user_id, pin_hash, now):
        if "authPin" in self.user:
            return False
        self.user["authPin"] = {"pinHash": pin_hash, "isEnabled": True, "failedAttempts": 0, "lockedUntil": None}
        return True

    async def add_auth_method(self, user_id, method_type, provider_id=None, verified=False, extra_set=None):
        if any(m["type"] == method_type.value for m in self.user["authMethods"]):
            return False
        self.user["authMethods"].append({"type": method_type.value, "verified": verified})
        return True

    async def record_pin_failure(self, user_id):
        if "authPin" not in self.user:
            return None
        self.user["authPin"]["failedAttempts"] += 1
        return self.user["authPin"]["failedAttempts"]

    async def lock_pin(self, user_id, locked_until):
        self.user["authPin"]["lockedUntil"] = locked_until

    async def clear_expired_lock(self, user_id, locked_until):
        if self.user["authPin"]["lockedUntil"] != locked_until:
            return False
        self.user["authPin"].update(failedAttempts=0, lockedUntil=None)
        return True

    async def record_pin_success(self, user_id, now):
        self.user["authPin"].update(failedAttempts=0, lockedUntil=None, lastUsed=now)

    async def update_pin_hash(self, user_id, pin_hash, now):
        self.user["authPin"]["pinHash"] = pin_hash
        return True

    async def set_pin_enabled(self, user_id, enabled):
        self.user["authPin"]["isEnabled"] = enabled
        return True

    async def remove_pin(self, user_id):
        methods = self.user["authMethods"]
        if [m["type"] for m in methods] == [AuthMethodType.AUTH_PIN.value]:
            return None
        self.user.pop("authPin", None)
        self.user["authMethods"] = [m for m in methods if m["type"] != AuthMethodType.AUTH_PIN.value]
        return self.load()

    async def reset_pin(self, email, code, pin_hash, now):
        expiry = self.user.get("authPinResetExpiry")
        if self.user["email"] != email or self.user.get("authPinResetToken") != code or not expiry or expiry <= now:
            return None
        self.user.pop("authPinResetToken")
        self.user.pop("authPinResetExpiry")
        self.user["authPin"] = {"pinHash": pin_hash, "isEnabled": True, "failedAttempts": 0, "lockedUntil": None}
        for method in self.user["authMethods"]:
            if method["type"] == AuthMethodType.AUTH_PIN.value:
                method["verified"] = True
        return self.load()

    async def fall_back_preferred_method(self, identity, removed):
        if identity.get("preferredAuthMethod") != removed.value:
            return None
        remaining = identity.get("authMethods") or []
        fallback = AuthMethodType(remaining[0]["type"]) if remaining else AuthMethodType.CREDENTIALS
        self.user["preferredAuthMethod"] = fallback.value
        return fallback


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def pin_user(sample_user_doc):
    user = copy.deepcopy(sample_user_doc)
    user["passwordHash"] = hash_secret("StrongP@ss123", rounds=4)
    user["authMethods"].append({"type": "AuthPin", "verified": True})
    user["authPin"] = {
        "pinHash": hash_secret("1234", rounds=4),
        "isEnabled": True,
        "failedAttempts": 0,
        "lockedUntil": None,
    }
    return user


@pytest.fixture
def fake_store(pin_user):
    return FakeIdentityStore(pin_user)


@pytest.fixture
def service(fake_store, token_codec, clock):
    return AuthPinService(fake_store, token_codec, AuthPinPolicy(), clock=clock)


# ─────────────────────────────────────────────────────────────────
# Lockout
# ─────────────────────────────────────────────────────────────────


class TestLockout:
    @pytest.mark.asyncio
    async def test_wrong_pin_reports_attempts_remaining(self, service, fake_store):
        with pytest.raises(BadRequestException) as exc_info:
            await service.verify(fake_store.load(), "0000")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"attemptsRemaining": 4}

    @pytest.mark.asyncio
    async def test_fifth_failure_locks_then_unlocks_after_window(self, service, fake_store, clock):
        for _ in range(4):
            with pytest.raises(BadRequestException):
                await service.verify(fake_store.load(), "0000")

        with pytest.raises(LockedException) as exc_info:
            await service.verify(fake_store.load(), "0000")
        assert exc_info.value.status_code == 423
        assert fake_store.user["authPin"]["lockedUntil"] == clock.now + timedelta(minutes=15)

        # Correct PIN is still refused while locked
        clock.advance(minutes=14)
        with pytest.raises(LockedException) as exc_info:
            await service.verify(fake_store.load(), "1234")
        assert exc_info.value.details == {"remainingMinutes": 1}

        clock.advance(minutes=2)
        await service.verify(fake_store.load(), "1234")

        assert fake_store.user["authPin"]["failedAttempts"] == 0
        assert fake_store.user["authPin"]["lockedUntil"] is None

    @pytest.mark.asyncio
    async def test_elapsed_lock_starts_a_fresh_count(self, service, fake_store, clock):
        fake_store.user["authPin"].update(failedAttempts=5, lockedUntil=clock.now - timedelta(seconds=1))

        with pytest.raises(BadRequestException) as exc_info:
            await service.verify(fake_store.load(), "0000")

        assert exc_info.value.details == {"attemptsRemaining": 4}

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, service, fake_store):
        fake_store.user["authPin"]["failedAttempts"] = 3

        await service.verify(fake_store.load(), "1234")

        assert fake_store.user["authPin"]["failedAttempts"] == 0

    @pytest.mark.asyncio
    async def test_disabled_pin_rejected_for_verification(self, service, fake_store):
        fake_store.user["authPin"]["isEnabled"] = False

        with pytest.raises(ForbiddenException):
            await service.verify(fake_store.load(), "1234")

    @pytest.mark.asyncio
    async def test_no_pin_is_not_found(self, service, fake_store):
        fake_store.user.pop("authPin")

        with pytest.raises(NotFoundException):
            await service.verify(fake_store.load(), "1234")


# ─────────────────────────────────────────────────────────────────
# Operation tokens
# ─────────────────────────────────────────────────────────────────


class TestOperationTokens:
    @pytest.mark.asyncio
    async def test_token_is_bound_to_user_and_operation(self, service, fake_store):
        user = fake_store.load()
        result = await service.verify_for_operation(user, "1234", "withdraw")

        assert result["verified"] is True
        assert result["expiresIn"] == 600

        claims = service.assert_operation_verified(result["operationToken"], str(user["_id"]), "withdraw")
        assert claims["operation"] == "withdraw"

        with pytest.raises(ForbiddenException):
            service.assert_operation_verified(result["operationToken"], str(user["_id"]), "delete-account")

        with pytest.raises(ForbiddenException):
            service.assert_operation_verified(result["operationToken"], str(ObjectId()), "withdraw")

    def test_missing_token_is_unauthorized(self, service, sample_user_id):
        with pytest.raises(UnauthorizedException):
            service.assert_operation_verified("", sample_user_id, "withdraw")


# ─────────────────────────────────────────────────────────────────
# Set / update / toggle / remove
# ─────────────────────────────────────────────────────────────────


class TestSetAndUpdate:
    @pytest.mark.asyncio
    async def test_set_pin_adds_auth_method(self, token_codec, clock, sample_user_doc):
        store = FakeIdentityStore(copy.deepcopy(sample_user_doc))
        service = AuthPinService(store, token_codec, AuthPinPolicy(), clock=clock)

        result = await service.set_pin(store.load(), "2468", "2468")

        assert result == {"isEnabled": True}
        assert verify_secret("2468", store.user["authPin"]["pinHash"])
        assert "AuthPin" in [m["type"] for m in store.user["authMethods"]]

    @pytest.mark.asyncio
    async def test_set_pin_rejects_existing(self, service, fake_store):
        with pytest.raises(ConflictException):
            await service.set_pin(fake_store.load(), "2468", "2468")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pin,confirm,code", [
        ("12", "12", "INVALID_PIN_FORMAT"),
        ("12ab", "12ab", "INVALID_PIN_FORMAT"),
        ("2468", "2469", "PIN_MISMATCH"),
    ])
    async def test_new_pin_format_rules(self, service, fake_store, pin, confirm, code):
        with pytest.raises(BadRequestException) as exc_info:
            await service.update_pin(fake_store.load(), "1234", pin, confirm)

        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_update_rejects_same_pin(self, service, fake_store):
        with pytest.raises(BadRequestException) as exc_info:
            await service.update_pin(fake_store.load(), "1234", "1234", "1234")

        assert exc_info.value.code == "SAME_PIN"

    @pytest.mark.asyncio
    async def test_update_wrong_current_pin_counts_as_failure(self, service, fake_store):
        with pytest.raises(BadRequestException):
            await service.update_pin(fake_store.load(), "9999", "2468", "2468")

        assert fake_store.user["authPin"]["failedAttempts"] == 1


class TestToggleAndRemove:
    @pytest.mark.asyncio
    async def test_disable_needs_no_pin_enable_does(self, service, fake_store):
        assert await service.toggle(fake_store.load(), False) == {"isEnabled": False}

        with pytest.raises(BadRequestException):
            await service.toggle(fake_store.load(), True)

        assert await service.toggle(fake_store.load(), True, "1234") == {"isEnabled": True}

    @pytest.mark.asyncio
    async def test_remove_with_password_falls_back_preference(self, service, fake_store):
        fake_store.user["preferredAuthMethod"] = "AuthPin"

        updated = await service.remove(fake_store.load(), password="StrongP@ss123")

        assert "authPin" not in updated
        assert updated["preferredAuthMethod"] == "Credentials"

    @pytest.mark.asyncio
    async def test_remove_with_wrong_password(self, service, fake_store):
        with pytest.raises(UnauthorizedException):
            await service.remove(fake_store.load(), password="nope")

    @pytest.mark.asyncio
    async def test_remove_requires_a_credential(self, service, fake_store):
        with pytest.raises(BadRequestException) as exc_info:
            await service.remove(fake_store.load())

        assert exc_info.value.code == "CREDENTIAL_REQUIRED"

    @pytest.mark.asyncio
    async def test_cannot_remove_last_auth_method(self, service, fake_store):
        fake_store.user["authMethods"] = [{"type": "AuthPin", "verified": True}]

        with pytest.raises(BadRequestException) as exc_info:
            await service.remove(fake_store.load(), pin="1234")

        assert exc_info.value.message == "Cannot remove the only authentication method"
        assert "authPin" in fake_store.user


class TestReset:
    @pytest.fixture
    def locked_store(self, fake_store, clock):
        fake_store.user["authMethods"][-1]["verified"] = False
        fake_store.user["authPin"].update(failedAttempts=5, lockedUntil=clock.now + timedelta(minutes=10))
        fake_store.user["authPinResetToken"] = "482913"
        fake_store.user["authPinResetExpiry"] = clock.now + timedelta(minutes=10)
        return fake_store

    @pytest.mark.asyncio
    async def test_reset_unlocks_and_clears_code(self, service, locked_store):
        await service.reset_pin("driver@example.com", "482913", "2468", "2468")

        pin = locked_store.user["authPin"]
        assert pin["failedAttempts"] == 0
        assert pin["lockedUntil"] is None
        assert verify_secret("2468", pin["pinHash"])
        assert "authPinResetToken" not in locked_store.user
        assert "authPinResetExpiry" not in locked_store.user
        pin_method = next(m for m in locked_store.user["authMethods"] if m["type"] == "AuthPin")
        assert pin_method["verified"] is True

        await service.verify(locked_store.load(), "2468")

    @pytest.mark.asyncio
    async def test_wrong_code(self, service, locked_store):
        with pytest.raises(BadRequestException) as exc_info:
            await service.reset_pin("driver@example.com", "000000", "2468", "2468")

        assert exc_info.value.code == "INVALID_TOKEN"
        assert locked_store.user["authPin"]["failedAttempts"] == 5

    @pytest.mark.asyncio
    async def test_expired_code(self, service, locked_store, clock):
        clock.advance(minutes=11)

        with pytest.raises(BadRequestException) as exc_info:
            await service.reset_pin("driver@example.com", "482913", "2468", "2468")

        assert exc_info.value.code == "INVALID_TOKEN"
        assert "authPinResetToken" in locked_store.user

    @pytest.mark.asyncio
    async def test_confirm_mismatch_checked_before_code(self, service, locked_store):
        with pytest.raises(BadRequestException) as exc_info:
            await service.reset_pin("driver@example.com", "482913", "2468", "2469")

        assert exc_info.value.code == "PIN_MISMATCH"
        assert "authPinResetToken" in locked_store.user
