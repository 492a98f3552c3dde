"""Tests for GoogleIdentityVerifier."""

import threading
import pytest
from unittest.mock import patch

from common.auth import GoogleIdentityVerifier, SocialTokenError


CLAIMS = {
    "iss": "https://accounts.google.com",
    "sub": "google-sub-1",
    "email": "Ada@Example.com",
    "name": "Ada Obi",
    "picture": "https://example.com/a.png",
}


@pytest.fixture
def verifier():
    return GoogleIdentityVerifier(client_id="1234.apps.googleusercontent.com")


@pytest.mark.asyncio
async def test_verification_runs_off_the_event_loop_thread(verifier):
    loop_thread = threading.get_ident()
    seen = {}

    def fake_verify(token, request, audience, clock_skew_in_seconds):
        seen["thread"] = threading.get_ident()
        seen["audience"] = audience
        return CLAIMS

    with patch("common.auth.google_verifier.id_token.verify_oauth2_token", side_effect=fake_verify):
        profile = await verifier.verify("id-token")

    assert seen["thread"] != loop_thread
    assert seen["audience"] == "1234.apps.googleusercontent.com"
    assert profile == {
        "email": "ada@example.com",
        "name": "Ada Obi",
        "picture": "https://example.com/a.png",
        "providerId": "google-sub-1",
    }


@pytest.mark.asyncio
async def test_rejected_token(verifier):
    with patch("common.auth.google_verifier.id_token.verify_oauth2_token", side_effect=ValueError("bad audience")):
        with pytest.raises(SocialTokenError):
            await verifier.verify("id-token")


@pytest.mark.asyncio
async def test_wrong_issuer(verifier):
    with patch("common.auth.google_verifier.id_token.verify_oauth2_token",
               return_value={**CLAIMS, "iss": "https://evil.example.com"}):
        with pytest.raises(SocialTokenError):
            await verifier.verify("id-token")


@pytest.mark.asyncio
async def test_unconfigured_client_id():
    with pytest.raises(SocialTokenError):
        await GoogleIdentityVerifier(client_id=None).verify("id-token")
