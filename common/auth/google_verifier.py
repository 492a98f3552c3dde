"""
Google ID token verification.

The client sends the ``id_token`` obtained from Google Sign-In. The token
signature and audience are checked by google-auth against the configured
client id.

Example:
    verifier = GoogleIdentityVerifier(client_id="1234.apps.googleusercontent.com")
    profile = await verifier.verify(id_token_from_client)
    print(profile["email"], profile["providerId"])
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = {"https://accounts.google.com", "accounts.google.com"}


class SocialTokenError(Exception):
    """The social provider token could not be verified."""


class GoogleIdentityVerifier:
    """Turns a Google ID token into a social profile."""

    def __init__(self, client_id: Optional[str], clock_skew_seconds: int = 300):
        self.client_id = client_id
        self.clock_skew_seconds = clock_skew_seconds

    async def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify a Google ID token.

        Fetching Google's signing certificates is a blocking HTTP call, so it
        runs in the default executor.

        Returns:
            {email, name, picture, providerId}

        Raises:
            SocialTokenError: If the token is invalid or the verifier is not configured
        """
        if not self.client_id:
            raise SocialTokenError("GOOGLE_CLIENT_ID is not configured")

        if not token:
            raise SocialTokenError("Google token is required")

        def _verify():
            return id_token.verify_oauth2_token(
                token,
                google_requests.Request(),
                self.client_id,
                clock_skew_in_seconds=self.clock_skew_seconds,
            )

        loop = asyncio.get_running_loop()
        try:
            claims = await loop.run_in_executor(None, _verify)
        except ValueError as e:
            logger.warning(f"Google token rejected: {e}")
            raise SocialTokenError("Invalid Google token")

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise SocialTokenError("Invalid token issuer")

        email = claims.get("email")
        if not email:
            raise SocialTokenError("Google account has no email")

        return {
            "email": email.lower(),
            "name": claims.get("name"),
            "picture": claims.get("picture"),
            "providerId": claims["sub"],
        }
