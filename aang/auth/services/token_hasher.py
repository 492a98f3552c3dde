"""
Token hashing and verification code generation.
"""

import hashlib
import secrets


class TokenHasher:
    """
    Handles token hashing and one-time code generation.
    """

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Create SHA-256 hash of a token.
        Session entries store this instead of the raw access token.

        Args:
            token: Plain token string

        Returns:
            Hex-encoded SHA-256 hash
        """
        return hashlib.sha256(token.encode()).hexdigest()

    @staticmethod
    def generate_numeric_code(length: int = 6) -> str:
        """
        Generate a random numeric code for emailed verification.

        Leading zeros are kept, so the result always has ``length`` digits.
        """
        return "".join(secrets.choice("0123456789") for _ in range(length))
