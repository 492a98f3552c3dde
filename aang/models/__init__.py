"""
Beanie document models.

Passed to ``MongoDB.connect`` so collections and indexes exist at startup.
"""

from aang.models.identity import IdentityDocument, AuthMethod, SessionEntry, AuthPinBlock
from aang.models.refresh_credential import RefreshCredentialDocument

ALL_DOCUMENT_MODELS = [IdentityDocument, RefreshCredentialDocument]

__all__ = [
    "IdentityDocument",
    "AuthMethod",
    "SessionEntry",
    "AuthPinBlock",
    "RefreshCredentialDocument",
    "ALL_DOCUMENT_MODELS",
]
