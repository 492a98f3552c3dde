"""
Auth System Services

Contains service classes for authentication operations.
"""

from aang.auth.services.token_hasher import TokenHasher
from aang.auth.services.device_detector import DeviceDetector
from aang.auth.services.identity_store import IdentityStore
from aang.auth.services.refresh_store import RefreshStore
from aang.auth.services.session_tracker import SessionTracker
from aang.auth.services.auth_pin import AuthPinService
from aang.auth.services.pre_check import RequestGate
from aang.auth.services.token_issuer import TokenIssuer
from aang.auth.services.mail_sender import MailSender, MailConfig, MailDeliveryError

__all__ = [
    "TokenHasher",
    "DeviceDetector",
    "IdentityStore",
    "RefreshStore",
    "SessionTracker",
    "AuthPinService",
    "RequestGate",
    "TokenIssuer",
    "MailSender",
    "MailConfig",
    "MailDeliveryError",
]
