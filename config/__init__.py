"""
Configuration module - fixed constants shared by services.
"""

from config.email_config import RESEND_API_URL, EMAIL_DEFAULTS, EMAIL_SUBJECTS

__all__ = ["RESEND_API_URL", "EMAIL_DEFAULTS", "EMAIL_SUBJECTS"]
