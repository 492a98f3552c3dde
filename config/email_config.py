"""
Mail delivery constants.

These are fixed values that don't change per environment.
Environment-specific values (API keys, SMTP host) come from settings.
"""

# Resend API endpoint
RESEND_API_URL = "https://api.resend.com/emails"

# Default values (can be overridden by env vars)
EMAIL_DEFAULTS = {
    "mode": "console",
    "from_email": "noreply@aanglogistics.com",
    "from_name": "AAng Logistics",
    "team_name": "The AAng Logistics Team",
}

# Subject lines per verification code type
EMAIL_SUBJECTS = {
    "verification": "Email Verification Token",
    "password_reset": "Password Reset Token",
    "pin_reset": "PIN Reset/Update Token",
}
