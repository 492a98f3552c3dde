"""
Password and PIN format validation.

Example:
    from common.utils import validate_password

    is_valid, errors = validate_password("weakpass")
    if not is_valid:
        print("Password errors:", errors)
"""

import re
from typing import List, Tuple

SPECIAL_CHARS = r"!@#$%^&*(),.?\":{}|<>"


def validate_password(
    password: str,
    min_length: int = 8,
    max_length: int = 128,
    require_uppercase: bool = True,
    require_lowercase: bool = True,
    require_digit: bool = True,
    require_special: bool = True,
    special_chars: str = SPECIAL_CHARS,
) -> Tuple[bool, List[str]]:
    """
    Validate password strength.

    Args:
        password: The password to validate
        min_length: Minimum password length
        max_length: Maximum password length
        require_uppercase: Require at least one uppercase letter
        require_lowercase: Require at least one lowercase letter
        require_digit: Require at least one digit
        require_special: Require at least one special character
        special_chars: String of accepted special characters

    Returns:
        Tuple of (is_valid: bool, errors: List[str])

    Examples:
        >>> validate_password("weak")[0]
        False
        >>> validate_password("StrongP@ss123")
        (True, [])
    """
    errors: List[str] = []

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters")

    if len(password) > max_length:
        errors.append(f"Password must be no more than {max_length} characters")

    if require_uppercase and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")

    if require_lowercase and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")

    if require_digit and not re.search(r"\d", password):
        errors.append("Password must contain at least one digit")

    if require_special:
        escaped_chars = re.escape(special_chars)
        if not re.search(f"[{escaped_chars}]", password):
            errors.append("Password must contain at least one special character")

    return len(errors) == 0, errors


def is_valid_pin(pin: str, min_digits: int = 4, max_digits: int = 6) -> bool:
    """True if ``pin`` is between min_digits and max_digits ASCII digits."""
    if not isinstance(pin, str):
        return False
    return re.fullmatch(rf"[0-9]{{{min_digits},{max_digits}}}", pin) is not None
