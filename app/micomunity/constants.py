"""
Central constants for the MiComunity application.
"""
from __future__ import annotations

# User roles
ROLE_PRESIDENT = "PRESIDENT"
ROLE_RESIDENT = "RESIDENT"
ROLE_ADMIN = "ADMIN"
ROLES = frozenset({ROLE_PRESIDENT, ROLE_RESIDENT, ROLE_ADMIN})

# Spanish ID card: 8 digits + control letter
DNI_PATTERN = r"^[0-9]{8}[A-Z]$"
POSTAL_CODE_PATTERN = r"^[0-9]{5}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
MIN_PASSWORD_LENGTH = 6

# Display name used for anonymous complaints and hidden reservation owners
ANONYMOUS_NAME = "Anonymous"
RESERVED_NAME = "Reserved"
SYSTEM_NAME = "System"
DEFAULT_CHAT_NAME = "User"

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
