"""Respondent email handling.

Respondents take assessments without an account; their email is the only
identity, used to key autosaved snapshots. This module normalizes and
checks emails and masks them for logging.
"""

import re
from typing import Optional

# Pragmatic shape check: something@domain.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

EMAIL_REQUIRED_MESSAGE = "Email is required to save your progress"
EMAIL_INVALID_MESSAGE = "Please enter a valid email address"


class RespondentEmail:
    """Helpers for respondent email addresses.

    Usage example:
        email = RespondentEmail.normalize(raw)
        if RespondentEmail.is_plausible(email):
            logger.info(f"Resuming for {RespondentEmail.mask(email)}")
    """

    @staticmethod
    def normalize(email: Optional[str]) -> str:
        """
        Strip surrounding whitespace.

        Case is preserved because snapshots are stored under the email
        exactly as the respondent typed it.

        Example:
            >>> RespondentEmail.normalize("  ana@acme.io ")
            'ana@acme.io'
        """
        return (email or "").strip()

    @staticmethod
    def is_plausible(email: Optional[str]) -> bool:
        """
        Check whether an email is syntactically plausible.

        Example:
            >>> RespondentEmail.is_plausible("ana@acme.io")
            True
            >>> RespondentEmail.is_plausible("ana@acme")
            False
        """
        return bool(EMAIL_PATTERN.match(RespondentEmail.normalize(email)))

    @staticmethod
    def validation_error(email: Optional[str]) -> Optional[str]:
        """
        Return the user-facing error for an email, or None when valid.
        """
        normalized = RespondentEmail.normalize(email)
        if not normalized:
            return EMAIL_REQUIRED_MESSAGE
        if not EMAIL_PATTERN.match(normalized):
            return EMAIL_INVALID_MESSAGE
        return None

    @staticmethod
    def mask(email: Optional[str]) -> str:
        """
        Mask an email for safe logging (first character of the local part).

        Example:
            >>> RespondentEmail.mask("ana@acme.io")
            'a***@acme.io'
        """
        normalized = RespondentEmail.normalize(email)
        if "@" not in normalized:
            return "***"
        local, _, domain = normalized.partition("@")
        return f"{local[:1]}***@{domain}"
