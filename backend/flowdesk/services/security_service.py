# /flowdesk/services/security_service.py

import re
import secrets

# This service provides the small security helpers the flow relies on:
# constant-time secret comparison and normalisation of the phone numbers
# that identify flow users.

FLOW_TOKEN_PREFIX = "flow_"


class SecurityService:
    @staticmethod
    def secrets_match(provided: str | None, expected: str | None) -> bool:
        if not provided or not expected:
            return False
        return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


class EnhancedSecurityService(SecurityService):
    @staticmethod
    def sanitize_phone_number(phone: str, default_country_code: str = "90") -> str:
        """
        Sanitizes a phone number.
        - Returns a normalized E.164-style string (e.g., +905551234567) if valid.
        - A national number with a leading trunk "0" gets `default_country_code`.
        - Returns an empty string for invalid or empty inputs (instead of raising).
        """
        if not phone or not isinstance(phone, str):
            return ""

        # Remove all characters except digits and leading +
        clean_phone = re.sub(r"[^\d+]", "", phone.strip())

        if not clean_phone.startswith("+"):
            if clean_phone.startswith("0"):
                clean_phone = "+" + default_country_code + clean_phone[1:]
            else:
                clean_phone = "+" + clean_phone.lstrip("+")

        # Require 10–15 digits after +
        if not re.match(r"^\+\d{10,15}$", clean_phone):
            return ""

        return clean_phone

    @staticmethod
    def phone_from_flow_token(flow_token: str, default_country_code: str = "90") -> str:
        if not flow_token or not isinstance(flow_token, str):
            return ""
        if flow_token.startswith(FLOW_TOKEN_PREFIX):
            flow_token = flow_token[len(FLOW_TOKEN_PREFIX):]
        return EnhancedSecurityService.sanitize_phone_number(flow_token, default_country_code)
