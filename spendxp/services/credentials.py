"""
Credential service.

PINs are stored as SHA-256 hex digests, matching the records the
application has always written. Comparison is constant-time.
"""

import hashlib
import hmac
from typing import Optional


def hash_pin(pin: str) -> str:
    return hashlib.sha256(pin.encode("utf-8")).hexdigest()


def verify_pin(pin: Optional[str], pin_hash: Optional[str]) -> bool:
    """False when either side is missing."""
    if not pin or not pin_hash:
        return False
    return hmac.compare_digest(hash_pin(pin), pin_hash)


class AuthenticationError(Exception):
    """A PIN was required and missing, or did not match."""
    pass


def check_login_pin(pin: Optional[str], pin_hash: Optional[str], two_factor_enabled: bool) -> None:
    """
    Enforce the login PIN.

    A PIN is only demanded when two-factor is on and a PIN has been set.

    Raises:
        AuthenticationError: If the PIN is missing or wrong
    """
    if not two_factor_enabled or not pin_hash:
        return
    if not pin:
        raise AuthenticationError("PIN required")
    if not verify_pin(pin, pin_hash):
        raise AuthenticationError("Incorrect PIN")
