"""Scoped HMAC tokens shared between services"""

import hashlib
import hmac

CONTACT_UNLOCK_SCOPE = "contact_unlock"


def derive_scoped_token(scope: str, subject: str, secret: str) -> str:
    """Derive the token that authorizes `scope` for one `subject`"""
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{scope}:{subject}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"{scope}_{digest[:24].upper()}"


def verify_scoped_token(scope: str, subject: str, token: str | None, secret: str) -> bool:
    """Constant-time comparison against the derived token"""
    if not token:
        return False
    expected = derive_scoped_token(scope, subject, secret)
    return hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8"))
