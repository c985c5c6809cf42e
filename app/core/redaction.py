"""
Redaction helpers for carrier diagnostics.

Secrets are partially shown ("abcd...wxyz"), never fully hidden, so two log
lines can still be told apart when debugging a token mix-up.
"""
import re
from typing import Any, Dict, Mapping, Optional

SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie", "x-api-key"}
SENSITIVE_KEYS = {"password", "token", "access_token", "authorization", "secret"}

_BEARER_PATTERN = re.compile(r"(Bearer\s+)([A-Za-z0-9\-_.=]+)", re.IGNORECASE)
_EMAIL_PATTERN = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Show the first/last few characters of a secret."""
    if not value:
        return "<empty>"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def mask_email(email: Optional[str]) -> str:
    """jo***@example.com"""
    if not email:
        return "<empty>"
    if "@" not in email:
        return mask_secret(email)
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def mask_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    masked = {}
    for name, value in headers.items():
        if name.lower() in SENSITIVE_HEADERS:
            if value.lower().startswith("bearer "):
                masked[name] = f"Bearer {mask_secret(value[7:])}"
            else:
                masked[name] = mask_secret(value)
        else:
            masked[name] = value
    return masked


def mask_payload(data: Any) -> Any:
    """Recursively mask credential-looking keys and emails in a JSON body."""
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_KEYS and isinstance(value, str):
                result[key] = mask_secret(value)
            elif isinstance(key, str) and "email" in key.lower() and isinstance(value, str):
                result[key] = mask_email(value)
            else:
                result[key] = mask_payload(value)
        return result
    if isinstance(data, list):
        return [mask_payload(item) for item in data]
    return data


def sanitize_for_logging(text: str, max_length: int = 500) -> str:
    """
    Mask bearer tokens and emails in free text for safe logging.

    Args:
        text: Text that may contain credentials
        max_length: Maximum length of result

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ""

    sanitized = text[:max_length]
    sanitized = _BEARER_PATTERN.sub(lambda m: f"{m.group(1)}{mask_secret(m.group(2))}", sanitized)
    sanitized = _EMAIL_PATTERN.sub(lambda m: mask_email(m.group(0)), sanitized)

    if len(text) > max_length:
        sanitized += "..."
    return sanitized
