"""
Security utilities: constant-time comparison, HTML escaping, monitor URL
validation and token generation.
"""

import hmac
import html
import secrets
import string
from urllib.parse import urlparse

TOKEN_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

BLOCKED_HOST_PATTERNS = [
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "10.",
    *[f"172.{octet}." for octet in range(16, 32)],
    "192.168.",
    "169.254.",
    ".local",
    ".internal",
]


def secure_compare(a, b) -> bool:
    """Constant-time string comparison."""
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def sanitize_html(text: str) -> str:
    """Escape & < > " and ' for safe embedding in HTML."""
    return html.escape(text, quote=True)


def is_valid_monitor_url(url: str) -> bool:
    """Only public http(s) targets may be monitored."""
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not hostname:
        return False

    hostname = hostname.lower()
    for pattern in BLOCKED_HOST_PATTERNS:
        if hostname.startswith(pattern) or hostname.endswith(pattern):
            return False

    return True


def generate_secure_token(length: int = 32) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
