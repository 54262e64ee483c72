"""
StatusPulse Gate - Security Utility Tests
"""

import pytest

from security import (
    TOKEN_ALPHABET,
    generate_secure_token,
    is_valid_monitor_url,
    sanitize_html,
    secure_compare,
)


class TestSecureCompare:
    """Tests for constant-time comparison."""

    def test_equal(self):
        assert secure_compare("secret", "secret") is True

    def test_different_same_length(self):
        assert secure_compare("secret", "secreT") is False

    def test_different_length(self):
        assert secure_compare("secret", "secret-longer") is False

    def test_non_strings(self):
        assert secure_compare(None, "secret") is False
        assert secure_compare("secret", b"secret") is False

    def test_unicode(self):
        assert secure_compare("pässwörd", "pässwörd") is True


class TestSanitizeHtml:
    """Tests for HTML escaping."""

    def test_escapes_all_special_chars(self):
        assert sanitize_html("<a href=\"x\">Tom & Jerry's</a>") == (
            "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&#x27;s&lt;/a&gt;"
        )

    def test_plain_text_unchanged(self):
        assert sanitize_html("Monitor 1") == "Monitor 1"


class TestMonitorUrlValidation:
    """Tests for monitor target validation."""

    @pytest.mark.parametrize("url", [
        "https://example.com",
        "http://status.example.org/health",
        "https://api.example.com:8443/v1",
    ])
    def test_public_urls_allowed(self, url):
        assert is_valid_monitor_url(url) is True

    @pytest.mark.parametrize("url", [
        "ftp://example.com",
        "file:///etc/passwd",
        "http://localhost:3000",
        "http://127.0.0.1",
        "http://0.0.0.0",
        "http://[::1]/",
        "http://10.0.0.5",
        "http://172.16.0.1",
        "http://172.31.255.255",
        "http://192.168.1.1",
        "http://169.254.169.254/latest/meta-data",
        "http://printer.local",
        "http://service.internal",
        "http://LOCALHOST",
        "not a url",
        "",
    ])
    def test_blocked_urls(self, url):
        assert is_valid_monitor_url(url) is False

    def test_172_outside_private_range_allowed(self):
        assert is_valid_monitor_url("http://172.32.0.1") is True


class TestTokenGeneration:
    """Tests for secure token generation."""

    def test_default_length(self):
        assert len(generate_secure_token()) == 32

    def test_custom_length(self):
        assert len(generate_secure_token(64)) == 64

    def test_alphabet(self):
        assert set(generate_secure_token(200)) <= set(TOKEN_ALPHABET)

    def test_tokens_differ(self):
        assert generate_secure_token() != generate_secure_token()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
