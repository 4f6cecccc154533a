"""
Tests for normalization helpers used by intake and validation.
"""

from leakhub.normalize import is_http_url, normalize_provider, normalize_target_name


class TestNormalizeKeys:
    """Test target name and provider keys."""

    def test_target_name_case_and_padding(self):
        """Target names ignore case and padding."""
        assert normalize_target_name("  Helper Bot ") == "helper bot"
        assert normalize_target_name("HELPER BOT") == normalize_target_name("helper bot")

    def test_provider_upper_cased(self):
        """Providers are upper-cased."""
        assert normalize_provider(" acme ") == "ACME"


class TestIsHttpUrl:
    """Test URL acceptance."""

    def test_accepts_http_and_https(self):
        """http and https URLs are accepted."""
        assert is_http_url("http://acme.example.com")
        assert is_http_url("HTTPS://acme.example.com/helper?x=1")

    def test_rejects_other_schemes_and_bare_hosts(self):
        """Other schemes and bare hosts are rejected."""
        assert not is_http_url("ftp://acme.example.com")
        assert not is_http_url("acme.example.com/helper")
        assert not is_http_url("https://")
        assert not is_http_url("not a url")
