"""Tests for rate limit trusted proxy configuration."""

from unittest.mock import MagicMock

import pytest

from ajira import rate_limit
from ajira.rate_limit import (
    get_client_ip,
    get_rate_limit_key,
    is_trusted_proxy,
    load_trusted_networks,
)


@pytest.fixture
def default_networks(monkeypatch):
    monkeypatch.setattr(rate_limit, "_trusted_networks", load_trusted_networks(""))


def _request(peer: str, forwarded: str | None = None, headers: dict | None = None, cookies=None):
    request = MagicMock()
    request.client.host = peer
    request.headers = {"x-forwarded-for": forwarded} if forwarded else {}
    request.headers.update(headers or {})
    request.cookies = cookies or {}
    return request


class TestTrustedProxy:
    """Test trusted proxy detection."""

    @pytest.mark.parametrize("ip", ["127.0.0.1", "10.0.1.5", "172.17.0.1", "192.168.1.100", "::1"])
    def test_private_ranges_trusted(self, default_networks, ip):
        assert is_trusted_proxy(ip) is True

    @pytest.mark.parametrize("ip", ["8.8.8.8", "2001:db8::1", "not-an-ip", ""])
    def test_public_or_invalid_not_trusted(self, default_networks, ip):
        assert is_trusted_proxy(ip) is False


class TestLoadNetworks:
    def test_default_cidrs_loaded(self):
        assert len(load_trusted_networks("")) == 5

    def test_invalid_cidrs_skipped(self):
        assert len(load_trusted_networks("1.2.3.0/24,not-a-cidr,5.6.7.0/24")) == 2

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TRUSTED_PROXY_CIDRS", "203.0.113.0/24")
        networks = load_trusted_networks()
        assert len(networks) == 1
        assert str(networks[0]) == "203.0.113.0/24"


class TestClientIp:
    def test_trusted_proxy_forwards_leftmost(self, default_networks):
        request = _request("10.0.0.1", "41.59.1.2, 10.0.0.1")
        assert get_client_ip(request) == "41.59.1.2"

    def test_untrusted_peer_cannot_spoof(self, default_networks):
        request = _request("8.8.8.8", "1.1.1.1")
        assert get_client_ip(request) == "8.8.8.8"

    def test_trusted_peer_without_header(self, default_networks):
        assert get_client_ip(_request("127.0.0.1")) == "127.0.0.1"


class TestRateLimitKey:
    def test_signed_in_caller_keyed_by_user(self, default_networks, auth_headers):
        headers = {"authorization": auth_headers["Authorization"]}
        request = _request("203.0.113.7", headers=headers)
        assert get_rate_limit_key(request) == "user:usr_TEST_CUSTOMER_000"

    def test_session_cookie_is_read(self, default_networks, auth_headers):
        token = auth_headers["Authorization"].removeprefix("Bearer ")
        request = _request("203.0.113.7", cookies={"ajira_session": token})
        assert get_rate_limit_key(request) == "user:usr_TEST_CUSTOMER_000"

    def test_forged_token_falls_back_to_ip(self, default_networks):
        request = _request("203.0.113.7", headers={"authorization": "Bearer not-a-jwt"})
        assert get_rate_limit_key(request) == "ip:203.0.113.7"

    def test_anonymous_keyed_by_ip(self, default_networks):
        assert get_rate_limit_key(_request("203.0.113.7")) == "ip:203.0.113.7"
