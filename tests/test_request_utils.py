"""Tests for client address and device extraction."""

from starlette.requests import Request

from versenest.core import request_utils
from versenest.core.request_utils import get_client_ip, get_device_info


def make_request(client_host: str, headers: dict[str, str] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/auth/login",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "query_string": b"",
        "client": (client_host, 50000),
    }
    return Request(scope)


def test_direct_peer_used_by_default():
    request = make_request("203.0.113.7", {"X-Forwarded-For": "198.51.100.1"})
    assert get_client_ip(request) == "203.0.113.7"


def test_forwarded_header_from_trusted_proxy(monkeypatch):
    monkeypatch.setattr(request_utils, "TRUSTED_PROXY_IPS", {"10.0.0.2"})
    request = make_request("10.0.0.2", {"X-Forwarded-For": "198.51.100.1, 10.0.0.2"})
    assert get_client_ip(request) == "198.51.100.1"


def test_invalid_forwarded_value_ignored(monkeypatch):
    monkeypatch.setattr(request_utils, "TRUSTED_PROXY_IPS", {"10.0.0.2"})
    request = make_request("10.0.0.2", {"X-Forwarded-For": "not-an-ip"})
    assert get_client_ip(request) == "10.0.0.2"


def test_device_info_truncates_user_agent():
    request = make_request("203.0.113.7", {"User-Agent": "x" * 1000})
    device = get_device_info(request)
    assert device.ip_address == "203.0.113.7"
    assert len(device.user_agent) == 512
