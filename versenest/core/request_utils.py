"""Request helpers: client address and device metadata for audit trails."""

import ipaddress
import logging
import os
from dataclasses import dataclass

from fastapi import Request

logger = logging.getLogger(__name__)

# Reverse proxies allowed to set X-Forwarded-For / X-Real-IP.
# Forwarded headers from any other peer are ignored.
TRUSTED_PROXY_IPS = {
    ip.strip() for ip in os.environ.get("TRUSTED_PROXY_IPS", "").split(",") if ip.strip()
}

_MAX_USER_AGENT_LENGTH = 512


@dataclass(frozen=True)
class DeviceInfo:
    """Client metadata recorded with issued tokens."""

    user_agent: str | None = None
    ip_address: str | None = None


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str | None:
    """Get the client IP address from a request.

    Forwarded headers are only honoured when the direct peer is listed in
    TRUSTED_PROXY_IPS; otherwise they can be spoofed to dodge lockout
    throttling and poison audit logs.
    """
    direct_ip = request.client.host if request.client else None

    if direct_ip and direct_ip in TRUSTED_PROXY_IPS:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(ip):
                return ip
            logger.warning(f"Invalid IP in X-Forwarded-For header: {ip}")

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip = real_ip.strip()
            if _is_valid_ip(ip):
                return ip
            logger.warning(f"Invalid X-Real-IP: {real_ip}")

    return direct_ip


def get_device_info(request: Request) -> DeviceInfo:
    """Collect user-agent and client IP for token audit metadata."""
    user_agent = request.headers.get("User-Agent")
    if user_agent:
        user_agent = user_agent[:_MAX_USER_AGENT_LENGTH]
    return DeviceInfo(user_agent=user_agent, ip_address=get_client_ip(request))
