"""
Request metadata captured with every refresh-token session.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from starlette.requests import Request
from user_agents import parse as parse_ua

from app.core.rate_limit import get_client_ip

UNKNOWN_DEVICE = {"browser": "Unknown", "os": "Unknown", "device": "Desktop"}


def parse_user_agent(user_agent: Optional[str]) -> Dict[str, str]:
    """Browser / OS / device classification for the sessions list."""
    if not user_agent:
        return dict(UNKNOWN_DEVICE)
    ua = parse_ua(user_agent)
    return {
        "browser": ua.browser.family,
        "os": ua.os.family,
        "device": "Mobile" if ua.is_mobile else "Tablet" if ua.is_tablet else "Desktop",
    }


@dataclass
class RequestMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Dict[str, str] = field(default_factory=lambda: dict(UNKNOWN_DEVICE))

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        user_agent = request.headers.get("user-agent")
        return cls(
            ip_address=get_client_ip(request),
            user_agent=user_agent[:512] if user_agent else None,
            device_info=parse_user_agent(user_agent),
        )
