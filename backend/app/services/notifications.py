"""
Notification Service Interface

Delivers account emails (verification, password reset, welcome,
password changed, account locked). Delivery is a side effect: callers use
`send_safely`, which logs failures and never raises, so a broken mail
provider cannot roll back a registration or a password change.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


class Template(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"
    PASSWORD_CHANGED = "password_changed"
    ACCOUNT_LOCKED = "account_locked"


SUBJECTS = {
    Template.VERIFICATION: "Verify your email address",
    Template.PASSWORD_RESET: "Reset your password",
    Template.WELCOME: "Welcome!",
    Template.PASSWORD_CHANGED: "Your password was changed",
    Template.ACCOUNT_LOCKED: "Your account has been locked",
}


@dataclass
class SentMessage:
    address: str
    template: Template
    data: Dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """Notification sender abstract base class"""

    name: str = "notifier"

    @abstractmethod
    async def deliver(self, address: str, template: Template, data: Dict[str, Any]) -> bool:
        """
        Deliver one templated message.

        Returns:
        - True on success, False when the provider rejected the message
        """


# Keys carrying one-time links; LogNotifier only prints them in development
SECRET_FIELDS = ("token", "url")


class LogNotifier(Notifier):
    """Development backend: writes the message to the log instead of sending it."""

    name = "log"

    def __init__(self, logger: Optional[logging.Logger] = None, reveal_secrets: bool = False):
        self.logger = logger or logging.getLogger("uvicorn.error")
        self.reveal_secrets = reveal_secrets

    async def deliver(self, address: str, template: Template, data: Dict[str, Any]) -> bool:
        if not self.reveal_secrets:
            data = {k: "[redacted]" if k in SECRET_FIELDS else v for k, v in data.items()}
        self.logger.info("[mail] to=%s template=%s data=%s", address, template.value, data)
        return True


class MemoryNotifier(Notifier):
    """Keeps every message in `outbox`; used by tests to read raw tokens."""

    name = "memory"

    def __init__(self):
        self.outbox: List[SentMessage] = []

    async def deliver(self, address: str, template: Template, data: Dict[str, Any]) -> bool:
        self.outbox.append(SentMessage(address=address, template=template, data=dict(data)))
        return True

    def last(self, template: Template, address: Optional[str] = None) -> Optional[SentMessage]:
        for msg in reversed(self.outbox):
            if msg.template == template and (address is None or msg.address == address):
                return msg
        return None

    def clear(self) -> None:
        self.outbox.clear()


class HttpNotifier(Notifier):
    """
    Mail API backend: POSTs a JSON message to MAIL_API_URL.

    Configuration source: app.config.settings
    - mail_api_url: endpoint accepting {from, to, subject, template, data}
    - mail_api_key: bearer key
    """

    name = "http"

    def __init__(self, api_url: str, api_key: Optional[str], sender: str, timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    async def deliver(self, address: str, template: Template, data: Dict[str, Any]) -> bool:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        payload = {
            "from": self.sender,
            "to": address,
            "subject": SUBJECTS[template],
            "template": template.value,
            "data": data,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.api_url, headers=headers, json=payload)
        return resp.is_success


def build_notifier(settings, logger: Optional[logging.Logger] = None) -> Notifier:
    """
    Pick the notification backend from settings.notifier_backend.
    Falls back to logging when the HTTP backend has no URL configured; the log
    backend only prints token links when ENV=dev.
    """
    backend = (settings.notifier_backend or "log").lower()
    if backend == "memory":
        return MemoryNotifier()
    if backend == "http":
        if settings.mail_api_url:
            return HttpNotifier(settings.mail_api_url, settings.mail_api_key, settings.mail_from)
        (logger or logging.getLogger("uvicorn.error")).warning(
            "[mail] NOTIFIER_BACKEND=http but MAIL_API_URL is not set -> logging messages instead")
    return LogNotifier(logger, reveal_secrets=settings.env == "dev")


async def send_safely(
    notifier: Notifier,
    logger: logging.Logger,
    address: str,
    template: Template,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Deliver and swallow failures after logging them."""
    try:
        ok = await notifier.deliver(address, template, data or {})
    except Exception as exc:
        logger.error("%s email to %s failed: %s", template.value, address, exc)
        return False
    if not ok:
        logger.error("%s email to %s was rejected by %s", template.value, address, notifier.name)
    return ok
