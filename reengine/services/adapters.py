from __future__ import annotations

import asyncio
import smtplib
import uuid
import webbrowser
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Protocol, Tuple
from urllib.parse import quote

import aiohttp

from reengine.core.config import Settings
from reengine.core.logging import get_structlog_logger
from reengine.schemas.records import Approval, Channel

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    message_id: str = ""
    error: str = ""


class ChannelAdapter(Protocol):
    async def send(self, approval: Approval) -> SendResult:
        ...


class ChannelAdapters:
    """Adapter registry keyed by the closed Channel enum."""

    def __init__(self, adapters: Optional[Mapping[Channel, ChannelAdapter]] = None) -> None:
        self._adapters: Dict[Channel, ChannelAdapter] = {}
        for channel, adapter in (adapters or {}).items():
            self.register(channel, adapter)

    def register(self, channel: Channel | str, adapter: ChannelAdapter) -> None:
        self._adapters[Channel(channel)] = adapter

    def get(self, channel: Channel | str) -> Optional[ChannelAdapter]:
        return self._adapters.get(Channel(channel))

    def __contains__(self, channel: object) -> bool:
        return channel in self._adapters

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._adapters)


async def post_json(
    *,
    url: str,
    payload: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 10,
) -> Tuple[bool, Optional[int], Any, Optional[str]]:
    """
    POST a JSON payload.
    Returns (success, http_status, response_body, error_message); never raises.
    """
    base_headers = {
        "Content-Type": "application/json",
        "User-Agent": "REEngine-Router/1.0",
    }
    base_headers.update(headers or {})

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url,
                json=payload,
                headers=base_headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                status = response.status
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = await response.text()
                if 200 <= status < 300:
                    return (True, status, body, None)
                else:
                    return (False, status, body, f"HTTP {status}: {str(body)[:200]}")
    except asyncio.TimeoutError:
        return (False, None, None, "Request timeout")
    except aiohttp.ClientError as e:
        return (False, None, None, f"Client error: {str(e)[:200]}")


class ConsoleAdapter:
    """Logs the outbound message instead of sending it."""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel

    async def send(self, approval: Approval) -> SendResult:
        message_id = f"console_{self.channel.value}_{uuid.uuid4().hex[:8]}"
        logger.info(
            "adapter.console_send",
            channel=self.channel.value,
            approval_id=approval.approval_id,
            to=approval.draft_to,
            subject=approval.draft_subject,
            message_id=message_id,
        )
        return SendResult(ok=True, message_id=message_id)


class SmtpEmailAdapter:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_addr: Optional[str] = None,
        timeout: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_addr = from_addr or username or ""
        self.timeout = timeout

    def build_message(self, approval: Approval) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_addr
        msg["To"] = approval.draft_to
        msg["Subject"] = approval.draft_subject
        domain = self.from_addr.split("@")[-1] if "@" in self.from_addr else None
        msg["Message-ID"] = make_msgid(domain=domain)
        msg.set_content(approval.draft_text)
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, approval: Approval) -> SendResult:
        msg = self.build_message(approval)
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            return SendResult(ok=False, error=f"SMTP error: {str(e)[:200]}")
        return SendResult(ok=True, message_id=msg["Message-ID"])


class WhapiWhatsAppAdapter:
    def __init__(self, *, base_url: str, api_key: str, timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, approval: Approval) -> SendResult:
        ok, _, body, error = await post_json(
            url=f"{self.base_url}/messages/text",
            payload={"to": approval.draft_to.lstrip("+"), "body": approval.draft_text},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        if not ok:
            return SendResult(ok=False, error=error or "unknown")
        message = body.get("message", {}) if isinstance(body, dict) else {}
        return SendResult(ok=True, message_id=str(message.get("id", "")))


class TelegramBotAdapter:
    def __init__(self, *, base_url: str, bot_token: str, timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.bot_token = bot_token
        self.timeout = timeout

    async def send(self, approval: Approval) -> SendResult:
        ok, _, body, error = await post_json(
            url=f"{self.base_url}/bot{self.bot_token}/sendMessage",
            payload={"chat_id": approval.draft_to, "text": approval.draft_text},
            timeout=self.timeout,
        )
        if not ok:
            return SendResult(ok=False, error=error or "unknown")
        if isinstance(body, dict) and body.get("ok") is False:
            return SendResult(ok=False, error=str(body.get("description", "telegram error"))[:200])
        result = body.get("result", {}) if isinstance(body, dict) else {}
        return SendResult(ok=True, message_id=str(result.get("message_id", "")))


class BrowserOpenAdapter:
    """
    Opens the composition page for a semi-automatic channel.

    A human finishes the send in the browser, so the router ignores the
    returned result for these channels.
    """

    def __init__(self, url_template: str, opener: Callable[[str], bool] = webbrowser.open) -> None:
        self.url_template = url_template
        self.opener = opener

    def compose_url(self, approval: Approval) -> str:
        return self.url_template.format(to=quote(approval.draft_to, safe=""))

    async def send(self, approval: Approval) -> SendResult:
        url = self.compose_url(approval)
        opened = await asyncio.get_running_loop().run_in_executor(None, self.opener, url)
        logger.info("adapter.compose_opened", approval_id=approval.approval_id, url=url, opened=bool(opened))
        return SendResult(ok=bool(opened), error="" if opened else "browser did not open")


def build_default_adapters(settings: Settings) -> ChannelAdapters:
    """
    Build adapters from settings.

    In console mode every channel logs instead of sending. In live mode a
    channel without credentials gets no adapter and the router fails its
    approvals.
    """
    adapters = ChannelAdapters()
    if settings.adapter_mode == "console":
        for channel in Channel:
            adapters.register(channel, ConsoleAdapter(channel))
        return adapters

    timeout = settings.adapter_timeout_seconds
    if settings.smtp_host:
        adapters.register(Channel.EMAIL, SmtpEmailAdapter(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_addr=settings.smtp_from,
            timeout=timeout,
        ))
    if settings.whatsapp_api_key:
        adapters.register(Channel.WHATSAPP, WhapiWhatsAppAdapter(
            base_url=settings.whatsapp_api_url,
            api_key=settings.whatsapp_api_key,
            timeout=timeout,
        ))
    if settings.telegram_bot_token:
        adapters.register(Channel.TELEGRAM, TelegramBotAdapter(
            base_url=settings.telegram_api_url,
            bot_token=settings.telegram_bot_token,
            timeout=timeout,
        ))
    adapters.register(Channel.LINKEDIN, BrowserOpenAdapter(settings.linkedin_compose_url))
    adapters.register(Channel.FACEBOOK, BrowserOpenAdapter(settings.facebook_compose_url))

    missing = [c.value for c in Channel if c not in adapters]
    if missing:
        logger.warning("adapters.not_configured", channels=missing)
    return adapters
