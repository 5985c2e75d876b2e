import pytest

from reengine.core.config import settings
from reengine.schemas.records import ActionType, Approval, ApprovalStatus, Channel
from reengine.services import adapters as adapters_module
from reengine.services.adapters import (
    BrowserOpenAdapter,
    ConsoleAdapter,
    SmtpEmailAdapter,
    TelegramBotAdapter,
    WhapiWhatsAppAdapter,
    build_default_adapters,
)


def _approval(channel=Channel.EMAIL, to="jane@example.com"):
    return Approval(
        approval_id="appr_1",
        ts_created="2024-01-01T00:00:00.000Z",
        channel=channel,
        action_type=ActionType.SEND_EMAIL,
        draft_subject="Hello",
        draft_text="Hi Jane",
        draft_to=to,
        status=ApprovalStatus.APPROVED,
    )


class CapturedPosts(list):
    response = (True, 200, {}, None)


@pytest.fixture
def captured_posts(monkeypatch):
    calls = CapturedPosts()

    async def fake_post_json(*, url, payload, headers=None, timeout=10):
        calls.append({"url": url, "payload": payload, "headers": headers})
        return calls.response

    monkeypatch.setattr(adapters_module, "post_json", fake_post_json)
    return calls


@pytest.mark.asyncio
async def test_console_adapter_always_succeeds():
    result = await ConsoleAdapter(Channel.EMAIL).send(_approval())
    assert result.ok is True
    assert result.message_id.startswith("console_email_")


@pytest.mark.asyncio
async def test_browser_adapter_opens_compose_url():
    opened = []
    adapter = BrowserOpenAdapter(
        "https://www.linkedin.com/messaging/compose/?recipient={to}",
        opener=lambda url: opened.append(url) or True,
    )

    result = await adapter.send(_approval(Channel.LINKEDIN, "jane doe"))

    assert result.ok is True
    assert opened == ["https://www.linkedin.com/messaging/compose/?recipient=jane%20doe"]


@pytest.mark.asyncio
async def test_browser_adapter_reports_unopened_browser():
    adapter = BrowserOpenAdapter("https://www.facebook.com/messages/t/{to}", opener=lambda url: False)
    result = await adapter.send(_approval(Channel.FACEBOOK, "jane"))
    assert result.ok is False


def test_smtp_message_headers():
    adapter = SmtpEmailAdapter(host="smtp.example.com", from_addr="agent@realty.example")
    msg = adapter.build_message(_approval())

    assert msg["To"] == "jane@example.com"
    assert msg["From"] == "agent@realty.example"
    assert msg["Subject"] == "Hello"
    assert msg["Message-ID"].endswith("@realty.example>")
    assert msg.get_content().strip() == "Hi Jane"


@pytest.mark.asyncio
async def test_smtp_connection_failure_is_a_failed_result(monkeypatch):
    adapter = SmtpEmailAdapter(host="smtp.example.com", from_addr="agent@realty.example")

    def refuse(msg):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(adapter, "_send_sync", refuse)
    result = await adapter.send(_approval())

    assert result.ok is False
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_whatsapp_adapter(captured_posts):
    captured_posts.response = (True, 200, {"sent": True, "message": {"id": "wamid.1"}}, None)
    adapter = WhapiWhatsAppAdapter(base_url="https://gate.whapi.cloud/", api_key="k")

    result = await adapter.send(_approval(Channel.WHATSAPP, "+14165550100"))

    assert result.ok is True
    assert result.message_id == "wamid.1"
    assert captured_posts[0]["url"] == "https://gate.whapi.cloud/messages/text"
    assert captured_posts[0]["payload"] == {"to": "14165550100", "body": "Hi Jane"}
    assert captured_posts[0]["headers"] == {"Authorization": "Bearer k"}


@pytest.mark.asyncio
async def test_whatsapp_adapter_http_error(captured_posts):
    captured_posts.response = (False, 401, {"error": "unauthorized"}, "HTTP 401: unauthorized")
    adapter = WhapiWhatsAppAdapter(base_url="https://gate.whapi.cloud", api_key="bad")

    result = await adapter.send(_approval(Channel.WHATSAPP, "+14165550100"))

    assert result.ok is False
    assert result.error.startswith("HTTP 401")


@pytest.mark.asyncio
async def test_telegram_adapter(captured_posts):
    captured_posts.response = (True, 200, {"ok": True, "result": {"message_id": 42}}, None)
    adapter = TelegramBotAdapter(base_url="https://api.telegram.org", bot_token="123:abc")

    result = await adapter.send(_approval(Channel.TELEGRAM, "987654"))

    assert result.ok is True
    assert result.message_id == "42"
    assert captured_posts[0]["url"] == "https://api.telegram.org/bot123:abc/sendMessage"


@pytest.mark.asyncio
async def test_telegram_adapter_api_error(captured_posts):
    captured_posts.response = (True, 200, {"ok": False, "description": "chat not found"}, None)
    adapter = TelegramBotAdapter(base_url="https://api.telegram.org", bot_token="123:abc")

    result = await adapter.send(_approval(Channel.TELEGRAM, "987654"))

    assert result.ok is False
    assert result.error == "chat not found"


def test_console_mode_covers_every_channel():
    registry = build_default_adapters(settings.model_copy(update={"adapter_mode": "console"}))
    assert set(registry) == set(Channel)
    assert all(isinstance(registry.get(c), ConsoleAdapter) for c in Channel)


def test_live_mode_only_registers_configured_channels():
    live = settings.model_copy(update={
        "adapter_mode": "live",
        "smtp_host": "smtp.example.com",
        "whatsapp_api_key": None,
        "telegram_bot_token": "123:abc",
    })
    registry = build_default_adapters(live)

    assert isinstance(registry.get(Channel.EMAIL), SmtpEmailAdapter)
    assert isinstance(registry.get(Channel.TELEGRAM), TelegramBotAdapter)
    assert isinstance(registry.get(Channel.LINKEDIN), BrowserOpenAdapter)
    assert Channel.WHATSAPP not in registry
