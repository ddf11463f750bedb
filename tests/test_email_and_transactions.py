from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import OperationFailure

from app.core.config import Settings
from app.core.errors import ConcurrentModification
from app.db.session import MongoTransactionManager
from app.services.email_service import EmailNotifier


def smtp_settings(**overrides):
    values = {
        "SMTP_HOST": "smtp.x.com",
        "SMTP_USERNAME": "mailer",
        "SMTP_PASSWORD": "secret",
        "FRONTEND_URL": "https://app.x.com/",
    }
    values.update(overrides)
    return Settings(**values)


def test_invitation_link():
    notifier = EmailNotifier(smtp_settings())

    assert notifier.invitation_link("tok123") == "https://app.x.com/accept-invite/tok123"


@pytest.mark.asyncio
async def test_send_without_smtp_only_logs():
    notifier = EmailNotifier(smtp_settings(SMTP_HOST=""))

    with patch("app.services.email_service.smtplib.SMTP") as smtp:
        await notifier.send_invitation_email("bob@x.com", "tok123", "Alice", "Smiths", "Member")
    smtp.assert_not_called()


@pytest.mark.asyncio
async def test_send_invitation_email_over_smtp():
    notifier = EmailNotifier(smtp_settings())

    with patch("app.services.email_service.smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value
        await notifier.send_invitation_email("bob@x.com", "tok123", "Alice", "Smiths", "Admin")

    smtp.assert_called_once_with("smtp.x.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "bob@x.com"
    assert "Smiths" in message["Subject"]
    assert "https://app.x.com/accept-invite/tok123" in message.get_body(("plain",)).get_content()


@pytest.mark.asyncio
async def test_smtp_failure_propagates_to_caller():
    notifier = EmailNotifier(smtp_settings())

    with patch("app.services.email_service.smtplib.SMTP", side_effect=OSError("refused")):
        with pytest.raises(OSError):
            await notifier.send("bob@x.com", "Hi", "text", "<p>html</p>")


@pytest.mark.asyncio
async def test_transactions_disabled_yield_no_session():
    manager = MongoTransactionManager(MagicMock(), enabled=False)

    async with manager.start() as session:
        assert session is None
    manager.client.start_session.assert_not_called()


class FakeSession:

    def __init__(self):
        self.committed = False
        self.aborted = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def start_transaction(self):
        session = self

        class _Transaction:
            async def __aenter__(self):
                return session

            async def __aexit__(self, exc_type, exc, tb):
                if exc_type is None:
                    session.committed = True
                else:
                    session.aborted = True
                return False

        return _Transaction()


def client_with(session):
    client = MagicMock()

    async def start_session():
        return session

    client.start_session = start_session
    return client


@pytest.mark.asyncio
async def test_transaction_commits():
    session = FakeSession()
    manager = MongoTransactionManager(client_with(session))

    async with manager.start() as active:
        assert active is session
    assert session.committed


@pytest.mark.asyncio
async def test_transaction_aborts_on_error():
    session = FakeSession()
    manager = MongoTransactionManager(client_with(session))

    with pytest.raises(ValueError):
        async with manager.start():
            raise ValueError("boom")
    assert session.aborted


@pytest.mark.asyncio
async def test_write_conflict_maps_to_concurrent_modification():
    session = FakeSession()
    manager = MongoTransactionManager(client_with(session))
    conflict = OperationFailure("WriteConflict", 112, {"errorLabels": ["TransientTransactionError"]})

    with pytest.raises(ConcurrentModification):
        async with manager.start():
            raise conflict
    assert session.aborted


@pytest.mark.asyncio
async def test_invitation_html_escapes_user_text():
    notifier = EmailNotifier(smtp_settings())

    with patch("app.services.email_service.smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value
        await notifier.send_invitation_email("bob@x.com", "tok123", "<i>Al</i>", "<b>Smiths</b>", "Member")

    html = server.send_message.call_args.args[0].get_body(("html",)).get_content()
    assert "&lt;b&gt;Smiths&lt;/b&gt;" in html
    assert "&lt;i&gt;Al&lt;/i&gt;" in html
    assert "<b>" not in html
