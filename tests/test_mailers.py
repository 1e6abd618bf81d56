import pytest

from hosts import QuietMailer
from mailroom.config import get_settings
from mailroom.services import mailers
from mailroom.services.mailers import (
    MessageMailer,
    NotificationMailer,
    display_name,
    email_target,
    get_mailer,
    send_email_notification,
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        self.messages.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(mailers.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_send_email_without_smtp_host_is_skipped(fake_smtp):
    assert send_email_notification("bob@example.com", "Hi", "<p>Hi</p>") is False
    assert fake_smtp.instances == []


def test_send_email_over_smtp(monkeypatch, fake_smtp):
    monkeypatch.setenv("MAILROOM_SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("MAILROOM_SMTP_USER", "mailer")
    monkeypatch.setenv("MAILROOM_SMTP_PASSWORD", "secret")
    get_settings.cache_clear()

    assert send_email_notification("bob@example.com", "Hi", "<p>Tom &amp; Jerry</p>") is True

    server = fake_smtp.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.logged_in == ("mailer", "secret")
    msg = server.messages[0]
    assert msg["To"] == "bob@example.com"
    assert msg["From"] == "noreply@mailroom.local"
    plain, rich = msg.get_payload()
    assert plain.get_payload().strip() == "Tom & Jerry"
    assert rich.get_content_subtype() == "html"


def test_smtp_errors_propagate(monkeypatch):
    class BrokenSMTP(FakeSMTP):
        def send_message(self, msg):
            raise OSError("connection reset")

    monkeypatch.setattr(mailers.smtplib, "SMTP", BrokenSMTP)
    monkeypatch.setenv("MAILROOM_SMTP_HOST", "smtp.example.com")
    get_settings.cache_clear()

    with pytest.raises(OSError):
        send_email_notification("bob@example.com", "Hi", "<p>Hi</p>")


def test_accessors_follow_settings(monkeypatch, alice):
    assert display_name(alice) == "alice"
    assert email_target(alice, None) == "alice@example.com"

    monkeypatch.setenv("MAILROOM_EMAIL_METHOD", "no_such_method")
    get_settings.cache_clear()
    assert email_target(alice, None) is None


def test_mailer_selection(alice, bob):
    notice = alice.notify("Notice", "Body").notification
    message = alice.send_message(bob, "Body", "Subject").message

    assert type(get_mailer(notice)) is NotificationMailer
    assert type(get_mailer(message)) is MessageMailer


def test_custom_mailer_from_settings(monkeypatch, outbox, alice, bob):
    QuietMailer.sent = []
    monkeypatch.setenv("MAILROOM_MESSAGE_MAILER", "hosts.QuietMailer")
    get_settings.cache_clear()

    alice.send_message(bob, "Body", "Subject")
    alice.notify("Notice", "Body")

    assert QuietMailer.sent == [("Subject", "bob@example.com")]
    assert [mail["to"] for mail in outbox] == ["alice@example.com"]


def test_rendered_email_escapes_content(alice):
    notice = alice.notify("Hi", "Tom & Jerry\nSecond line", sanitize_text=False).notification

    html = NotificationMailer().render(notice, alice)

    assert "Tom &amp; Jerry<br>Second line" in html
    assert "Hi alice," in html
