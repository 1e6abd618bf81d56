import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("MAILROOM_DATABASE_URL", "sqlite:///:memory:")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from mailroom.config import get_settings
from mailroom.database import init_db
from hosts import Article, User


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing emails instead of talking to SMTP."""
    sent = []

    def fake_send(to_email, subject, html_content):
        sent.append({"to": to_email, "subject": subject, "html": html_content})
        return True

    monkeypatch.setattr("mailroom.services.mailers.send_email_notification", fake_send)
    return sent


@pytest.fixture
def make_user(db):
    def _make(name, email="default"):
        if email == "default":
            email = f"{name}@example.com"
        user = User(name=name, email=email)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def article(db):
    article = Article(title="Release notes")
    db.add(article)
    db.commit()
    return article
