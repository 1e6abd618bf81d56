"""Message search behind a pluggable provider."""
from typing import Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from mailroom.models.notification import Notification
from mailroom.models.receipt import Receipt
from mailroom.references import EntityRef


class SearchProvider(Protocol):
    """Maps a search term to the matching receipts of one receiver."""

    def search(self, db: Session, receiver: EntityRef, query: str) -> list[Receipt]:
        ...


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlSearchProvider:
    """Case-insensitive substring match on subject and body, newest first."""

    def search(self, db: Session, receiver: EntityRef, query: str) -> list[Receipt]:
        term = (query or "").strip()
        if not term:
            return []
        pattern = f"%{_escape_like(term)}%"
        return (
            db.query(Receipt)
            .join(Notification, Receipt.notification_id == Notification.id)
            .filter(
                Receipt.belongs_to(receiver),
                Receipt.deleted.is_(False),
                or_(
                    Notification.subject.ilike(pattern, escape="\\"),
                    Notification.body.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(Receipt.created_at.desc(), Receipt.id.desc())
            .all()
        )
