"""Receipt model: one recipient's copy of a notification."""
import logging

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, select
from sqlalchemy.orm import object_session, relationship

from mailroom.database import Base
from mailroom.exceptions import UnknownEntityKind
from mailroom.models.common import session_for, utcnow
from mailroom.references import EntityRef, class_for, ref_for, resolve

logger = logging.getLogger(__name__)

FLAG_FIELDS = frozenset({"is_read", "trashed", "deleted"})


class MailboxType:
    """Values stored in ``Receipt.mailbox_type``."""

    INBOX = "inbox"
    SENTBOX = "sentbox"
    ALL = (INBOX, SENTBOX)


class Receipt(Base):
    """Per-recipient delivery record tracking read, trashed and deleted state."""

    __tablename__ = "mailroom_receipts"
    __table_args__ = (
        Index("ix_mailroom_receipts_receiver", "receiver_type", "receiver_id"),
        Index("ix_mailroom_receipts_notification_receiver", "notification_id", "receiver_type", "receiver_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(
        Integer, ForeignKey("mailroom_notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Polymorphic receiver, see mailroom.references
    receiver_type = Column(String(100), nullable=False)
    receiver_id = Column(String(64), nullable=False)

    # State
    is_read = Column(Boolean, default=False, nullable=False)
    trashed = Column(Boolean, default=False, nullable=False)
    deleted = Column(Boolean, default=False, nullable=False)
    mailbox_type = Column(String(25))  # inbox, sentbox, or NULL for plain notifications

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    notification = relationship("Notification", back_populates="receipts")

    # Filled by validate(); never persisted
    errors = ()

    def __repr__(self) -> str:
        return (
            f"<Receipt(id={self.id}, notification_id={self.notification_id}, "
            f"receiver={self.receiver_type}#{self.receiver_id}, read={self.is_read}, "
            f"trashed={self.trashed}, deleted={self.deleted})>"
        )

    # -- receiver -----------------------------------------------------------

    @property
    def receiver_ref(self) -> EntityRef | None:
        if not self.receiver_type:
            return None
        return EntityRef(self.receiver_type, self.receiver_id)

    @property
    def receiver(self):
        return resolve(session_for(self), self.receiver_ref)

    @receiver.setter
    def receiver(self, entity) -> None:
        if entity is None:
            self.receiver_type = None
            self.receiver_id = None
            return
        ref = ref_for(entity)
        self.receiver_type = ref.kind
        self.receiver_id = ref.id

    @property
    def message(self):
        return self.notification

    @property
    def conversation(self):
        return getattr(self.notification, "conversation", None)

    def is_owned_by(self, participant) -> bool:
        if participant is None:
            return False
        return ref_for(participant) == self.receiver_ref

    # -- validation ---------------------------------------------------------

    def validate(self, notification=None) -> bool:
        """Check referential integrity without touching the database.

        ``notification`` stands in for the owning notification of a receipt
        that has not been attached to it yet.
        """
        errors = []
        owner = notification if notification is not None else self.notification
        if owner is None and self.notification_id is None:
            errors.append("notification must exist")
        if not self.receiver_type:
            errors.append("receiver must exist")
        else:
            try:
                class_for(self.receiver_type)
            except UnknownEntityKind:
                errors.append(f"receiver kind {self.receiver_type!r} is not registered")
            if self.receiver_id is None:
                errors.append("receiver must be persisted")
        if self.mailbox_type is not None and self.mailbox_type not in MailboxType.ALL:
            errors.append(f"mailbox type {self.mailbox_type!r} is not allowed")
        self.errors = errors
        return not errors

    # -- criteria -----------------------------------------------------------

    @classmethod
    def belongs_to(cls, participant):
        """Filter criterion selecting receipts held by ``participant``."""
        ref = ref_for(participant)
        return (cls.receiver_type == ref.kind) & (cls.receiver_id == ref.id)

    @classmethod
    def in_conversation(cls, conversation):
        """Filter criterion selecting receipts of every message in ``conversation``."""
        from mailroom.models.notification import Notification

        message_ids = select(Notification.id).where(Notification.conversation_id == conversation.id)
        return cls.notification_id.in_(message_ids)

    # -- state changes ------------------------------------------------------

    @classmethod
    def apply(cls, receipts, **flags) -> list["Receipt"]:
        """Set ``flags`` on every receipt of ``receipts`` and commit once.

        ``receipts`` may be a query or any iterable of receipts. Returns the
        receipts that were touched.
        """
        unknown = set(flags) - FLAG_FIELDS
        if unknown:
            raise ValueError(f"Unknown receipt flags: {sorted(unknown)}")

        receipts = list(receipts)
        session = None
        for receipt in receipts:
            for field, value in flags.items():
                setattr(receipt, field, value)
            session = session or object_session(receipt)
        if session is not None:
            session.commit()
        logger.debug(f"Applied {flags} to {len(receipts)} receipts")
        return receipts

    def mark_as_read(self) -> "Receipt":
        Receipt.apply([self], is_read=True)
        return self

    def mark_as_unread(self) -> "Receipt":
        Receipt.apply([self], is_read=False)
        return self

    def move_to_trash(self) -> "Receipt":
        Receipt.apply([self], trashed=True)
        return self

    def untrash(self) -> "Receipt":
        Receipt.apply([self], trashed=False)
        return self

    def mark_as_deleted(self) -> "Receipt":
        Receipt.apply([self], deleted=True)
        return self

    def mark_as_not_deleted(self) -> "Receipt":
        Receipt.apply([self], deleted=False)
        return self

    # -- Messageable dispatch: only the receiver may change its own receipt --

    def apply_read(self, owner):
        if self.is_owned_by(owner):
            return self.mark_as_read()
        return None

    def apply_unread(self, owner):
        if self.is_owned_by(owner):
            return self.mark_as_unread()
        return None

    def apply_trash(self, owner):
        if self.is_owned_by(owner):
            return self.move_to_trash()
        return None

    def apply_untrash(self, owner):
        if self.is_owned_by(owner):
            return self.untrash()
        return None

    def apply_delete(self, owner):
        if self.is_owned_by(owner):
            return self.mark_as_deleted()
        return None
