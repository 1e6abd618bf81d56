"""Notification and Message models.

A notification is delivered to its recipients by creating one receipt per
recipient. A message is a notification that belongs to a conversation; its
sender also gets a receipt, filed in the sentbox.
"""
import logging
from datetime import timedelta

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, or_
from sqlalchemy.orm import Session, object_session, relationship

from mailroom.config import get_settings
from mailroom.database import Base
from mailroom.exceptions import PartialDeliveryRejected, ReceiptNotFound, ValidationFailure
from mailroom.models.common import as_list, session_for, unique_by_ref, utcnow
from mailroom.models.receipt import MailboxType, Receipt
from mailroom.references import EntityRef, ref_for, resolve
from mailroom.services.mailers import email_target, get_mailer
from mailroom.services.sanitizer import clean_text

logger = logging.getLogger(__name__)


class Notification(Base):
    """Delivery unit with sender, subject, body and an optional notified object."""

    __tablename__ = "mailroom_notifications"
    __table_args__ = (
        Index("ix_mailroom_notifications_sender", "sender_type", "sender_id"),
        Index("ix_mailroom_notifications_object", "notified_object_type", "notified_object_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Discriminator: Notification or Message
    type = Column(String(30), nullable=False)

    # Polymorphic references, see mailroom.references
    sender_type = Column(String(100))
    sender_id = Column(String(64))
    notified_object_type = Column(String(100))
    notified_object_id = Column(String(64))

    # Content
    notification_code = Column(String(255))
    subject = Column(String(255))
    body = Column(Text)
    attachment = Column(String(255))
    message_metadata = Column("metadata", JSON)

    # Delivery scope
    is_global = Column("global", Boolean, default=False, nullable=False)
    expires = Column(DateTime)

    # Only set for messages
    conversation_id = Column(Integer, ForeignKey("mailroom_conversations.id", ondelete="CASCADE"), index=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    receipts = relationship(
        "Receipt",
        back_populates="notification",
        cascade="all, delete-orphan",
        order_by="Receipt.id",
    )

    __mapper_args__ = {
        "polymorphic_on": type,
        "polymorphic_identity": "Notification",
    }

    # Intended recipients before delivery; never persisted
    _recipients = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, subject={self.subject!r}, sender={self.sender_ref})>"

    # -- polymorphic accessors ----------------------------------------------

    @property
    def sender_ref(self) -> EntityRef | None:
        if not self.sender_type:
            return None
        return EntityRef(self.sender_type, self.sender_id)

    @property
    def sender(self):
        if self.sender_ref is None:
            return None
        return resolve(session_for(self), self.sender_ref)

    @sender.setter
    def sender(self, entity) -> None:
        ref = ref_for(entity) if entity is not None else EntityRef(None, None)
        self.sender_type = ref.kind
        self.sender_id = ref.id

    @property
    def notified_object_ref(self) -> EntityRef | None:
        if not self.notified_object_type:
            return None
        return EntityRef(self.notified_object_type, self.notified_object_id)

    @property
    def notified_object(self):
        if self.notified_object_ref is None:
            return None
        return resolve(session_for(self), self.notified_object_ref)

    @notified_object.setter
    def notified_object(self, entity) -> None:
        ref = ref_for(entity) if entity is not None else EntityRef(None, None)
        self.notified_object_type = ref.kind
        self.notified_object_id = ref.id

    @property
    def recipients(self) -> list:
        """Pending recipients before delivery, the receipt holders afterwards."""
        if self._recipients:
            return list(self._recipients)
        session = object_session(self)
        if session is None or self.id is None:
            return []
        receivers = [resolve(session, receipt.receiver_ref) for receipt in self.receipts]
        return [receiver for receiver in receivers if receiver is not None]

    @recipients.setter
    def recipients(self, value) -> None:
        self._recipients = as_list(value) or None

    # -- expiry -------------------------------------------------------------

    @property
    def expired(self) -> bool:
        return self.expires is not None and self.expires < utcnow()

    def expire(self) -> None:
        """Mark as expired in memory; already expired notifications keep their timestamp."""
        if not self.expired:
            self.expires = utcnow() - timedelta(seconds=1)

    def expire_and_save(self) -> None:
        if not self.expired:
            self.expire()
            session_for(self).commit()

    # -- validation ---------------------------------------------------------

    def clean(self) -> None:
        """Sanitize the subject and body."""
        if self.subject is not None:
            self.subject = clean_text(self.subject)
        self.body = clean_text(self.body)

    def validation_errors(self) -> dict[str, list[str]]:
        errors = {}
        for field in ("subject", "body"):
            value = getattr(self, field)
            if value is None or not str(value).strip():
                errors[field] = ["can't be blank"]
        return errors

    def validate(self) -> None:
        errors = self.validation_errors()
        if errors:
            raise ValidationFailure(errors)

    # -- delivery -----------------------------------------------------------

    @classmethod
    def notify_all(
        cls,
        db: Session,
        recipients,
        subject: str,
        body: str,
        obj=None,
        sanitize_text: bool = True,
        notification_code: str | None = None,
        send_mail: bool = True,
    ):
        """Send one notification to every recipient."""
        notification = cls(subject=subject, body=body)
        notification.recipients = unique_by_ref(as_list(recipients), ref_for)
        if obj is not None:
            notification.notified_object = obj
        if notification_code:
            notification.notification_code = notification_code
        return notification.deliver(db, should_clean=sanitize_text, send_mail=send_mail)

    @staticmethod
    def successful_delivery(receipts) -> bool:
        """True when a receipt, or every receipt of a list, is valid."""
        if isinstance(receipts, Receipt):
            return receipts.validate()
        if isinstance(receipts, list):
            results = [receipt.validate() for receipt in receipts]
            return all(results)
        return False

    def deliver(self, db: Session, should_clean: bool = True, send_mail: bool = True):
        """Persist one receipt per pending recipient, all or nothing.

        Returns the receipt when there is exactly one recipient, otherwise the
        list of receipts. Raises ``ValidationFailure`` for a missing subject or
        body and ``PartialDeliveryRejected`` when any receipt is invalid; in
        both cases nothing is saved.
        """
        if should_clean:
            self.clean()
        self.validate()

        recipients = unique_by_ref(self._recipients or [], ref_for)
        receipts = [self.build_receipt(recipient) for recipient in recipients]
        self._check_receipts(receipts)
        self._save(db, receipts)
        logger.info(f"Delivered notification {self.id} to {len(receipts)} recipients")

        self._dispatch_emails(recipients, send_mail)
        self._recipients = None

        if len(receipts) == 1:
            return receipts[0]
        return receipts

    def build_receipt(self, receiver, mailbox_type: str | None = None, is_read: bool = False) -> Receipt:
        """Build an unsaved, unattached receipt for ``receiver``."""
        receipt = Receipt(is_read=is_read, trashed=False, deleted=False, mailbox_type=mailbox_type)
        receipt.receiver = receiver
        return receipt

    def _check_receipts(self, receipts: list[Receipt]) -> None:
        results = [receipt.validate(notification=self) for receipt in receipts]
        if not all(results):
            logger.warning(f"Rejected delivery of {self!r}: {sum(not ok for ok in results)} invalid receipts")
            raise PartialDeliveryRejected(receipts)

    def _save(self, db: Session, receipts: list[Receipt]) -> None:
        for receipt in receipts:
            self.receipts.append(receipt)
        db.add(self)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

    def _dispatch_emails(self, recipients: list, send_mail: bool) -> None:
        if not (get_settings().uses_emails and send_mail):
            return
        mailer = None
        for recipient in recipients:
            email_to = email_target(recipient, self)
            if email_to is None:
                continue
            mailer = mailer or get_mailer(self)
            mailer.send_email(self, recipient, email_to)

    # -- per-participant state ----------------------------------------------

    def receipt_for(self, participant):
        """Query for the participant's receipt on this notification."""
        return (
            session_for(self)
            .query(Receipt)
            .filter(Receipt.notification_id == self.id, Receipt.belongs_to(participant))
        )

    receipts_for = receipt_for

    def _receipt_of(self, participant) -> Receipt:
        receipt = self.receipt_for(participant).order_by(Receipt.id).first()
        if receipt is None:
            raise ReceiptNotFound(ref_for(participant), self.id)
        return receipt

    def _update_receipts(self, participant, **flags) -> list[Receipt] | None:
        if participant is None:
            return None
        receipts = self.receipt_for(participant).all()
        if not receipts:
            raise ReceiptNotFound(ref_for(participant), self.id)
        return Receipt.apply(receipts, **flags)

    def is_unread(self, participant) -> bool:
        if participant is None:
            return False
        return not self._receipt_of(participant).is_read

    def is_read(self, participant) -> bool:
        if participant is None:
            return False
        return self._receipt_of(participant).is_read

    def is_trashed(self, participant) -> bool:
        if participant is None:
            return False
        return self._receipt_of(participant).trashed

    def is_deleted(self, participant) -> bool:
        if participant is None:
            return False
        return self._receipt_of(participant).deleted

    def mark_as_read(self, participant):
        return self._update_receipts(participant, is_read=True)

    def mark_as_unread(self, participant):
        return self._update_receipts(participant, is_read=False)

    def move_to_trash(self, participant):
        return self._update_receipts(participant, trashed=True)

    def untrash(self, participant):
        return self._update_receipts(participant, trashed=False)

    def mark_as_deleted(self, participant):
        return self._update_receipts(participant, deleted=True)

    def mark_as_not_deleted(self, participant):
        return self._update_receipts(participant, deleted=False)

    # Messageable dispatch
    apply_read = mark_as_read
    apply_unread = mark_as_unread
    apply_trash = move_to_trash
    apply_untrash = untrash
    apply_delete = mark_as_deleted

    # -- queries ------------------------------------------------------------

    @classmethod
    def for_recipient(cls, db: Session, participant):
        """Notifications holding a receipt for ``participant``."""
        return db.query(cls).join(Receipt, Receipt.notification_id == cls.id).filter(Receipt.belongs_to(participant))

    @classmethod
    def with_object(cls, db: Session, obj):
        ref = ref_for(obj)
        return db.query(cls).filter(cls.notified_object_type == ref.kind, cls.notified_object_id == ref.id)

    @classmethod
    def global_notifications(cls, db: Session):
        return db.query(cls).filter(cls.is_global.is_(True))

    @classmethod
    def expired_notifications(cls, db: Session):
        return db.query(cls).filter(cls.expires < utcnow())

    @classmethod
    def unexpired(cls, db: Session):
        return db.query(cls).filter(or_(cls.expires.is_(None), cls.expires > utcnow()))


class Message(Notification):
    """A notification that belongs to a conversation."""

    __mapper_args__ = {"polymorphic_identity": "Message"}

    conversation = relationship("Conversation", back_populates="messages")

    def deliver(self, db: Session, reply: bool = False, should_clean: bool = True, send_mail: bool = True):
        """Deliver to the pending recipients' inboxes and file a read copy in the sender's sentbox.

        Returns the sender's receipt. ``reply`` bumps the conversation's
        ``updated_at`` so it sorts first in every mailbox.
        """
        recipients = unique_by_ref(self._recipients or [], ref_for)
        try:
            if should_clean:
                self.clean()
            self.validate()
            if self.conversation is None:
                raise ValidationFailure({"conversation": ["can't be blank"]})
            self.conversation.validate()

            receipts = [self.build_receipt(recipient, MailboxType.INBOX) for recipient in recipients]
            sender_receipt = self.build_receipt(self.sender_ref, MailboxType.SENTBOX, is_read=True)
            receipts.append(sender_receipt)
            self._check_receipts(receipts)
        except (ValidationFailure, PartialDeliveryRejected):
            self._leave_conversation()
            raise

        if reply:
            self.conversation.updated_at = utcnow()
        self._save(db, receipts)
        logger.info(
            f"Delivered message {self.id} in conversation {self.conversation_id} to {len(recipients)} recipients"
        )

        self._dispatch_emails(recipients, send_mail)
        self._recipients = None
        return sender_receipt

    def _leave_conversation(self) -> None:
        """Take a rejected, unsaved message back out of its conversation's collection."""
        conversation = self.conversation
        if conversation is not None and self in conversation.messages:
            conversation.messages.remove(self)
