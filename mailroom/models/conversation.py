"""Conversation model: a thread of messages sharing a subject."""
import logging

from sqlalchemy import Column, DateTime, Integer, String, event, func
from sqlalchemy.orm import Session, relationship

from mailroom.database import Base
from mailroom.exceptions import ValidationFailure
from mailroom.models.common import session_for, utcnow
from mailroom.models.notification import Message
from mailroom.models.receipt import MailboxType, Receipt
from mailroom.references import EntityRef, ref_for, resolve
from mailroom.schemas.mailbox import ConversationSummary
from mailroom.services.sanitizer import clean_text

logger = logging.getLogger(__name__)


class Conversation(Base):
    """Thread of messages.

    Every per-participant answer (read, trashed, deleted) is derived from the
    participant's receipts on the conversation's messages; the conversation
    row itself only stores the subject.
    """

    __tablename__ = "mailroom_conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by=lambda: [Message.created_at, Message.id],
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, subject={self.subject!r})>"

    # -- validation ---------------------------------------------------------

    def clean(self) -> None:
        self.subject = clean_text(self.subject)

    def validate(self) -> None:
        """Sanitize, then require a non-blank subject."""
        self.clean()
        if self.subject is None or not self.subject.strip():
            raise ValidationFailure({"subject": ["can't be blank"]})

    # -- derived accessors --------------------------------------------------

    def _messages_query(self):
        return session_for(self).query(Message).filter(Message.conversation_id == self.id)

    def original_message(self) -> Message | None:
        return self._messages_query().order_by(Message.created_at.asc(), Message.id.asc()).first()

    def last_message(self) -> Message | None:
        return self._messages_query().order_by(Message.created_at.desc(), Message.id.desc()).first()

    def originator(self):
        message = self.original_message()
        return message.sender if message is not None else None

    def last_sender(self):
        message = self.last_message()
        return message.sender if message is not None else None

    def count_messages(self) -> int:
        return self._messages_query().count()

    def receipts_for(self, participant):
        """Query for the participant's receipts across every message."""
        return (
            session_for(self)
            .query(Receipt)
            .filter(Receipt.in_conversation(self), Receipt.belongs_to(participant))
            .order_by(Receipt.id)
        )

    def participant_refs(self) -> list[EntityRef]:
        """Distinct receipt holders in order of their first receipt."""
        rows = (
            session_for(self)
            .query(Receipt.receiver_type, Receipt.receiver_id, func.min(Receipt.id).label("first_id"))
            .filter(Receipt.in_conversation(self))
            .group_by(Receipt.receiver_type, Receipt.receiver_id)
            .order_by("first_id")
            .all()
        )
        return [EntityRef(kind, receiver_id) for kind, receiver_id, _ in rows]

    def participants(self) -> list:
        session = session_for(self)
        resolved = [resolve(session, ref) for ref in self.participant_refs()]
        return [participant for participant in resolved if participant is not None]

    def recipients(self) -> list:
        """Receipt holders of the last message."""
        message = self.last_message()
        return message.recipients if message is not None else []

    # -- per-participant queries --------------------------------------------

    def is_participant(self, participant) -> bool:
        if participant is None:
            return False
        return self.receipts_for(participant).count() != 0

    def is_trashed(self, participant) -> bool:
        """True when at least one of the participant's receipts is trashed."""
        if participant is None:
            return False
        return self.receipts_for(participant).filter(Receipt.trashed.is_(True)).count() != 0

    def is_completely_trashed(self, participant) -> bool:
        if participant is None:
            return False
        receipts = self.receipts_for(participant)
        return receipts.filter(Receipt.trashed.is_(True)).count() == receipts.count()

    def is_deleted(self, participant) -> bool:
        """True when every one of the participant's receipts is deleted."""
        if participant is None:
            return False
        receipts = self.receipts_for(participant)
        return receipts.filter(Receipt.deleted.is_(True)).count() == receipts.count()

    def is_unread(self, participant) -> bool:
        """True when the participant has an unread message outside the trash."""
        if participant is None:
            return False
        unread = self.receipts_for(participant).filter(Receipt.trashed.is_(False), Receipt.is_read.is_(False))
        return unread.count() != 0

    def is_read(self, participant) -> bool:
        if participant is None:
            return False
        return not self.is_unread(participant)

    def is_orphaned(self) -> bool:
        """True when every participant has deleted all of their receipts.

        That is the case exactly when no receipt of the conversation is left
        undeleted.
        """
        remaining = (
            session_for(self)
            .query(Receipt.id)
            .filter(Receipt.in_conversation(self), Receipt.deleted.is_(False))
            .first()
        )
        return remaining is None

    # -- per-participant state changes --------------------------------------

    def _apply(self, participant, **flags) -> list[Receipt] | None:
        if participant is None:
            return None
        return Receipt.apply(self.receipts_for(participant), **flags)

    def mark_as_read(self, participant):
        return self._apply(participant, is_read=True)

    def mark_as_unread(self, participant):
        return self._apply(participant, is_read=False)

    def move_to_trash(self, participant):
        return self._apply(participant, trashed=True)

    def untrash(self, participant):
        return self._apply(participant, trashed=False)

    def mark_as_not_deleted(self, participant):
        return self._apply(participant, deleted=False)

    def mark_as_deleted(self, participant):
        """Delete the participant's receipts.

        When that leaves the conversation orphaned, the conversation and all
        of its messages and receipts are destroyed and ``None`` is returned.
        """
        deleted = self._apply(participant, deleted=True)
        if deleted is None:
            return None
        if self.is_orphaned():
            self.destroy()
            return None
        return deleted

    # Messageable dispatch
    apply_read = mark_as_read
    apply_unread = mark_as_unread
    apply_trash = move_to_trash
    apply_untrash = untrash
    apply_delete = mark_as_deleted

    def add_participant(self, participant) -> list[Receipt]:
        """Give ``participant`` an unread inbox receipt for every existing message.

        Receipts carry the timestamps of their message so mailboxes keep the
        thread's chronology. Messages the participant already holds a receipt
        for are skipped.
        """
        session = session_for(self)
        ref = ref_for(participant)
        added = []
        for message in self.messages:
            held = (
                session.query(Receipt.id)
                .filter(Receipt.notification_id == message.id, Receipt.belongs_to(ref))
                .first()
            )
            if held is not None:
                continue
            receipt = Receipt(
                is_read=False,
                trashed=False,
                deleted=False,
                mailbox_type=MailboxType.INBOX,
                created_at=message.created_at,
                updated_at=message.updated_at,
            )
            receipt.receiver = ref
            message.receipts.append(receipt)
            added.append(receipt)
        session.commit()
        logger.info(f"Added {ref} to conversation {self.id} with {len(added)} receipts")
        return added

    def destroy(self) -> None:
        """Hard-delete the conversation with its messages and receipts."""
        session = session_for(self)
        conversation_id = self.id
        session.delete(self)
        session.commit()
        logger.info(f"Destroyed orphaned conversation {conversation_id}")

    def summary_for(self, participant) -> ConversationSummary:
        last = self.last_message()
        original = self.original_message()
        return ConversationSummary(
            id=self.id,
            subject=self.subject,
            message_count=self.count_messages(),
            originator=str(original.sender_ref) if original is not None and original.sender_ref else None,
            last_sender=str(last.sender_ref) if last is not None and last.sender_ref else None,
            last_message_at=last.created_at if last is not None else None,
            is_unread=self.is_unread(participant),
            is_trashed=self.is_trashed(participant),
            is_deleted=self.is_deleted(participant),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    # -- mailbox queries ----------------------------------------------------

    @classmethod
    def for_participant(cls, db: Session, participant):
        """Conversations where ``participant`` holds a receipt, most recently updated first."""
        return (
            db.query(cls)
            .join(Message, Message.conversation_id == cls.id)
            .join(Receipt, Receipt.notification_id == Message.id)
            .filter(Receipt.belongs_to(participant))
            .distinct()
            .order_by(cls.updated_at.desc(), cls.id.desc())
        )

    @classmethod
    def inbox(cls, db: Session, participant):
        return cls.for_participant(db, participant).filter(
            Receipt.mailbox_type == MailboxType.INBOX,
            Receipt.trashed.is_(False),
            Receipt.deleted.is_(False),
        )

    @classmethod
    def sentbox(cls, db: Session, participant):
        return cls.for_participant(db, participant).filter(
            Receipt.mailbox_type == MailboxType.SENTBOX,
            Receipt.trashed.is_(False),
            Receipt.deleted.is_(False),
        )

    @classmethod
    def trash(cls, db: Session, participant):
        return cls.for_participant(db, participant).filter(Receipt.trashed.is_(True), Receipt.deleted.is_(False))

    @classmethod
    def unread(cls, db: Session, participant):
        return cls.for_participant(db, participant).filter(Receipt.is_read.is_(False))

    @classmethod
    def not_trash(cls, db: Session, participant):
        return cls.for_participant(db, participant).filter(Receipt.trashed.is_(False))


@event.listens_for(Conversation, "before_insert")
@event.listens_for(Conversation, "before_update")
def validate_conversation(mapper, connection, target: Conversation) -> None:
    """Sanitize and validate the subject before every write."""
    target.validate()
