"""Messageable capability for host application models.

A host model becomes a mailroom participant by mixing in ``Messageable``::

    class User(Base, Messageable):
        __tablename__ = "users"
        id = Column(Integer, primary_key=True)

        def messageable_email(self, notification):
            return self.email

Every subclass registers itself as an entity kind (its ``messageable_kind``,
or the class name) so receipts and notifications can point back at it.
"""
import logging
from typing import Protocol, runtime_checkable

from mailroom.config import get_settings, import_string
from mailroom.exceptions import UnknownEntityKind
from mailroom.mailbox import Mailbox
from mailroom.models.common import as_list, session_for, unique_by_ref, utcnow
from mailroom.models.conversation import Conversation
from mailroom.models.notification import Message, Notification
from mailroom.models.receipt import Receipt
from mailroom.references import EntityRef, kind_for, ref_for, register_kind

logger = logging.getLogger(__name__)


@runtime_checkable
class MailboxItem(Protocol):
    """Anything whose state a participant can change: receipts, notifications, conversations."""

    def apply_read(self, owner): ...

    def apply_unread(self, owner): ...

    def apply_trash(self, owner): ...

    def apply_untrash(self, owner): ...

    def apply_delete(self, owner): ...


class Messageable:
    """Mixin giving a mapped model a mailbox and the ability to send and receive."""

    # Registry kind; defaults to the class name
    messageable_kind = None

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__dict__.get("__abstract__"):
            return
        kind = cls.__dict__.get("messageable_kind")
        if kind is None:
            try:
                kind_for(cls)
                return  # inherits the kind of a registered base
            except UnknownEntityKind:
                kind = cls.__name__
        register_kind(kind, cls)

    @property
    def entity_ref(self) -> EntityRef:
        return ref_for(self)

    def messageable_name(self) -> str:
        return str(self)

    def messageable_email(self, notification) -> str | None:
        """Address to mail ``notification`` to; ``None`` skips the email."""
        return None

    @property
    def mailbox(self) -> Mailbox:
        return Mailbox(self)

    # -- sending ------------------------------------------------------------

    def notify(
        self,
        subject: str,
        body: str,
        obj=None,
        sanitize_text: bool = True,
        notification_code: str | None = None,
        send_mail: bool = True,
    ) -> Receipt:
        """Send a notification to this participant."""
        return Notification.notify_all(
            session_for(self),
            [self],
            subject,
            body,
            obj=obj,
            sanitize_text=sanitize_text,
            notification_code=notification_code,
            send_mail=send_mail,
        )

    def send_message(
        self,
        recipients,
        body: str,
        subject: str,
        *,
        sanitize_text: bool = True,
        timestamp=None,
        attachment: str | None = None,
        metadata: dict | None = None,
    ) -> Receipt:
        """Start a conversation with ``recipients``; returns the sender's receipt."""
        db = session_for(self)
        timestamp = timestamp or utcnow()
        conversation = Conversation(subject=subject, created_at=timestamp, updated_at=timestamp)
        message = Message(
            subject=subject,
            body=body,
            attachment=attachment,
            message_metadata=metadata,
            created_at=timestamp,
            updated_at=timestamp,
        )
        message.sender = self
        message.conversation = conversation
        message.recipients = unique_by_ref(as_list(recipients), ref_for)
        return message.deliver(db, reply=False, should_clean=sanitize_text)

    def reply(
        self,
        conversation: Conversation,
        recipients,
        body: str,
        *,
        subject: str | None = None,
        sanitize_text: bool = True,
        attachment: str | None = None,
        metadata: dict | None = None,
    ) -> Receipt:
        """Add a message to ``conversation``; the replier never receives their own reply."""
        db = session_for(self)
        own_ref = self.entity_ref
        recipients = [
            recipient
            for recipient in unique_by_ref(as_list(recipients), ref_for)
            if recipient is None or ref_for(recipient) != own_ref
        ]
        response = Message(
            subject=subject or f"RE: {conversation.subject}",
            body=body,
            attachment=attachment,
            message_metadata=metadata,
        )
        response.sender = self
        response.conversation = conversation
        response.recipients = recipients
        return response.deliver(db, reply=True, should_clean=sanitize_text)

    def reply_to_sender(self, receipt: Receipt, body: str, **options) -> Receipt:
        return self.reply(receipt.conversation, receipt.message.sender, body, **options)

    def reply_to_all(self, receipt: Receipt, body: str, **options) -> Receipt:
        return self.reply(receipt.conversation, receipt.message.recipients, body, **options)

    def reply_to_conversation(
        self, conversation: Conversation, body: str, should_untrash: bool = True, **options
    ) -> Receipt:
        """Reply to the recipients of the last message.

        When the conversation is in this participant's trash it is restored
        first, unless ``should_untrash`` is false.
        """
        if should_untrash and self.mailbox.is_trashed(conversation):
            Receipt.apply(self.mailbox.receipts_for(conversation), trashed=False, deleted=False)
        last = conversation.last_message()
        recipients = last.recipients if last is not None else []
        return self.reply(conversation, recipients, body, **options)

    # -- state changes ------------------------------------------------------

    def _dispatch(self, obj, action: str):
        if isinstance(obj, (list, tuple)):
            return [self._dispatch(item, action) for item in obj]
        if not isinstance(obj, MailboxItem):
            logger.debug(f"{type(obj).__name__} has no mailbox state, ignoring {action}")
            return None
        return getattr(obj, action)(self)

    def mark_as_read(self, obj):
        """Mark a receipt, notification, conversation, or list of them, as read."""
        return self._dispatch(obj, "apply_read")

    def mark_as_unread(self, obj):
        return self._dispatch(obj, "apply_unread")

    def trash(self, obj):
        return self._dispatch(obj, "apply_trash")

    def untrash(self, obj):
        return self._dispatch(obj, "apply_untrash")

    def mark_as_deleted(self, obj):
        """Delete for this participant only; orphaned conversations are destroyed."""
        return self._dispatch(obj, "apply_delete")

    # -- queries ------------------------------------------------------------

    def search_messages(self, query: str) -> list[Conversation]:
        """Conversations holding a message that matches ``query``, newest match first."""
        provider = import_string(get_settings().search_provider)()
        receipts = provider.search(session_for(self), self.entity_ref, query)
        conversations = []
        seen = set()
        for receipt in receipts:
            conversation = receipt.conversation
            if conversation is None or conversation.id in seen:
                continue
            seen.add(conversation.id)
            conversations.append(conversation)
        return conversations

    def sent_messages(self):
        ref = self.entity_ref
        return (
            session_for(self)
            .query(Message)
            .filter(Message.sender_type == ref.kind, Message.sender_id == ref.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
        )

    def receipts(self):
        return self.mailbox.receipts()
