"""Per-participant views over conversations, notifications and receipts."""
import logging

from mailroom.models.common import session_for
from mailroom.models.conversation import Conversation
from mailroom.models.notification import Notification
from mailroom.models.receipt import MailboxType, Receipt

logger = logging.getLogger(__name__)

_CONVERSATION_BOXES = {
    None: Conversation.for_participant,
    "inbox": Conversation.inbox,
    "sentbox": Conversation.sentbox,
    "trash": Conversation.trash,
    "not_trash": Conversation.not_trash,
}


class Mailbox:
    """Mailbox of one messageable participant."""

    def __init__(self, messageable):
        self.messageable = messageable

    @property
    def db(self):
        return session_for(self.messageable)

    def conversations(self, mailbox_type: str | None = None, unread: bool = False):
        """Query the participant's conversations, most recently updated first."""
        try:
            box = _CONVERSATION_BOXES[mailbox_type]
        except KeyError:
            raise ValueError(f"Unknown mailbox type {mailbox_type!r}") from None
        query = box(self.db, self.messageable)
        if unread:
            query = query.filter(Receipt.is_read.is_(False))
        return query

    def inbox(self, unread: bool = False):
        return self.conversations("inbox", unread=unread)

    def sentbox(self):
        return self.conversations("sentbox")

    def trash(self):
        return self.conversations("trash")

    def notifications(self, unread: bool = False):
        """Plain notifications (not messages) received and not deleted, newest first."""
        query = (
            Notification.for_recipient(self.db, self.messageable)
            .filter(Notification.type == "Notification", Receipt.deleted.is_(False))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        if unread:
            query = query.filter(Receipt.is_read.is_(False))
        return query

    def receipts(self, mailbox_type: str | None = None):
        query = (
            self.db.query(Receipt)
            .filter(Receipt.belongs_to(self.messageable))
            .order_by(Receipt.created_at.desc(), Receipt.id.desc())
        )
        if mailbox_type is not None:
            if mailbox_type not in MailboxType.ALL:
                raise ValueError(f"Unknown mailbox type {mailbox_type!r}")
            query = query.filter(Receipt.mailbox_type == mailbox_type)
        return query

    def receipts_for(self, conversation):
        return conversation.receipts_for(self.messageable)

    def has_conversation(self, conversation) -> bool:
        return conversation.is_participant(self.messageable)

    def is_trashed(self, conversation) -> bool:
        return conversation.is_trashed(self.messageable)

    def is_completely_trashed(self, conversation) -> bool:
        return conversation.is_completely_trashed(self.messageable)

    def empty_trash(self) -> int:
        """Delete every trashed receipt; returns how many conversations were emptied.

        Conversations left orphaned by this are destroyed.
        """
        conversations = self.trash().all()
        for conversation in conversations:
            trashed = self.receipts_for(conversation).filter(Receipt.trashed.is_(True))
            Receipt.apply(trashed, deleted=True)
            if conversation.is_orphaned():
                conversation.destroy()
        logger.info(f"Emptied trash of {len(conversations)} conversations")
        return len(conversations)
