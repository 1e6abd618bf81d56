"""SQLAlchemy models package."""
from mailroom.models.receipt import MailboxType, Receipt
from mailroom.models.notification import Message, Notification
from mailroom.models.conversation import Conversation

__all__ = [
    "MailboxType",
    "Receipt",
    "Notification",
    "Message",
    "Conversation",
]
