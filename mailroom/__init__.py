"""Mailroom: notifications, conversations and per-participant mailboxes on SQLAlchemy."""
from mailroom.database import Base, init_db
from mailroom.exceptions import (
    DetachedEntityError,
    MailroomError,
    PartialDeliveryRejected,
    ReceiptNotFound,
    UnknownEntityKind,
    ValidationFailure,
)
from mailroom.mailbox import Mailbox
from mailroom.messageable import Messageable
from mailroom.models import Conversation, MailboxType, Message, Notification, Receipt
from mailroom.references import EntityRef, register_entity

__all__ = [
    "Base",
    "init_db",
    "Messageable",
    "Mailbox",
    "Conversation",
    "MailboxType",
    "Message",
    "Notification",
    "Receipt",
    "EntityRef",
    "register_entity",
    "MailroomError",
    "ValidationFailure",
    "ReceiptNotFound",
    "PartialDeliveryRejected",
    "UnknownEntityKind",
    "DetachedEntityError",
]
