"""Read models for exposing mailbox state to a host application."""
from datetime import datetime

from pydantic import BaseModel


class ReceiptRead(BaseModel):
    """One participant's copy of a notification."""

    id: int
    notification_id: int
    receiver_type: str
    receiver_id: str
    is_read: bool
    trashed: bool
    deleted: bool
    mailbox_type: str | None = None  # inbox, sentbox, or None for notifications
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NotificationRead(BaseModel):
    """Notification or message content."""

    id: int
    type: str  # Notification or Message
    subject: str
    body: str
    sender_type: str | None = None
    sender_id: str | None = None
    notification_code: str | None = None
    conversation_id: int | None = None
    is_global: bool = False
    expires: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationSummary(BaseModel):
    """Conversation as seen by one participant."""

    id: int
    subject: str
    message_count: int
    originator: str | None = None  # "kind#id" reference
    last_sender: str | None = None
    last_message_at: datetime | None = None
    is_unread: bool
    is_trashed: bool
    is_deleted: bool
    created_at: datetime
    updated_at: datetime
