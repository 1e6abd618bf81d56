"""Errors raised by mailroom."""


class MailroomError(Exception):
    """Base class for mailroom errors."""


class ValidationFailure(MailroomError):
    """A notification or conversation is missing required fields."""

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = errors
        details = "; ".join(f"{field} {', '.join(msgs)}" for field, msgs in errors.items())
        super().__init__(f"Validation failed: {details}")


class ReceiptNotFound(MailroomError):
    """No receipt exists for a participant on a notification."""

    def __init__(self, participant_ref, notification_id):
        self.participant_ref = participant_ref
        self.notification_id = notification_id
        super().__init__(f"No receipt for {participant_ref} on notification {notification_id}")


class PartialDeliveryRejected(MailroomError):
    """At least one receipt failed validation, so none were saved.

    ``receipts`` holds every unsaved receipt of the attempted delivery; the
    failing ones carry their messages in ``errors``.
    """

    def __init__(self, receipts: list):
        self.receipts = receipts
        failed = [r for r in receipts if r.errors]
        super().__init__(f"Delivery rejected: {len(failed)} of {len(receipts)} receipts are invalid")


class UnknownEntityKind(MailroomError):
    """A polymorphic reference names a kind, or an object has a type, nobody registered."""


class DetachedEntityError(MailroomError):
    """A model method that queries the store was called on an object without a session."""
