from hosts import User
from mailroom.models import MailboxType, Notification, Receipt
from mailroom.references import EntityRef


def test_receipt_starts_unread_and_untouched(alice):
    receipt = alice.notify("Welcome", "Glad you are here")

    assert receipt.is_read is False
    assert receipt.trashed is False
    assert receipt.deleted is False
    assert receipt.mailbox_type is None
    assert receipt.receiver_ref == EntityRef("User", str(alice.id))
    assert receipt.receiver is alice


def test_mark_as_read_is_idempotent(alice):
    receipt = alice.notify("Welcome", "Glad you are here")

    receipt.mark_as_read()
    first_updated = receipt.updated_at
    assert receipt.is_read is True

    receipt.mark_as_read()
    assert receipt.is_read is True
    assert receipt.trashed is False
    assert receipt.updated_at == first_updated


def test_flags_change_independently(alice):
    receipt = alice.notify("Welcome", "Glad you are here")

    receipt.move_to_trash()
    receipt.mark_as_deleted()
    assert (receipt.is_read, receipt.trashed, receipt.deleted) == (False, True, True)

    receipt.untrash()
    receipt.mark_as_read()
    assert (receipt.is_read, receipt.trashed, receipt.deleted) == (True, False, True)

    receipt.mark_as_not_deleted()
    receipt.mark_as_unread()
    assert (receipt.is_read, receipt.trashed, receipt.deleted) == (False, False, False)


def test_apply_updates_a_query_in_one_go(db, alice, bob):
    Notification.notify_all(db, [alice, bob], "Maintenance", "Tonight at 10pm")
    Notification.notify_all(db, [alice], "Maintenance done", "All good")

    touched = Receipt.apply(db.query(Receipt).filter(Receipt.belongs_to(alice)), is_read=True)

    assert len(touched) == 2
    assert db.query(Receipt).filter(Receipt.belongs_to(alice), Receipt.is_read.is_(False)).count() == 0
    assert db.query(Receipt).filter(Receipt.belongs_to(bob), Receipt.is_read.is_(False)).count() == 1


def test_apply_rejects_unknown_flags(alice):
    receipt = alice.notify("Welcome", "Glad you are here")

    try:
        Receipt.apply([receipt], mailbox_type=MailboxType.SENTBOX)
    except ValueError as exc:
        assert "mailbox_type" in str(exc)
    else:
        raise AssertionError("expected ValueError")


def test_apply_methods_check_ownership(alice, bob):
    receipt = alice.notify("Welcome", "Glad you are here")

    assert receipt.apply_read(bob) is None
    assert receipt.apply_trash(bob) is None
    assert receipt.is_read is False
    assert receipt.trashed is False

    assert receipt.apply_read(alice) is receipt
    assert receipt.is_read is True


def test_validate_reports_missing_receiver(db):
    receipt = Receipt(is_read=False, trashed=False, deleted=False)

    assert receipt.validate() is False
    assert "notification must exist" in receipt.errors
    assert "receiver must exist" in receipt.errors


def test_validate_reports_unregistered_kind_and_unsaved_receiver(db):
    notification = Notification(subject="Hi", body="There")
    ghost = Receipt(receiver_type="Ghost", receiver_id="1")
    unsaved = Receipt()
    unsaved.receiver = User(name="nobody")

    assert ghost.validate(notification=notification) is False
    assert "receiver kind 'Ghost' is not registered" in ghost.errors
    assert unsaved.validate(notification=notification) is False
    assert "receiver must be persisted" in unsaved.errors


def test_validate_rejects_unknown_mailbox_type(alice):
    notification = Notification(subject="Hi", body="There")
    receipt = Receipt(mailbox_type="archive")
    receipt.receiver = alice

    assert receipt.validate(notification=notification) is False
    assert receipt.errors == ["mailbox type 'archive' is not allowed"]


def test_successful_delivery_checks_every_receipt(alice):
    notification = Notification(subject="Hi", body="There")
    good = notification.build_receipt(alice)
    good.notification = notification
    bad = Receipt(receiver_type="Ghost", receiver_id="1")
    bad.notification = notification

    assert Notification.successful_delivery(good) is True
    assert Notification.successful_delivery([good]) is True
    assert Notification.successful_delivery([good, bad]) is False
    assert Notification.successful_delivery(None) is False


def test_receipt_exposes_message_and_conversation(alice, bob):
    alice.send_message(bob, "Lunch?", "Plans")
    receipt = bob.mailbox.receipts().first()

    assert receipt.message.body == "Lunch?"
    assert receipt.conversation.subject == "Plans"
    assert receipt.mailbox_type == MailboxType.INBOX
