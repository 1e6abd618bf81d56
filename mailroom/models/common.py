"""Helpers shared by the mailroom models."""
from datetime import datetime, timezone

from sqlalchemy.orm import Session, object_session

from mailroom.exceptions import DetachedEntityError


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every mailroom DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def session_for(instance) -> Session:
    session = object_session(instance)
    if session is None:
        raise DetachedEntityError(f"{type(instance).__name__} is not attached to a session")
    return session


def unique_by_ref(entities, ref_for) -> list:
    """De-duplicate ``entities`` by reference, keeping first occurrences in order.

    Unsaved entities have no id yet and are compared by identity instead.
    """
    seen = set()
    unique = []
    for entity in entities:
        if entity is None:
            key = None
        else:
            ref = ref_for(entity)
            key = ref if ref.id is not None else id(entity)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entity)
    return unique


def as_list(recipients) -> list:
    """Accept a single entity, a collection, or ``None``."""
    if recipients is None:
        return []
    if isinstance(recipients, (list, tuple, set)):
        return list(recipients)
    return [recipients]
