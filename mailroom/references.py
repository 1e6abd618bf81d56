"""Tagged polymorphic references.

Senders, receivers and notified objects are stored as a ``(kind, id)`` column
pair. ``EntityRef`` is the in-memory form of that pair and the registry maps
each kind back to the mapped class it was registered for.
"""
from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.orm import Session, object_session

from mailroom.exceptions import UnknownEntityKind

_registry: dict[str, type] = {}


@dataclass(frozen=True)
class EntityRef:
    """Identity of a host entity: registered kind plus primary key as text."""

    kind: str
    id: str | None

    def __str__(self) -> str:
        return f"{self.kind}#{self.id}"


def register_entity(kind: str):
    """Class decorator registering a mapped class under ``kind``."""

    def decorator(cls: type) -> type:
        register_kind(kind, cls)
        return cls

    return decorator


def register_kind(kind: str, cls: type) -> None:
    existing = _registry.get(kind)
    if existing is not None and existing is not cls:
        raise ValueError(f"Entity kind {kind!r} already registered for {existing.__name__}")
    _registry[kind] = cls


def kind_for(cls: type) -> str:
    """Return the registered kind of ``cls`` or of its closest registered base."""
    for base in cls.__mro__:
        for kind, registered in _registry.items():
            if registered is base:
                return kind
    raise UnknownEntityKind(f"{cls.__name__} is not a registered entity")


def class_for(kind: str) -> type:
    try:
        return _registry[kind]
    except KeyError:
        raise UnknownEntityKind(f"No entity registered for kind {kind!r}") from None


def ref_for(entity) -> EntityRef:
    """Build the reference of a mapped entity, flushing it first if it is pending."""
    if isinstance(entity, EntityRef):
        return entity
    kind = kind_for(type(entity))
    state = inspect(entity)
    if state.identity is None:
        session = object_session(entity)
        if session is not None:
            session.flush()
    if state.identity is None:
        return EntityRef(kind, None)
    if len(state.identity) != 1:
        raise UnknownEntityKind(f"{type(entity).__name__} has a composite primary key")
    return EntityRef(kind, str(state.identity[0]))


def resolve(session: Session, ref: EntityRef | None):
    """Load the entity behind ``ref``; ``None`` when the row no longer exists."""
    if ref is None or ref.id is None:
        return None
    cls = class_for(ref.kind)
    primary_key = inspect(cls).primary_key
    if len(primary_key) != 1:
        raise UnknownEntityKind(f"{cls.__name__} has a composite primary key")
    python_type = primary_key[0].type.python_type
    return session.get(cls, python_type(ref.id))
